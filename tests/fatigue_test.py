import pytest

from itinerary_engine.schemas.itinerary import Coords, DayItinerary, Place
from itinerary_engine.services.fatigue import (
    DEFAULT_FATIGUE_CONFIG,
    FatigueConfig,
    adjust_first_day_fatigue,
    apply_fatigue_values,
    balance_fatigue_across_days,
    calculate_activity_fatigue,
    calculate_day_fatigue,
    get_fatigue_level,
    insert_rest_breaks,
    suggest_adjustments,
)
from itinerary_engine.services.time_slots import make_activity, meal_place


def _place(name):
    return Place(name=name, coordinates=Coords(lat=15.5, lng=73.8))


def _visit(name, start_h, minutes, day=1):
    return make_activity(_place(name), day, int(start_h * 60), minutes, "visit")


def _meal(label, start_h, day=1):
    return make_activity(meal_place(label), day, int(start_h * 60), 60, "meal")


def _day(number, activities):
    day = DayItinerary(day=number, date=f"2025-03-0{number}", activities=activities)
    apply_fatigue_values(day.activities)
    day.totalFatigue = calculate_day_fatigue(day.activities)
    return day


def test_activity_fatigue_by_type():
    assert calculate_activity_fatigue(_visit("Old Goa Museum", 9, 90)) == 60
    assert calculate_activity_fatigue(_visit("Aguada Fort", 9, 120)) == 100
    assert calculate_activity_fatigue(_meal("Lunch", 13)) == 10

    rest = make_activity(Place(name="Rest Break", category="rest"), 1, 600, 30, "rest")
    assert calculate_activity_fatigue(rest) == -25

    travel = make_activity(Place(name="Travel", category="travel"), 1, 600, 31, "travel")
    assert calculate_activity_fatigue(travel) == 10


def test_negative_duration_raises():
    activity = _visit("Aguada Fort", 9, 120)
    activity.durationMin = -5
    with pytest.raises(ValueError):
        calculate_activity_fatigue(activity)


def test_rest_break_inserted_once_threshold_reached():
    activities = apply_fatigue_values([
        _visit("Aguada Fort", 9, 120),
        _visit("Old Goa Museum", 11.5, 90),
    ])

    result = insert_rest_breaks(activities)

    assert [a.type for a in result] == ["visit", "rest", "visit"]
    assert result[1].fatigueImpact == -DEFAULT_FATIGUE_CONFIG.rest_recovery
    assert result[1].startTime == "11:30"
    assert result[2].startTime == "12:00"


def test_no_rest_below_threshold():
    activities = apply_fatigue_values([
        _meal("Breakfast", 8),
        _visit("Old Goa Museum", 9.5, 60),
        _visit("Se Cathedral", 11.5, 30),
    ])
    assert [a.type for a in insert_rest_breaks(activities)] == ["meal", "visit", "visit"]

    strict = FatigueConfig(rest_threshold=10)
    assert "rest" in [a.type for a in insert_rest_breaks(activities, strict)]


def test_balance_moves_visit_to_light_neighbour():
    heavy = _day(1, [_visit("Old Goa Museum", 9, 90), _visit("Aguada Fort", 11, 120)])
    light = _day(2, [_meal("Breakfast", 8, day=2), _meal("Lunch", 13, day=2)])
    assert (heavy.totalFatigue, light.totalFatigue) == (160, 20)

    days = balance_fatigue_across_days([heavy, light])

    assert [d.totalFatigue for d in days] == [60, 120]
    moved = days[1].activities[0]
    assert moved.place.name == "Aguada Fort"
    assert moved.day == 2
    assert [a.startTime for a in days[1].activities] == ["11:00", "13:00", "14:00"]


def test_balance_is_idempotent():
    days = balance_fatigue_across_days([
        _day(1, [_visit("Old Goa Museum", 9, 90), _visit("Aguada Fort", 11, 120)]),
        _day(2, [_meal("Breakfast", 8, day=2), _meal("Lunch", 13, day=2)]),
    ])
    snapshot = [[(a.place.name, a.startTime) for a in d.activities] for d in days]

    balance_fatigue_across_days(days)

    assert [[(a.place.name, a.startTime) for a in d.activities] for d in days] == snapshot


def test_balance_noop_for_even_days():
    days = [
        _day(1, [_visit("Old Goa Museum", 9, 90)]),
        _day(2, [_visit("Se Cathedral", 9, 90, day=2)]),
    ]
    balance_fatigue_across_days(days)
    assert [len(d.activities) for d in days] == [1, 1]

    single = [_day(1, [_visit("Aguada Fort", 9, 240)])]
    balance_fatigue_across_days(single)
    assert len(single[0].activities) == 1


def test_first_day_adjustment_applies_once():
    days = [
        _day(1, [_visit("Old Goa Museum", 9, 90), _visit("Aguada Fort", 11, 120)]),
        _day(2, []),
    ]

    adjust_first_day_fatigue(days)

    assert [a.place.name for a in days[0].activities] == ["Old Goa Museum"]
    assert [a.place.name for a in days[1].activities] == ["Aguada Fort"]
    assert days[0].totalFatigue == 60 + DEFAULT_FATIGUE_CONFIG.arrival_fatigue
    assert days[1].totalFatigue == 100

    adjust_first_day_fatigue(days)
    assert days[0].totalFatigue == 70
    assert "arrivalAdjusted" not in days[0].model_dump()


def test_levels_and_suggestions():
    assert get_fatigue_level(40) == "light"
    assert get_fatigue_level(60) == "moderate"
    assert get_fatigue_level(90) == "heavy"
    assert get_fatigue_level(120) == "exhausting"

    packed = _day(1, [_visit("Aguada Fort", 9, 120), _visit("Old Goa Museum", 11.5, 90)])
    assert suggest_adjustments(packed)


if __name__ == "__main__":
    test_activity_fatigue_by_type()
    test_negative_duration_raises()
    test_rest_break_inserted_once_threshold_reached()
    test_no_rest_below_threshold()
    test_balance_moves_visit_to_light_neighbour()
    test_balance_is_idempotent()
    test_balance_noop_for_even_days()
    test_first_day_adjustment_applies_once()
    test_levels_and_suggestions()
