from itinerary_engine.schemas.itinerary import Coords, Place, PlaceCategory
from itinerary_engine.services.categories import classify_place
from itinerary_engine.services.time_slots import (
    MINUTES_PER_DAY,
    activity_timeline,
    add_minutes_to_time,
    assign_time_slots,
    format_minutes,
    is_slot_available,
    make_activity,
    reflow_activities,
    slot_for_minutes,
    time_to_minutes,
)


def _place(name, category=None):
    return Place(name=name, category=category, coordinates=Coords(lat=15.5, lng=73.8))


HOTEL = _place("Sea View Hotel")
FORT = _place("Aguada Fort")
BEACH = _place("Baga Beach")
BAR = _place("Tito's Lane")


def test_time_helpers():
    assert time_to_minutes("07:30") == 450
    assert format_minutes(450) == "07:30"
    assert format_minutes(1500) == "01:00"
    assert add_minutes_to_time("23:30", 60) == "00:30"

    assert slot_for_minutes(8 * 60) == "morning"
    assert slot_for_minutes(13 * 60) == "afternoon"
    assert slot_for_minutes(18 * 60) == "evening"
    assert slot_for_minutes(22 * 60) == "night"
    assert slot_for_minutes(3 * 60) == "night"


def test_classification_order():
    assert classify_place(HOTEL) == PlaceCategory.ACCOMMODATION
    assert classify_place(FORT) == PlaceCategory.FORT
    assert classify_place(BEACH) == PlaceCategory.BEACH
    assert classify_place(BAR) == PlaceCategory.NIGHTLIFE
    assert classify_place(_place("Basilica of Bom Jesus")) == PlaceCategory.LANDMARK
    assert classify_place(_place("Calangute Beach", "destination")) == PlaceCategory.BEACH
    assert classify_place(_place("Spice Farm", "tour")) == PlaceCategory.ACTIVITY
    assert classify_place(_place("Somewhere")) == PlaceCategory.DESTINATION


def test_full_day_layout():
    activities = assign_time_slots([BAR, BEACH, FORT, HOTEL], day_number=1)

    assert [a.type for a in activities] == [
        "checkin", "meal", "visit", "meal", "rest", "visit", "meal", "visit",
    ]
    assert [a.place.name for a in activities if a.type == "visit"] == [
        "Aguada Fort", "Baga Beach", "Tito's Lane",
    ]

    by_name = {a.place.name: a for a in activities}
    assert by_name["Sea View Hotel"].startTime == "07:00"
    assert by_name["Aguada Fort"].startTime == "09:00"
    assert by_name["Aguada Fort"].timeSlot == "morning"
    assert by_name["Baga Beach"].startTime == "17:00"
    assert by_name["Tito's Lane"].endTime == "01:30"

    timeline = activity_timeline(activities)
    for (_, prev_end), (start, _) in zip(timeline, timeline[1:]):
        assert start >= prev_end
    assert timeline[-1][1] > MINUTES_PER_DAY


def test_anchor_kind_depends_on_day():
    assert assign_time_slots([HOTEL, FORT], 1, is_last_day=False)[0].type == "checkin"
    assert assign_time_slots([HOTEL, FORT], 1, is_last_day=True)[0].type == "checkin"
    assert assign_time_slots([HOTEL, FORT], 3, is_last_day=True)[0].type == "checkout"


def test_empty_day():
    assert assign_time_slots([], 1) == []


def test_reflow_removes_overlap():
    first = make_activity(FORT, 1, 9 * 60, 120, "visit")
    second = make_activity(BEACH, 1, 10 * 60, 60, "visit")

    reflow_activities([first, second])

    assert second.startTime == "11:00"
    assert second.endTime == "12:00"


def test_slot_availability():
    activities = [make_activity(FORT, 1, 9 * 60, 120, "visit")]

    assert is_slot_available(activities, 11 * 60, 12 * 60)
    assert not is_slot_available(activities, 10 * 60, 12 * 60)
    assert is_slot_available([], 0, 60)


if __name__ == "__main__":
    test_time_helpers()
    test_classification_order()
    test_full_day_layout()
    test_anchor_kind_depends_on_day()
    test_empty_day()
    test_reflow_removes_overlap()
    test_slot_availability()
