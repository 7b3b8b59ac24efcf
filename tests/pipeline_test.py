import pytest
import requests

from itinerary_engine.schemas.itinerary import (
    Budget,
    Coords,
    DateRange,
    ItineraryInput,
    Place,
)
from itinerary_engine.core.config import settings
from itinerary_engine.schemas.research import OpeningHours
from itinerary_engine.services.pipeline import (
    estimate_itinerary,
    generate_itinerary,
    generate_itinerary_with_research,
    regenerate_day,
    schedule_knowledge_day,
)
from itinerary_engine.services.place_cache import PlaceKnowledgeCache
from itinerary_engine.services.place_research import build_fallback_knowledge, knowledge_to_place
from itinerary_engine.services.research_pipeline import ResearchPipeline
from itinerary_engine.utils.validators import assert_itinerary_valid, validate_itinerary

HOTEL = Place(name="Sea View Hotel", coordinates=Coords(lat=15.49, lng=73.83))
BASILICA = Place(name="Basilica of Bom Jesus", coordinates=Coords(lat=15.50, lng=73.84))
CATHEDRAL = Place(name="Se Cathedral", coordinates=Coords(lat=15.50, lng=73.86))

TWO_DAYS = DateRange(start="2025-03-01", end="2025-03-02")


def _input(places, dates=TWO_DAYS, **kwargs):
    return ItineraryInput(places=places, dates=dates, **kwargs)


def _visits(day):
    return [a.place.name for a in day.activities if a.type == "visit"]


def test_hotel_and_two_landmarks_over_two_days():
    """
    Pipeline scenario: lodging plus two landmarks 2 km apart, two days.

    Expected:
    - one landmark per day, lodging anchors both days
    - no overlaps, fatigue totals consistent
    """
    itinerary = generate_itinerary(_input([HOTEL, BASILICA, CATHEDRAL]))

    assert len(itinerary.days) == 2
    assert [d.date for d in itinerary.days] == ["2025-03-01", "2025-03-02"]
    assert _visits(itinerary.days[0]) == ["Basilica of Bom Jesus"]
    assert _visits(itinerary.days[1]) == ["Se Cathedral"]
    assert itinerary.days[0].activities[0].type == "checkin"
    assert itinerary.days[1].activities[0].type == "checkout"

    summary = itinerary.summary
    assert summary.totalDays == 2
    assert summary.placesVisited == 2
    assert summary.missingCategories == ["restaurant"]
    assert summary.totalCost == sum(d.totalCost for d in itinerary.days)
    assert len(itinerary.route) == 2
    assert summary.distanceTraveled > 0

    assert_itinerary_valid(itinerary)


def test_no_geodata_falls_back():
    itinerary = generate_itinerary(_input([Place(name="Somewhere"), Place(name="Elsewhere")]))

    assert len(itinerary.days) == 2
    assert all(d.activities == [] for d in itinerary.days)
    assert [r.type for r in itinerary.days[0].recommendations] == ["accommodation", "restaurant", "beach"]
    assert itinerary.summary.missingCategories == ["accommodation", "restaurant", "beach"]
    assert itinerary.summary.placesVisited == 0
    assert itinerary.route == []


def test_bad_dates_use_default_length():
    itinerary = generate_itinerary(_input([HOTEL, BASILICA], dates=DateRange(start="soon", end="later")))
    assert itinerary.summary.totalDays == 3
    assert len(itinerary.days) == 3


def test_many_places_are_clustered_and_all_visited():
    spots = [
        Place(name=f"Spot {i}", category="attraction", coordinates=Coords(lat=15.45 + (i % 4) * 0.03, lng=73.80 + (i // 4) * 0.03))
        for i in range(7)
    ]
    itinerary = generate_itinerary(_input([HOTEL] + spots, budget=Budget(total=20000)))

    visited = [name for day in itinerary.days for name in _visits(day)]
    assert sorted(visited) == sorted(p.name for p in spots)
    assert itinerary.summary.placesVisited == 7

    result = validate_itinerary(itinerary)
    assert result["valid"], result["violations"]


def test_generation_is_deterministic():
    first = generate_itinerary(_input([HOTEL, BASILICA, CATHEDRAL]))
    second = generate_itinerary(_input([HOTEL, BASILICA, CATHEDRAL]))

    def shape(itinerary):
        return [[(a.place.name, a.startTime, a.endTime) for a in d.activities] for d in itinerary.days]

    assert shape(first) == shape(second)


def test_regenerate_day_replaces_only_that_day():
    original = generate_itinerary(_input([HOTEL, BASILICA, CATHEDRAL]))
    fort = Place(name="Reis Magos Fort", coordinates=Coords(lat=15.4965, lng=73.8090))

    updated = regenerate_day(original, 2, [HOTEL, fort])

    assert _visits(updated.days[1]) == ["Reis Magos Fort"]
    assert _visits(updated.days[0]) == _visits(original.days[0])
    assert _visits(original.days[1]) == ["Se Cathedral"]
    assert updated.days[1].activities[0].fatigueImpact == -10
    assert_itinerary_valid(updated)

    with pytest.raises(ValueError):
        regenerate_day(original, 5, [fort])


def test_estimate():
    estimate = estimate_itinerary(_input([HOTEL, BASILICA, Place(name="Somewhere")]))

    assert estimate["numDays"] == 2
    assert estimate["numPlaces"] == 2
    assert estimate["unlocatedPlaces"] == 1
    assert estimate["hasAccommodation"] is True
    assert estimate["estimatedDistance"] > 0
    assert estimate["estimatedCost"] > 0
    assert estimate["research"]["recommended"] is True
    assert estimate["regions"] == [settings.DEFAULT_REGION]


def _research_pipeline(researcher):
    return ResearchPipeline(researcher=researcher, cache=PlaceKnowledgeCache(), delay_seconds=0)


def test_research_path_with_working_lookups():
    def researcher(place, region):
        knowledge = build_fallback_knowledge(place, region)
        return knowledge.model_copy(update={"researchConfidence": 0.9})

    result = generate_itinerary_with_research(
        _input([HOTEL, BASILICA, CATHEDRAL]), pipeline=_research_pipeline(researcher)
    )

    assert [o.status for o in result.outcomes] == ["ok", "ok", "ok"]
    assert [k.name for k in result.knowledge] == ["Sea View Hotel", "Basilica of Bom Jesus", "Se Cathedral"]
    assert result.itinerary.summary.placesVisited == 2
    assert_itinerary_valid(result.itinerary)


def test_research_path_survives_failed_lookups():
    def researcher(place, region):
        raise requests.exceptions.Timeout("lookup timed out")

    result = generate_itinerary_with_research(
        _input([HOTEL, BASILICA, Place(name="Baga Beach")]), pipeline=_research_pipeline(researcher)
    )

    assert len(result.outcomes) == 3
    assert all(o.is_degraded for o in result.outcomes)
    assert all(k.researchConfidence <= 0.2 for k in result.knowledge)
    assert len(result.itinerary.days) == 2
    assert_itinerary_valid(result.itinerary)


def test_regenerated_first_day_carries_arrival_fatigue():
    original = generate_itinerary(_input([HOTEL, BASILICA, CATHEDRAL]))

    updated = regenerate_day(original, 1, [HOTEL, BASILICA])

    assert updated.days[0].arrivalAdjusted is True
    assert updated.days[0].activities[0].fatigueImpact == original.days[0].activities[0].fatigueImpact
    assert updated.days[0].totalFatigue == original.days[0].totalFatigue
    assert _visits(updated.days[1]) == _visits(original.days[1])
    assert_itinerary_valid(updated)


FORT = Place(name="Aguada Fort", coordinates=Coords(lat=15.49, lng=73.82))
MUSEUM = Place(name="Old Goa Museum", coordinates=Coords(lat=15.495, lng=73.81))
MUSEUM_HOURS = OpeningHours(open="11:00", close="12:30")


def _tight_museum_researcher(place, region):
    knowledge = build_fallback_knowledge(place, region).model_copy(update={"researchConfidence": 0.9})
    if place.name == FORT.name:
        return knowledge.model_copy(update={"typicalDuration": 180})
    if place.name == MUSEUM.name:
        return knowledge.model_copy(update={"typicalDuration": 60, "openingHours": MUSEUM_HOURS})
    return knowledge


def test_rest_break_cannot_push_a_visit_past_closing():
    """
    Long fort visit, then a museum open 11:00-12:30.

    Laid out alone the museum fits at 11:15-12:15; the rest break that the
    fort's fatigue triggers would push it to 11:45-12:45.
    """
    stops = []
    for place in (HOTEL, FORT, MUSEUM):
        knowledge = _tight_museum_researcher(place, "Goa, India")
        stops.append((knowledge_to_place(knowledge), knowledge))

    activities, unscheduled = schedule_knowledge_day(stops, 1, False)

    assert [k.name for k in unscheduled] == ["Old Goa Museum"]
    assert [a.type for a in activities] == ["checkin", "meal", "visit", "rest", "meal", "meal"]
    assert activities[2].place.name == "Aguada Fort"


def test_research_path_respects_opening_hours_end_to_end():
    result = generate_itinerary_with_research(
        _input([HOTEL, FORT, MUSEUM]), pipeline=_research_pipeline(_tight_museum_researcher)
    )

    visited = [name for day in result.itinerary.days for name in _visits(day)]
    assert visited == ["Aguada Fort"]
    assert result.itinerary.summary.placesVisited == 1

    skipped = [r for r in result.itinerary.days[0].recommendations if r.name == "Old Goa Museum"]
    assert [r.reason for r in skipped] == ["Could not fit into day 1 schedule"]

    assert_itinerary_valid(result.itinerary, knowledge=result.knowledge)


def test_validator_flags_visits_outside_opening_hours():
    def researcher(place, region):
        return build_fallback_knowledge(place, region).model_copy(update={"researchConfidence": 0.9})

    result = generate_itinerary_with_research(
        _input([HOTEL, BASILICA, CATHEDRAL]), pipeline=_research_pipeline(researcher)
    )
    dawn_only = [
        k.model_copy(update={"openingHours": OpeningHours(open="05:00", close="06:00")})
        if k.name == BASILICA.name
        else k
        for k in result.knowledge
    ]

    report = validate_itinerary(result.itinerary, knowledge=dawn_only)

    assert not report["valid"]
    flagged = [v for v in report["violations"] if v["type"] == "outside_opening_hours"]
    assert [v["message"].split(" at ")[0] for v in flagged] == ["Basilica of Bom Jesus"]


def test_research_path_with_one_failed_lookup():
    def researcher(place, region):
        if place.name == CATHEDRAL.name:
            raise requests.exceptions.ConnectionError("search offline")
        return build_fallback_knowledge(place, region).model_copy(update={"researchConfidence": 0.9})

    result = generate_itinerary_with_research(
        _input([HOTEL, BASILICA, CATHEDRAL]), pipeline=_research_pipeline(researcher)
    )

    assert len(result.knowledge) == 3
    assert [o.status for o in result.outcomes] == ["ok", "ok", "degraded"]
    assert result.knowledge[2].researchConfidence <= 0.2
    assert all(k.researchConfidence == 0.9 for k in result.knowledge[:2])
    assert result.itinerary.summary.placesVisited == 2
    assert_itinerary_valid(result.itinerary, knowledge=result.knowledge)


if __name__ == "__main__":
    test_hotel_and_two_landmarks_over_two_days()
    test_no_geodata_falls_back()
    test_bad_dates_use_default_length()
    test_many_places_are_clustered_and_all_visited()
    test_generation_is_deterministic()
    test_regenerate_day_replaces_only_that_day()
    test_estimate()
    test_research_path_with_working_lookups()
    test_research_path_survives_failed_lookups()
    test_regenerated_first_day_carries_arrival_fatigue()
    test_rest_break_cannot_push_a_visit_past_closing()
    test_research_path_respects_opening_hours_end_to_end()
    test_validator_flags_visits_outside_opening_hours()
    test_research_path_with_one_failed_lookup()
