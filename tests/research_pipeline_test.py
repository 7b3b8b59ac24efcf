import requests

from itinerary_engine.schemas.itinerary import Coords, Place
from itinerary_engine.services.place_cache import PlaceKnowledgeCache
from itinerary_engine.services.place_research import (
    FALLBACK_CONFIDENCE,
    build_fallback_knowledge,
    parse_snippets,
)
from itinerary_engine.services.research_pipeline import (
    ResearchPipeline,
    estimate_research_seconds,
    should_use_research_pipeline,
)

REGION = "Goa, India"
PLACES = [
    Place(name="Aguada Fort", coordinates=Coords(lat=15.492, lng=73.7737)),
    Place(name="Se Cathedral", coordinates=Coords(lat=15.5039, lng=73.9124)),
    Place(name="Baga Beach"),
]


class FakeResearcher:
    def __init__(self):
        self.calls = []

    def __call__(self, place, region):
        self.calls.append(place.name)
        knowledge = build_fallback_knowledge(place, region)
        return knowledge.model_copy(update={"researchConfidence": 0.9, "description": f"About {place.name}"})


def failing_researcher(place, region):
    raise requests.exceptions.ConnectionError("search offline")


def _pipeline(researcher, sleeps=None, cache=None):
    sleeps = sleeps if sleeps is not None else []
    return ResearchPipeline(
        researcher=researcher,
        cache=cache if cache is not None else PlaceKnowledgeCache(),
        delay_seconds=0.5,
        sleep=sleeps.append,
    )


def test_failed_lookups_degrade_but_never_abort():
    outcomes = _pipeline(failing_researcher).research_with_outcomes(PLACES, REGION)

    assert len(outcomes) == len(PLACES)
    assert [o.knowledge.name for o in outcomes] == [p.name for p in PLACES]
    assert all(o.is_degraded for o in outcomes)
    assert all(o.knowledge.researchConfidence <= FALLBACK_CONFIDENCE for o in outcomes)
    assert "ConnectionError" in outcomes[0].reason

    # Unlocated place falls back to the region centre
    assert outcomes[2].knowledge.coordinates == Coords(lat=15.4909, lng=73.8278)


def test_degraded_results_are_not_cached():
    cache = PlaceKnowledgeCache()
    _pipeline(failing_researcher, cache=cache).research(PLACES, REGION)
    assert cache.stats()["entries"] == 0


def test_delay_only_between_real_lookups():
    sleeps = []
    _pipeline(FakeResearcher(), sleeps).research(PLACES, REGION)
    assert sleeps == [0.5, 0.5]

    cache = PlaceKnowledgeCache()
    cache.set("Se Cathedral", build_fallback_knowledge(PLACES[1], REGION))
    sleeps = []
    researcher = FakeResearcher()
    outcomes = _pipeline(researcher, sleeps, cache).research_with_outcomes(PLACES, REGION)

    assert researcher.calls == ["Aguada Fort", "Baga Beach"]
    assert [o.status for o in outcomes] == ["ok", "cached", "ok"]
    assert sleeps == [0.5]


def test_second_run_hits_cache():
    cache = PlaceKnowledgeCache()
    researcher = FakeResearcher()
    pipeline = _pipeline(researcher, cache=cache)

    pipeline.research(PLACES, REGION)
    outcomes = pipeline.research_with_outcomes(PLACES, REGION)

    assert len(researcher.calls) == 3
    assert all(o.status == "cached" for o in outcomes)

    fresh = pipeline.research_with_outcomes(PLACES, REGION, use_cache=False)
    assert all(o.status == "ok" for o in fresh)
    assert len(researcher.calls) == 6


def test_progress_events():
    events = []
    _pipeline(FakeResearcher()).research(PLACES[:1], REGION, on_progress=events.append)

    assert [e.stage for e in events] == ["searching", "extracting", "complete"]
    assert events[-1].percent == 100
    assert events[0].placeName == "Aguada Fort"
    assert all(e.totalPlaces == 1 for e in events)

    events = []
    _pipeline(FakeResearcher()).research(PLACES, REGION, on_progress=events.append)
    percents = [e.percent for e in events]
    assert percents == sorted(percents)


def test_snippet_parsing():
    info = parse_snippets([
        "Open 9:30 am - 5:30 pm. Entry fee: Rs. 1,200 per person.",
        "Rated 4.6/5 from 2,345 reviews",
    ])

    assert info["openingHours"].open == "09:30"
    assert info["openingHours"].close == "17:30"
    assert info["entryFee"] == 1200
    assert info["rating"] == 4.6
    assert info["reviewCount"] == 2345

    assert parse_snippets(["Free entry for all visitors"])["entryFee"] == 0
    assert parse_snippets([]) == {}


def test_estimates():
    assert estimate_research_seconds(0) == 0
    assert estimate_research_seconds(3, 0.5) == 10

    assert should_use_research_pipeline([])["recommended"] is False
    assert should_use_research_pipeline(PLACES)["estimatedTime"] == "9 seconds"

    preview = _pipeline(FakeResearcher()).estimate_places(PLACES)
    assert preview["needsResearch"] == 3
    assert preview["hasMeals"] is False
    assert preview["totalDuration"] == 120 + 90 + 180


def test_one_failed_lookup_among_working_ones():
    researcher = FakeResearcher()

    def flaky(place, region):
        if place.name == "Se Cathedral":
            raise requests.exceptions.Timeout("lookup timed out")
        return researcher(place, region)

    cache = PlaceKnowledgeCache()
    outcomes = _pipeline(flaky, cache=cache).research_with_outcomes(PLACES, REGION)

    assert len(outcomes) == len(PLACES)
    assert [o.status for o in outcomes] == ["ok", "degraded", "ok"]
    assert outcomes[1].knowledge.name == "Se Cathedral"
    assert outcomes[1].knowledge.researchConfidence <= FALLBACK_CONFIDENCE
    assert "Timeout" in outcomes[1].reason
    assert outcomes[0].knowledge.researchConfidence == 0.9
    assert researcher.calls == ["Aguada Fort", "Baga Beach"]

    # Only the working lookups are cached
    assert cache.stats()["entries"] == 2


if __name__ == "__main__":
    test_failed_lookups_degrade_but_never_abort()
    test_degraded_results_are_not_cached()
    test_delay_only_between_real_lookups()
    test_second_run_hits_cache()
    test_progress_events()
    test_snippet_parsing()
    test_estimates()
    test_one_failed_lookup_among_working_ones()
