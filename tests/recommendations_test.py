from datetime import datetime, timezone

from itinerary_engine.schemas.itinerary import Coords, Place, PlaceCategory, PlaceRecommendation
from itinerary_engine.schemas.research import NearbyPlace
from itinerary_engine.services.place_research import build_fallback_knowledge
from itinerary_engine.services.recommendations import (
    build_category_recommendations,
    build_recommendations,
    check_regional_coverage,
    detect_category_imbalance,
    detect_missing_categories,
    distribute_recommendations,
)

GOA = "Goa, India"
CENTER = Coords(lat=15.4909, lng=73.8278)


def _place(name, lat=15.5, lng=73.83, category=None):
    return Place(name=name, category=category, coordinates=Coords(lat=lat, lng=lng))


def test_missing_categories():
    landmarks = [_place("Se Cathedral"), _place("Old Goa Museum")]
    assert detect_missing_categories(landmarks) == [PlaceCategory.ACCOMMODATION, PlaceCategory.RESTAURANT]

    generic = [_place("Somewhere"), _place("Elsewhere")]
    assert detect_missing_categories(generic) == [
        PlaceCategory.ACCOMMODATION, PlaceCategory.RESTAURANT, PlaceCategory.BEACH,
    ]

    complete = [_place("Sea View Hotel"), _place("Cafe Bodega"), _place("Baga Beach")]
    assert detect_missing_categories(complete) == []


def test_category_recommendations_are_enriched():
    recs = build_category_recommendations(
        [PlaceCategory.ACCOMMODATION, PlaceCategory.BEACH], CENTER, GOA
    )

    assert [r.type for r in recs] == ["accommodation", "beach"]
    assert all(r.reason == f"Missing {r.type}" for r in recs)
    assert all(r.mapUrl and r.googleMapsUrl for r in recs)
    assert recs[1].name in ("Baga Beach", "Palolem Beach")
    assert recs[1].distance > 0


def test_knowledge_restaurants_win_over_catalogue():
    knowledge = build_fallback_knowledge(_place("Aguada Fort"), GOA, datetime(2025, 1, 1, tzinfo=timezone.utc))
    knowledge.nearbyRestaurants = [NearbyPlace(name="Fisherman's Wharf", rating=4.5)]

    recs = build_category_recommendations([PlaceCategory.RESTAURANT], CENTER, GOA, [knowledge])

    assert len(recs) == 1
    assert recs[0].name == "Fisherman's Wharf"
    assert recs[0].coordinates == knowledge.coordinates
    assert recs[0].score == 0.9


def test_regional_coverage_north_only():
    north = [_place(f"North Spot {i}", 15.55 + i * 0.01, 73.76) for i in range(3)]
    rec = check_regional_coverage(north, GOA)

    assert rec is not None
    assert rec.name == "South Goa Beaches"

    mixed = north[:2] + [_place("South Spot", 15.1, 74.0)]
    assert check_regional_coverage(mixed, GOA) is None
    assert check_regional_coverage(north[:2], GOA) is None
    assert check_regional_coverage(north, "Coorg, Karnataka, India") is None


def test_imbalance_and_full_build():
    history = [_place(n) for n in ("Se Cathedral", "Old Goa Museum", "Aguada Fort", "Reis Magos Fort")]
    imbalance = detect_category_imbalance(history)
    assert imbalance[0]["category"] == PlaceCategory.BEACH

    night_area = [_place("Baga Shack Stay"), _place("Anjuna Market", category="market")]
    assert PlaceCategory.NIGHTLIFE in [i["category"] for i in detect_category_imbalance(night_area)]

    recs = build_recommendations(history, CENTER, GOA)
    reasons = [r.reason for r in recs]
    assert "Missing accommodation" in reasons
    assert "Missing restaurant" in reasons
    assert any(r.type == "beach" for r in recs)


def test_distribute_round_robin():
    recs = [
        PlaceRecommendation(name=f"Rec {i}", type="beach", coordinates=CENTER, reason="x", score=0.5)
        for i in range(5)
    ]
    buckets = distribute_recommendations(recs, 2)

    assert [len(b) for b in buckets] == [3, 2]
    assert buckets[0][0].name == "Rec 0"
    assert len(distribute_recommendations(recs, 0)) == 1


if __name__ == "__main__":
    test_missing_categories()
    test_category_recommendations_are_enriched()
    test_knowledge_restaurants_win_over_catalogue()
    test_regional_coverage_north_only()
    test_imbalance_and_full_build()
    test_distribute_round_robin()
