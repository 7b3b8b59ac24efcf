from typing import Dict, List, Optional, Sequence

from itinerary_engine.schemas.itinerary import Coords, Place, PlaceCategory, PlaceRecommendation
from itinerary_engine.schemas.research import NearbyPlace, PlaceKnowledge
from itinerary_engine.services.categories import classify_place
from itinerary_engine.services.geo import effective_coords, haversine_distance_km
from itinerary_engine.services.regions import REGIONS
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)


# Configuration

REQUIRED_CATEGORIES = [PlaceCategory.ACCOMMODATION, PlaceCategory.RESTAURANT]
RECOMMENDED_CATEGORIES = [PlaceCategory.BEACH, PlaceCategory.LANDMARK, PlaceCategory.ACTIVITY]

MISSING_SCORE = 0.8
REGIONAL_SCORE = 0.7
VARIETY_SCORE = 0.6

OSM_URL = "https://www.openstreetmap.org/?mlat={lat}&mlon={lng}&zoom=16"
GOOGLE_MAPS_URL = "https://www.google.com/maps/search/?api=1&query={lat},{lng}"

NIGHTLIFE_AREAS = ("baga", "anjuna", "calangute", "candolim")

# Sub-areas of a destination checked for coverage
SUB_REGIONS: Dict[str, Dict] = {
    "Goa, India": {
        "bounds": ((14.85, 73.60), (15.85, 74.35)),
        "dividing_lat": 15.4,
        "north": {
            "name": "North Goa Beaches",
            "coordinates": Coords(lat=15.5553, lng=73.7517),
            "reason": "All places are in South Goa. Consider North Goa for more vibrant beaches and nightlife.",
        },
        "south": {
            "name": "South Goa Beaches",
            "coordinates": Coords(lat=15.0100, lng=74.0230),
            "reason": "All places are in North Goa. Consider exploring South Goa for a quieter experience.",
        },
    },
}

# Well-known picks per region used when research has not surfaced any
REGIONAL_CATALOGUE: Dict[str, Dict[PlaceCategory, List[Dict]]] = {
    "Goa, India": {
        PlaceCategory.BEACH: [
            {"name": "Baga Beach", "coordinates": Coords(lat=15.5553, lng=73.7517)},
            {"name": "Palolem Beach", "coordinates": Coords(lat=15.0100, lng=74.0230)},
        ],
        PlaceCategory.RESTAURANT: [
            {"name": "Fontainhas Latin Quarter cafes", "coordinates": Coords(lat=15.4989, lng=73.8335)},
        ],
        PlaceCategory.LANDMARK: [
            {"name": "Basilica of Bom Jesus", "coordinates": Coords(lat=15.5009, lng=73.9116)},
        ],
        PlaceCategory.FORT: [
            {"name": "Aguada Fort", "coordinates": Coords(lat=15.4920, lng=73.7737)},
        ],
        PlaceCategory.NIGHTLIFE: [
            {"name": "Tito's Lane", "coordinates": Coords(lat=15.5531, lng=73.7528)},
        ],
        PlaceCategory.ACTIVITY: [
            {"name": "Anjuna Flea Market", "coordinates": Coords(lat=15.5735, lng=73.7407)},
        ],
    },
}

CATALOGUE_MAX_KM = 60.0
GENERIC_OFFSET_DEG = 0.01


# Detection


def detect_missing_categories(places: Sequence[Place]) -> List[PlaceCategory]:
    present = {classify_place(p) for p in places}
    missing = [c for c in REQUIRED_CATEGORIES if c not in present]

    if not any(c in present for c in RECOMMENDED_CATEGORIES) and len(places) >= 2:
        missing.append(PlaceCategory.BEACH)

    return missing


def detect_category_imbalance(places: Sequence[Place]) -> List[Dict]:
    """Variety hints: heavy on history with no beach, or nightlife areas without nightlife."""
    counts: Dict[PlaceCategory, int] = {}
    for place in places:
        category = classify_place(place)
        counts[category] = counts.get(category, 0) + 1

    imbalances = []
    historic = counts.get(PlaceCategory.FORT, 0) + counts.get(PlaceCategory.LANDMARK, 0)
    if historic > 3 and not counts.get(PlaceCategory.BEACH):
        imbalances.append({
            "category": PlaceCategory.BEACH,
            "count": historic,
            "suggestion": "Lots of historical sites! Consider adding a beach for variety.",
        })

    near_nightlife = any(area in p.name.lower() for p in places for area in NIGHTLIFE_AREAS)
    if near_nightlife and not counts.get(PlaceCategory.NIGHTLIFE):
        imbalances.append({
            "category": PlaceCategory.NIGHTLIFE,
            "count": 0,
            "suggestion": "You're near popular nightlife spots! Consider exploring the local bar scene.",
        })

    return imbalances


def check_regional_coverage(
    places: Sequence[Place], region: Optional[str] = None
) -> Optional[PlaceRecommendation]:
    """
    Single nudge when a known destination's north or south is unrepresented.

    Only applies when at least 3 places fall inside the destination's bounds.
    """
    for label, info in SUB_REGIONS.items():
        if region and region != label:
            continue

        (south_lat, west_lng), (north_lat, east_lng) = info["bounds"]
        inside = [
            c for c in (effective_coords(p) for p in places)
            if c is not None and south_lat <= c.lat <= north_lat and west_lng <= c.lng <= east_lng
        ]
        if len(inside) < 3:
            continue

        has_north = any(c.lat > info["dividing_lat"] for c in inside)
        has_south = any(c.lat <= info["dividing_lat"] for c in inside)
        if has_north and has_south:
            return None

        target = info["south"] if has_north else info["north"]
        return PlaceRecommendation(
            name=target["name"],
            type=PlaceCategory.BEACH.value,
            coordinates=target["coordinates"],
            reason=target["reason"],
            score=REGIONAL_SCORE,
        )

    return None


# Building


def enrich_recommendation(rec: PlaceRecommendation, centroid: Coords) -> PlaceRecommendation:
    lat, lng = rec.coordinates.lat, rec.coordinates.lng
    rec.distance = round(haversine_distance_km(centroid, rec.coordinates), 2)
    rec.mapUrl = OSM_URL.format(lat=lat, lng=lng)
    rec.googleMapsUrl = GOOGLE_MAPS_URL.format(lat=lat, lng=lng)
    return rec


def _from_nearby(nearby: NearbyPlace, category: PlaceCategory, fallback: Coords, note: str) -> PlaceRecommendation:
    return PlaceRecommendation(
        name=nearby.name,
        type=category.value,
        coordinates=nearby.coordinates or fallback,
        reason=f"Missing {category.value}",
        score=nearby.rating / 5 if nearby.rating else 0.7,
        description=note,
    )


def recommendations_from_knowledge(
    knowledge: Sequence[PlaceKnowledge], missing: Sequence[PlaceCategory]
) -> List[PlaceRecommendation]:
    """Fill missing categories from places discovered during research."""
    recs: List[PlaceRecommendation] = []
    for category in missing:
        for record in knowledge:
            if category == PlaceCategory.RESTAURANT and record.nearbyRestaurants:
                recs.append(_from_nearby(
                    record.nearbyRestaurants[0], category, record.coordinates,
                    f"Popular restaurant near {record.name}",
                ))
                break
            matches = [
                a for a in record.nearbyAttractions
                if classify_place(Place(name=a.name, category=a.type)) == category
            ]
            if category != PlaceCategory.RESTAURANT and matches:
                recs.append(_from_nearby(
                    matches[0], category, record.coordinates,
                    f"Attraction near {record.name}",
                ))
                break
    return recs


def _catalogue_pick(category: PlaceCategory, centroid: Coords, region: Optional[str]) -> Optional[Dict]:
    candidates = []
    for label, entries in REGIONAL_CATALOGUE.items():
        if region in REGIONS and region != label:
            continue
        candidates.extend(entries.get(category, []))

    if not candidates:
        return None
    best = min(candidates, key=lambda e: haversine_distance_km(centroid, e["coordinates"]))
    if haversine_distance_km(centroid, best["coordinates"]) > CATALOGUE_MAX_KM:
        return None
    return best


def build_category_recommendations(
    missing: Sequence[PlaceCategory],
    centroid: Coords,
    region: Optional[str] = None,
    knowledge: Sequence[PlaceKnowledge] = (),
) -> List[PlaceRecommendation]:
    """
    One recommendation per missing category near the trip centroid.

    Sources, in order: research knowledge, the regional catalogue, then a
    generic search suggestion just off the centroid.
    """
    recs = recommendations_from_knowledge(knowledge, missing)
    covered = {r.type for r in recs}
    area = (region or "the area").split(",")[0]

    for category in missing:
        if category.value in covered:
            continue

        pick = _catalogue_pick(category, centroid, region)
        if pick is not None:
            rec = PlaceRecommendation(
                name=pick["name"],
                type=category.value,
                coordinates=pick["coordinates"],
                reason=f"Missing {category.value}",
                score=MISSING_SCORE,
            )
        else:
            rec = PlaceRecommendation(
                name=f"{category.value.title()} near {area}",
                type=category.value,
                coordinates=Coords(lat=centroid.lat + GENERIC_OFFSET_DEG, lng=centroid.lng + GENERIC_OFFSET_DEG),
                reason=f"Missing {category.value}",
                score=MISSING_SCORE - 0.2,
                description=f"Search for a {category.value} close to your other stops",
            )
        recs.append(rec)

    return [enrich_recommendation(r, centroid) for r in recs]


def build_recommendations(
    places: Sequence[Place],
    centroid: Coords,
    region: Optional[str] = None,
    knowledge: Sequence[PlaceKnowledge] = (),
) -> List[PlaceRecommendation]:
    """Missing-category, regional and variety recommendations for a trip."""
    missing = detect_missing_categories(places)
    recs = build_category_recommendations(missing, centroid, region, knowledge)

    regional = check_regional_coverage(places, region)
    if regional is not None:
        recs.append(enrich_recommendation(regional, centroid))

    suggested = {r.type for r in recs}
    for imbalance in detect_category_imbalance(places):
        category = imbalance["category"]
        if category.value in suggested:
            continue
        pick = _catalogue_pick(category, centroid, region)
        if pick is None:
            continue
        recs.append(enrich_recommendation(
            PlaceRecommendation(
                name=pick["name"],
                type=category.value,
                coordinates=pick["coordinates"],
                reason=imbalance["suggestion"],
                score=VARIETY_SCORE,
            ),
            centroid,
        ))

    logger.debug("Built %d recommendations (missing: %s)", len(recs), [c.value for c in missing])
    return recs


def distribute_recommendations(
    recs: Sequence[PlaceRecommendation], num_days: int
) -> List[List[PlaceRecommendation]]:
    """Round-robin recommendations over days; day 1 gets the first."""
    buckets: List[List[PlaceRecommendation]] = [[] for _ in range(max(1, num_days))]
    for idx, rec in enumerate(recs):
        buckets[idx % len(buckets)].append(rec)
    return buckets
