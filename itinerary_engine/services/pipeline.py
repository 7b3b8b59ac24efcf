from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from itinerary_engine.schemas.itinerary import (
    Budget,
    DayItinerary,
    GeneratedItinerary,
    ItineraryInput,
    Place,
    PlaceCategory,
    PlaceRecommendation,
    ScheduledActivity,
)
from itinerary_engine.schemas.research import PlaceKnowledge, ResearchedItinerary
from itinerary_engine.services.assembly import (
    add_travel_segments,
    build_route_polyline,
    calculate_summary,
    finalize_day_totals,
)
from itinerary_engine.services.categories import is_accommodation
from itinerary_engine.services.clustering import (
    cluster_places_by_proximity,
    distribute_across_days,
    sequential_distance,
)
from itinerary_engine.services.costs import (
    DEFAULT_COST_CONFIG,
    CostConfig,
    apply_cost_estimates,
    estimate_activity_cost,
)
from itinerary_engine.services.fatigue import (
    DEFAULT_FATIGUE_CONFIG,
    FatigueConfig,
    adjust_first_day_fatigue,
    apply_fatigue_values,
    balance_fatigue_across_days,
    insert_rest_breaks,
)
from itinerary_engine.services.geo import (
    DEFAULT_CENTER,
    calculate_centroid,
    effective_coords,
    geocoded,
)
from itinerary_engine.services.place_research import knowledge_to_place
from itinerary_engine.services.recommendations import (
    build_category_recommendations,
    build_recommendations,
    distribute_recommendations,
)
from itinerary_engine.services.regions import detect_region, detect_regions, region_center
from itinerary_engine.services.research_pipeline import (
    ProgressCallback,
    ResearchPipeline,
    should_use_research_pipeline,
)
from itinerary_engine.services.route_optimizer import optimize_visit_order
from itinerary_engine.services.smart_scheduler import (
    build_knowledge_day,
    distribute_by_geography,
    enforce_opening_hours,
)
from itinerary_engine.services.time_slots import assign_time_slots
from itinerary_engine.services.transformers import calculate_num_days, get_date_for_day
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)

FALLBACK_MISSING = [PlaceCategory.ACCOMMODATION, PlaceCategory.RESTAURANT, PlaceCategory.BEACH]
UNSCHEDULED_SCORE = 0.5


# Helpers


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _empty_days(start: str, num_days: int) -> List[DayItinerary]:
    return [
        DayItinerary(day=n, date=get_date_for_day(start, n))
        for n in range(1, num_days + 1)
    ]


def split_places_by_day(places: Sequence[Place], num_days: int) -> List[List[Place]]:
    """
    Even distribution for small sets, proximity clustering otherwise.

    Always returns `num_days` lists (trailing days may be empty).
    """
    if len(places) <= 2 * num_days:
        return distribute_across_days(places, num_days)

    buckets = [c.places for c in cluster_places_by_proximity(places, num_days)]
    buckets.extend([] for _ in range(num_days - len(buckets)))
    return buckets


def schedule_day(
    places: Sequence[Place],
    day_number: int,
    is_last_day: bool,
    fatigue_config: FatigueConfig = DEFAULT_FATIGUE_CONFIG,
) -> List[ScheduledActivity]:
    """Route, time-slot and pace one day's places."""
    route = optimize_visit_order(places)
    activities = assign_time_slots(route.places, day_number, is_last_day)
    apply_fatigue_values(activities, fatigue_config)
    return insert_rest_breaks(activities, fatigue_config)


def schedule_knowledge_day(
    stops: Sequence[Tuple[Place, PlaceKnowledge]],
    day_number: int,
    is_last_day: bool,
    fatigue_config: FatigueConfig = DEFAULT_FATIGUE_CONFIG,
) -> Tuple[List[ScheduledActivity], List[PlaceKnowledge]]:
    """Knowledge-aware layout and pacing; rests can push visits out of their windows, so re-check."""
    activities, unscheduled = build_knowledge_day(stops, day_number, is_last_day)
    apply_fatigue_values(activities, fatigue_config)
    activities = insert_rest_breaks(activities, fatigue_config)

    activities, late = enforce_opening_hours(activities, {k.name.lower(): k for _, k in stops})
    return activities, unscheduled + late


def recheck_opening_hours(
    day: DayItinerary,
    knowledge_by_name: Dict[str, PlaceKnowledge],
    fatigue_config: FatigueConfig = DEFAULT_FATIGUE_CONFIG,
) -> List[PlaceKnowledge]:
    """
    Final window check once cross-day moves and travel entries re-timed a day.

    Dropped visits take their travel entry with them; travel is then rebuilt
    between the remaining stops and the day re-checked until nothing moves.
    """
    dropped_all: List[PlaceKnowledge] = []
    while True:
        activities, dropped = enforce_opening_hours(day.activities, knowledge_by_name, relocate=False)
        if not dropped:
            break
        dropped_all.extend(dropped)
        stops = [a for a in activities if a.type != "travel"]
        day.activities = add_travel_segments(stops, fatigue_config)

    if dropped_all:
        finalize_day_totals(day)
    return dropped_all


def _unscheduled_recommendation(knowledge: PlaceKnowledge, day_number: int) -> PlaceRecommendation:
    return PlaceRecommendation(
        name=knowledge.name,
        type=knowledge.type,
        coordinates=knowledge.coordinates,
        reason=f"Could not fit into day {day_number} schedule",
        score=UNSCHEDULED_SCORE,
        description=knowledge.description or None,
    )


def finalize_days(
    days: List[DayItinerary],
    budget: Optional[Budget],
    members: Sequence[str],
    fatigue_config: FatigueConfig = DEFAULT_FATIGUE_CONFIG,
    cost_config: CostConfig = DEFAULT_COST_CONFIG,
) -> List[DayItinerary]:
    """Cross-day fatigue passes, then travel, costs and totals per day."""
    balance_fatigue_across_days(days, fatigue_config)
    adjust_first_day_fatigue(days, fatigue_config)

    for day in days:
        day.activities = add_travel_segments(day.activities, fatigue_config)
        apply_cost_estimates(day.activities, budget, len(days), members, cost_config)
        finalize_day_totals(day)
    return days


def _attach_recommendations(days: List[DayItinerary], recs: Sequence[PlaceRecommendation]) -> None:
    for day, bucket in zip(days, distribute_recommendations(recs, len(days))):
        day.recommendations.extend(bucket)


def _assemble(days: List[DayItinerary]) -> GeneratedItinerary:
    route = build_route_polyline(days)
    return GeneratedItinerary(
        days=days,
        route=route,
        summary=calculate_summary(days, route),
        generatedAt=_now_iso(),
    )


def build_fallback_itinerary(itinerary_input: ItineraryInput, num_days: int) -> GeneratedItinerary:
    """Empty days plus first-day suggestions, for trips with no located places."""
    region = detect_region(itinerary_input.places)
    center = region_center(region) or DEFAULT_CENTER

    days = _empty_days(itinerary_input.dates.start, num_days)
    days[0].recommendations = build_category_recommendations(FALLBACK_MISSING, center, region)

    route: List = []
    summary = calculate_summary(days, route, extra_missing=[c.value for c in FALLBACK_MISSING])
    return GeneratedItinerary(days=days, route=route, summary=summary, generatedAt=_now_iso())


# Pipelines


def generate_itinerary(
    itinerary_input: ItineraryInput,
    fatigue_config: Optional[FatigueConfig] = None,
    cost_config: Optional[CostConfig] = None,
) -> GeneratedItinerary:
    """
    Build a multi-day itinerary straight from the input places.

    Flow:
    1. Day count from dates (inclusive, 3-day fallback)
    2. Keep located places; fall back to an empty plan if there are none
    3. Split places over days (even split or proximity clusters)
    4. Per day: route -> time slots -> fatigue -> rest breaks
    5. Cross-day: balance -> arrival day -> travel -> costs -> totals
    6. Recommendations, route polyline and summary

    Args:
        itinerary_input: Places, dates, optional budget and members
        fatigue_config: Fatigue tuning override
        cost_config: Cost tuning override

    Returns:
        GeneratedItinerary
    """
    fatigue_config = fatigue_config or DEFAULT_FATIGUE_CONFIG
    cost_config = cost_config or DEFAULT_COST_CONFIG

    num_days = calculate_num_days(itinerary_input.dates)
    located = geocoded(itinerary_input.places)
    logger.info(
        f"Generating itinerary: {num_days} days, "
        f"{len(located)}/{len(itinerary_input.places)} located places"
    )

    if not located:
        logger.warning("No places with coordinates, returning fallback itinerary")
        return build_fallback_itinerary(itinerary_input, num_days)

    days = _empty_days(itinerary_input.dates.start, num_days)
    for day, places in zip(days, split_places_by_day(located, num_days)):
        day.activities = schedule_day(places, day.day, day.day == num_days, fatigue_config)

    finalize_days(days, itinerary_input.budget, itinerary_input.members, fatigue_config, cost_config)

    region = detect_region(located)
    centroid = calculate_centroid([effective_coords(p) for p in located])
    _attach_recommendations(days, build_recommendations(located, centroid, region))

    itinerary = _assemble(days)
    logger.info(
        f"Itinerary ready: {itinerary.summary.placesVisited} visits, "
        f"{itinerary.summary.distanceTraveled} km"
    )
    return itinerary


def generate_itinerary_with_research(
    itinerary_input: ItineraryInput,
    pipeline: Optional[ResearchPipeline] = None,
    region: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    use_cache: bool = True,
    fatigue_config: Optional[FatigueConfig] = None,
    cost_config: Optional[CostConfig] = None,
) -> ResearchedItinerary:
    """
    Research-first variant: enrich every place, then schedule from knowledge.

    Flow:
    1. Research every place (cache, lookups, degraded fallbacks)
    2. Pack non-lodging places into days by geography and time budget
    3. Per day: route -> knowledge-aware layout -> fatigue -> rests -> window check
    4. Cross-day passes as in generate_itinerary, then a last window check

    Research never fails the call; places whose lookup failed are scheduled
    from low-confidence fallback knowledge. Places that cannot fit become
    "Could not fit" recommendations on their day.
    """
    fatigue_config = fatigue_config or DEFAULT_FATIGUE_CONFIG
    cost_config = cost_config or DEFAULT_COST_CONFIG
    pipeline = pipeline or ResearchPipeline()

    num_days = calculate_num_days(itinerary_input.dates)
    region = region or detect_region(itinerary_input.places)

    outcomes = pipeline.research_with_outcomes(
        itinerary_input.places, region, use_cache=use_cache, on_progress=on_progress
    )
    knowledge = [o.knowledge for o in outcomes]

    if not knowledge:
        return ResearchedItinerary(
            itinerary=build_fallback_itinerary(itinerary_input, num_days),
            knowledge=[],
            outcomes=[],
        )

    places = [knowledge_to_place(k) for k in knowledge]
    lookup = {id(k): p for p, k in zip(places, knowledge)}
    by_place = {id(p): k for p, k in zip(places, knowledge)}
    knowledge_by_name = {k.name.lower(): k for k in knowledge}

    anchor = next((k for k in knowledge if is_accommodation(lookup[id(k)])), None)
    visitable = [k for k in knowledge if k is not anchor]

    days = _empty_days(itinerary_input.dates.start, num_days)
    for day, bucket in zip(days, distribute_by_geography(visitable, num_days)):
        if not bucket:
            continue
        day_places = [lookup[id(k)] for k in ([anchor] if anchor else []) + bucket]
        route = optimize_visit_order(day_places)
        stops = [(p, by_place[id(p)]) for p in route.places]
        day.activities, unscheduled = schedule_knowledge_day(
            stops, day.day, day.day == num_days, fatigue_config
        )
        day.recommendations.extend(_unscheduled_recommendation(k, day.day) for k in unscheduled)

    finalize_days(days, itinerary_input.budget, itinerary_input.members, fatigue_config, cost_config)
    for day in days:
        late = recheck_opening_hours(day, knowledge_by_name, fatigue_config)
        day.recommendations.extend(_unscheduled_recommendation(k, day.day) for k in late)

    centroid = calculate_centroid([k.coordinates for k in knowledge])
    _attach_recommendations(days, build_recommendations(places, centroid, region, knowledge))

    itinerary = _assemble(days)
    logger.info(
        f"Research itinerary ready: {itinerary.summary.placesVisited} visits, "
        f"{sum(1 for o in outcomes if o.is_degraded)} degraded places"
    )
    return ResearchedItinerary(itinerary=itinerary, knowledge=knowledge, outcomes=outcomes)


# Utilities


def estimate_itinerary(
    itinerary_input: ItineraryInput, cost_config: Optional[CostConfig] = None
) -> Dict:
    """Cheap preview without scheduling: counts, rough distance and spend."""
    cost_config = cost_config or DEFAULT_COST_CONFIG
    num_days = calculate_num_days(itinerary_input.dates)
    located = geocoded(itinerary_input.places)

    estimated_cost = 0
    for day_number, places in enumerate(split_places_by_day(located, num_days) if located else [], start=1):
        for activity in assign_time_slots(places, day_number, day_number == num_days):
            estimated_cost += estimate_activity_cost(
                activity, itinerary_input.budget, num_days, itinerary_input.members, cost_config
            )

    return {
        "numDays": num_days,
        "numPlaces": len(located),
        "unlocatedPlaces": len(itinerary_input.places) - len(located),
        "hasAccommodation": any(is_accommodation(p) for p in located),
        "regions": detect_regions(itinerary_input.places),
        "estimatedDistance": round(sequential_distance(located), 2),
        "estimatedCost": estimated_cost,
        "research": should_use_research_pipeline(itinerary_input.places),
    }


def regenerate_day(
    itinerary: GeneratedItinerary,
    day_number: int,
    places: Sequence[Place],
    budget: Optional[Budget] = None,
    members: Sequence[str] = (),
    fatigue_config: Optional[FatigueConfig] = None,
    cost_config: Optional[CostConfig] = None,
) -> GeneratedItinerary:
    """
    Rebuild one day from new places, keeping every other day as is.

    Returns a new itinerary; the input itinerary is not modified. A rebuilt
    day 1 carries the arrival fatigue again but never pushes visits to day 2.

    Raises:
        ValueError: if day_number is not part of the itinerary
    """
    fatigue_config = fatigue_config or DEFAULT_FATIGUE_CONFIG
    cost_config = cost_config or DEFAULT_COST_CONFIG

    updated = itinerary.model_copy(deep=True)
    index = next((i for i, d in enumerate(updated.days) if d.day == day_number), None)
    if index is None:
        raise ValueError(f"Day {day_number} is not part of this itinerary")

    old = updated.days[index]
    day = DayItinerary(day=day_number, date=old.date, recommendations=old.recommendations)
    day.activities = schedule_day(
        geocoded(places), day_number, day_number == len(updated.days), fatigue_config
    )
    if day_number == 1:
        # Arrival tiredness only; the other days stay untouched
        adjust_first_day_fatigue([day], fatigue_config)
    day.activities = add_travel_segments(day.activities, fatigue_config)
    apply_cost_estimates(day.activities, budget, len(updated.days), members, cost_config)
    finalize_day_totals(day)

    updated.days[index] = day
    updated.route = build_route_polyline(updated.days)
    updated.summary = calculate_summary(updated.days, updated.route)
    updated.generatedAt = _now_iso()
    return updated
