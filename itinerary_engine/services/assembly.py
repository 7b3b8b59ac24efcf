from typing import Iterable, List, Optional, Sequence

from itinerary_engine.schemas.itinerary import (
    Coords,
    DayItinerary,
    ItinerarySummary,
    Place,
    PlaceCategory,
    ScheduledActivity,
    TravelInfo,
)
from itinerary_engine.services.fatigue import (
    DEFAULT_FATIGUE_CONFIG,
    FatigueConfig,
    calculate_activity_fatigue,
    calculate_day_fatigue,
)
from itinerary_engine.services.geo import effective_coords, estimate_travel, haversine_distance_km
from itinerary_engine.services.time_slots import make_activity, reflow_activities, time_to_minutes

# Hops at or under this many minutes are not worth a travel entry
MIN_TRAVEL_MINUTES = 5

STOP_TYPES = {"visit", "checkin", "checkout"}
MISSING_PREFIX = "Missing "


def add_travel_segments(
    activities: List[ScheduledActivity], config: FatigueConfig = DEFAULT_FATIGUE_CONFIG
) -> List[ScheduledActivity]:
    """
    Insert travel entries between consecutive located stops of a day.

    A travel entry is placed right before the stop it leads to, and only
    when the hop takes longer than MIN_TRAVEL_MINUTES. The day is re-timed
    afterwards so nothing overlaps.
    """
    result: List[ScheduledActivity] = []
    prev_coords: Optional[Coords] = None

    for activity in activities:
        coords = effective_coords(activity.place) if activity.type in STOP_TYPES else None

        if coords is not None and prev_coords is not None and result:
            hop = estimate_travel(prev_coords, coords)
            if hop.duration > MIN_TRAVEL_MINUTES:
                travel = make_activity(
                    Place(name=f"Travel to {activity.place.name}", category="travel"),
                    activity.day,
                    time_to_minutes(result[-1].endTime),
                    hop.duration,
                    "travel",
                    PlaceCategory.DESTINATION,
                )
                travel.travelFromPrev = TravelInfo(
                    distance=round(hop.distance, 2), duration=hop.duration, mode=hop.mode
                )
                travel.fatigueImpact = calculate_activity_fatigue(travel, config)
                travel.estimatedCost = 0
                result.append(travel)

        if coords is not None:
            prev_coords = coords
        result.append(activity)

    return reflow_activities(result)


def _sequential_km(coords: Sequence[Coords]) -> float:
    return sum(haversine_distance_km(a, b) for a, b in zip(coords, coords[1:]))


def calculate_travel_distance(activities: Sequence[ScheduledActivity]) -> float:
    """Sum of travel entries, or the visit-to-visit distance when there are none."""
    travel = [a.travelFromPrev.distance for a in activities if a.type == "travel" and a.travelFromPrev]
    if travel:
        return round(sum(travel), 2)

    coords = [
        c for c in (effective_coords(a.place) for a in activities if a.type == "visit") if c is not None
    ]
    return round(_sequential_km(coords), 2)


def finalize_day_totals(day: DayItinerary) -> DayItinerary:
    day.totalFatigue = calculate_day_fatigue(day.activities)
    day.totalCost = sum(a.estimatedCost or 0 for a in day.activities)
    day.travelDistance = calculate_travel_distance(day.activities)
    return day


def build_route_polyline(days: Sequence[DayItinerary]) -> List[Coords]:
    """Visited coordinates in day order, then visit order."""
    route: List[Coords] = []
    for day in days:
        for activity in day.activities:
            if activity.type != "visit":
                continue
            coords = effective_coords(activity.place)
            if coords is not None:
                route.append(coords)
    return route


def missing_categories(days: Sequence[DayItinerary]) -> List[str]:
    found: List[str] = []
    for day in days:
        for rec in day.recommendations:
            if rec.reason.startswith(MISSING_PREFIX):
                category = rec.reason[len(MISSING_PREFIX):].split(":")[0].strip()
                if category and category not in found:
                    found.append(category)
    return found


def calculate_summary(
    days: Sequence[DayItinerary], route: Sequence[Coords], extra_missing: Iterable[str] = ()
) -> ItinerarySummary:
    missing = missing_categories(days)
    missing.extend(c for c in extra_missing if c not in missing)

    total_fatigue = sum(d.totalFatigue for d in days)
    return ItinerarySummary(
        totalDays=len(days),
        totalCost=sum(d.totalCost for d in days),
        placesVisited=sum(1 for d in days for a in d.activities if a.type == "visit"),
        distanceTraveled=round(_sequential_km(route), 2),
        averageFatiguePerDay=round(total_fatigue / len(days)) if days else 0,
        missingCategories=missing,
    )
