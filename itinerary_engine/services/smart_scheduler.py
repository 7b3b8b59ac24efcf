"""
Knowledge-aware day building for the research-first path.

Packs researched places into days by geography and time budget, then uses
opening hours, typical durations, best-time hints and crowd peaks to lay
out each day. Meals and snack stops are named after restaurants discovered
near the day's stops. Output activities follow the same conventions as
time_slots.assign_time_slots, so the shared fatigue, travel and cost stages
apply unchanged.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from itinerary_engine.schemas.itinerary import (
    CrowdLevel,
    Place,
    PlaceCategory,
    ScheduledActivity,
)
from itinerary_engine.schemas.research import NearbyPlace, PlaceKnowledge
from itinerary_engine.services.categories import classify_place, classify_type
from itinerary_engine.services.geo import calculate_centroid, distance_matrix, haversine_distance_km
from itinerary_engine.services.time_slots import (
    DEFAULT_DURATIONS,
    MINUTES_PER_DAY,
    activity_timeline,
    anchor_type,
    format_minutes,
    make_activity,
    meal_place,
    reflow_activities,
    time_to_minutes,
)
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)


# Day shape

ANCHOR_AT = 7 * 60
MORNING_START = 8 * 60
DAY_END = 23 * 60
ACTIVITY_BUFFER_MIN = 15

SLOT_START: Dict[str, int] = {
    "morning": MORNING_START,
    "afternoon": 14 * 60,
    "evening": 17 * 60,
    "night": 21 * 60,
    "flexible": MORNING_START,
}

SLOT_ORDER: Dict[str, float] = {
    "morning": 0,
    "afternoon": 1,
    "flexible": 1.5,
    "evening": 2,
    "night": 3,
}

# (label, planned start, minutes, prefers a cafe)
MEALS: List[Tuple[str, int, int, bool]] = [
    ("Breakfast", 7 * 60 + 30, 45, True),
    ("Lunch", 12 * 60 + 30, 60, False),
    ("Dinner", 19 * 60 + 30, 75, False),
]

# (label, planned start, minutes, flat cost); only added when the day's visits
# span the snack time and a cafe is nearby
SNACKS: List[Tuple[str, int, int, int]] = [
    ("Morning Tea", 10 * 60 + 30, 20, 100),
    ("Refreshments", 16 * 60 + 30, 20, 150),
]

_CAFE_HINTS = ("cafe", "café", "bakery", "coffee")


# Day packing

PACKING_DAY_MINUTES = 21 * 60 - MORNING_START
# Lunch, dinner and a rest buffer come off every day
PACKING_DAILY_BUFFER = 60 + 75 + 30
EFFECTIVE_DAY_MINUTES = PACKING_DAY_MINUTES - PACKING_DAILY_BUFFER
MAX_DAY_OVERLOAD = 120
GROUP_TRAVEL_MINUTES = 30
PACKING_SPEED_KMH = 25.0
PACKING_DEFAULT_DURATION = 90
MAX_REBALANCE_ROUNDS = 10


def optimal_time_of_day(knowledge: PlaceKnowledge) -> str:
    """Read the best-time hint first, then fall back on the place type."""
    hint = (knowledge.bestTimeToVisit or "").lower()
    category = classify_type(knowledge.type)

    if "morning" in hint or "sunrise" in hint:
        return "morning"
    if "evening" in hint or "sunset" in hint:
        return "evening"
    if "night" in hint or category == PlaceCategory.NIGHTLIFE:
        return "night"
    if "afternoon" in hint:
        return "afternoon"

    if category in (PlaceCategory.FORT, PlaceCategory.LANDMARK):
        return "morning"
    if category == PlaceCategory.BEACH:
        return "evening"
    return "flexible"


def opening_window(knowledge: PlaceKnowledge) -> Optional[Tuple[int, int]]:
    """Open/close minutes; a close before the open time means past midnight."""
    hours = knowledge.openingHours
    if hours is None:
        return None
    try:
        open_at, close_at = time_to_minutes(hours.open), time_to_minutes(hours.close)
    except ValueError:
        logger.warning("Unparseable opening hours for %s: %s-%s", knowledge.name, hours.open, hours.close)
        return None
    if close_at <= open_at:
        close_at += MINUTES_PER_DAY
    return open_at, close_at


def crowd_level(minutes: int, peak_hours: Sequence[str]) -> CrowdLevel:
    peaks: List[Tuple[int, int]] = []
    for peak in peak_hours:
        try:
            start, end = peak.split("-")
            peaks.append((time_to_minutes(start), time_to_minutes(end)))
        except ValueError:
            continue

    minutes %= MINUTES_PER_DAY
    if any(start <= minutes <= end for start, end in peaks):
        return "high"
    if any(abs(minutes - start) < 60 for start, _ in peaks):
        return "medium"
    return "low"


def _visit_duration(knowledge: PlaceKnowledge, category: PlaceCategory) -> int:
    if knowledge.typicalDuration > 0:
        return knowledge.typicalDuration
    return DEFAULT_DURATIONS.get(category, 60)


def _is_cafe(spot: NearbyPlace) -> bool:
    text = f"{spot.name} {spot.type}".lower()
    return any(h in text for h in _CAFE_HINTS)


def _pick_restaurant(pool: List[NearbyPlace], prefer_cafe: bool) -> Optional[NearbyPlace]:
    if not pool:
        return None
    if prefer_cafe:
        for idx, spot in enumerate(pool):
            if _is_cafe(spot):
                return pool.pop(idx)
    return pool.pop(0)


def _pick_cafe(pool: List[NearbyPlace]) -> Optional[NearbyPlace]:
    for idx, spot in enumerate(pool):
        if _is_cafe(spot):
            return pool.pop(idx)
    return None


def _insert_at_time(activities: List[ScheduledActivity], activity: ScheduledActivity, planned: int) -> None:
    position = len(activities)
    for idx, existing in enumerate(activities):
        is_anchor = existing.type in ("checkin", "checkout")
        if not is_anchor and time_to_minutes(existing.startTime) >= planned:
            position = idx
            break
    activities.insert(position, activity)


def _insert_meals(
    activities: List[ScheduledActivity], day_number: int, restaurants: List[NearbyPlace]
) -> None:
    visits = [a for a in activities if a.type == "visit"]
    first_visit = time_to_minutes(visits[0].startTime)
    last_visit = max(time_to_minutes(a.startTime) + a.durationMin for a in visits)

    for label, planned, duration, prefer_cafe in MEALS:
        spot = _pick_restaurant(restaurants, prefer_cafe)
        if spot is not None:
            place = Place(name=spot.name, category="restaurant", coordinates=spot.coordinates)
            notes = label
        else:
            place = meal_place(label)
            notes = None

        meal = make_activity(place, day_number, planned, duration, "meal", PlaceCategory.RESTAURANT, notes)
        _insert_at_time(activities, meal, planned)

        if label == "Breakfast":
            # Breakfast takes the first cafe; snacks come after it
            _insert_snacks(activities, day_number, restaurants, first_visit, last_visit)


def _insert_snacks(
    activities: List[ScheduledActivity],
    day_number: int,
    restaurants: List[NearbyPlace],
    first_visit: int,
    last_visit: int,
) -> None:
    for label, planned, duration, cost in SNACKS:
        if not first_visit <= planned <= last_visit:
            continue
        spot = _pick_cafe(restaurants)
        if spot is None:
            continue
        place = Place(name=spot.name, category="cafe", coordinates=spot.coordinates)
        snack = make_activity(place, day_number, planned, duration, "meal", PlaceCategory.RESTAURANT, label)
        snack.estimatedCost = cost
        _insert_at_time(activities, snack, planned)


def build_knowledge_day(
    stops: Sequence[Tuple[Place, PlaceKnowledge]],
    day_number: int,
    is_last_day: bool = False,
) -> Tuple[List[ScheduledActivity], List[PlaceKnowledge]]:
    """
    Schedule one day from researched places.

    Args:
        stops: (place, knowledge) pairs in route order
        day_number: 1-based day index
        is_last_day: Whether the lodging anchor is a checkout

    Returns:
        (activities, unscheduled) where unscheduled holds places that could
        not fit their opening hours or the day
    """
    activities: List[ScheduledActivity] = []
    unscheduled: List[PlaceKnowledge] = []
    if not stops:
        return activities, unscheduled

    anchor = next((s for s in stops if classify_place(s[0]) == PlaceCategory.ACCOMMODATION), None)
    cursor = MORNING_START

    if anchor is not None:
        activities.append(make_activity(
            anchor[0], day_number, ANCHOR_AT, DEFAULT_DURATIONS[PlaceCategory.ACCOMMODATION],
            anchor_type(day_number, is_last_day), PlaceCategory.ACCOMMODATION,
        ))

    visits = [s for s in stops if s is not anchor]
    visits.sort(key=lambda s: SLOT_ORDER[optimal_time_of_day(s[1])])

    for place, knowledge in visits:
        category = classify_place(place)
        duration = _visit_duration(knowledge, category)
        start = max(cursor, SLOT_START[optimal_time_of_day(knowledge)])

        window = opening_window(knowledge)
        if window is not None:
            start = max(start, window[0])
            if start + duration > window[1]:
                logger.info("Skipping %s on day %d: closed at planned time", place.name, day_number)
                unscheduled.append(knowledge)
                continue

        if category != PlaceCategory.NIGHTLIFE and start + duration > DAY_END:
            logger.info("Skipping %s on day %d: day is full", place.name, day_number)
            unscheduled.append(knowledge)
            continue

        visit = make_activity(place, day_number, start, duration, "visit", category)
        visit.crowdLevel = crowd_level(start, knowledge.crowdPeakHours)
        visit.bestTimeReason = knowledge.bestTimeToVisit
        if knowledge.entryFee is not None:
            visit.estimatedCost = max(0, round(knowledge.entryFee))
        activities.append(visit)
        cursor = start + duration + ACTIVITY_BUFFER_MIN

    if any(a.type == "visit" for a in activities):
        restaurants: List[NearbyPlace] = []
        seen = set()
        for _, knowledge in stops:
            for spot in knowledge.nearbyRestaurants:
                if spot.name.lower() not in seen:
                    seen.add(spot.name.lower())
                    restaurants.append(spot)
        _insert_meals(activities, day_number, restaurants)

    # Meals can push visits out of their windows
    by_name = {k.name.lower(): k for _, k in stops}
    activities, late = enforce_opening_hours(reflow_activities(activities), by_name)
    return activities, unscheduled + late


# Re-checking a paced day


def _latest_end(knowledge: PlaceKnowledge, category: PlaceCategory) -> Tuple[int, int]:
    """(earliest start, latest end) a visit may occupy."""
    window = opening_window(knowledge)
    open_at, close_at = window if window is not None else (0, 2 * MINUTES_PER_DAY)
    if category != PlaceCategory.NIGHTLIFE:
        close_at = min(close_at, DAY_END)
    return open_at, close_at


def _earlier_slot(
    activities: Sequence[ScheduledActivity], duration: int, bounds: Tuple[int, int], before: int
) -> Optional[Tuple[int, int]]:
    """First gap between activities that holds the visit and starts before `before`."""
    timeline = activity_timeline(activities)
    open_at, close_at = bounds
    for idx in range(len(timeline) - 1):
        start = max(timeline[idx][1], open_at)
        limit = min(timeline[idx + 1][0], close_at)
        if start < before and start + duration <= limit:
            return idx + 1, start
    return None


def enforce_opening_hours(
    activities: List[ScheduledActivity],
    knowledge_by_name: Dict[str, PlaceKnowledge],
    relocate: bool = True,
) -> Tuple[List[ScheduledActivity], List[PlaceKnowledge]]:
    """
    Re-check researched visits after rests, meals or moves re-timed the day.

    A visit that now starts before opening, ends after closing or runs past
    DAY_END (nightlife excepted) is moved into an earlier free gap when
    `relocate` is set and one fits, otherwise it is removed together with the
    travel entry leading to it. Visits without knowledge are left alone.

    Returns:
        (activities, dropped) with dropped in the order they were removed
    """
    kept = list(activities)
    dropped: List[PlaceKnowledge] = []

    while True:
        late = None
        for idx, (activity, (start, end)) in enumerate(zip(kept, activity_timeline(kept))):
            knowledge = knowledge_by_name.get(activity.place.name.lower())
            if activity.type != "visit" or knowledge is None:
                continue
            open_at, close_at = _latest_end(knowledge, activity.category)
            if start < open_at or end > close_at:
                late = idx
                break
        if late is None:
            break

        visit = kept.pop(late)
        knowledge = knowledge_by_name[visit.place.name.lower()]
        if late > 0 and kept[late - 1].type == "travel":
            kept.pop(late - 1)

        bounds = _latest_end(knowledge, visit.category)
        slot = _earlier_slot(kept, visit.durationMin, bounds, time_to_minutes(visit.startTime)) if relocate else None
        if slot is not None:
            position, start = slot
            visit.startTime = format_minutes(start)
            visit.endTime = format_minutes(start + visit.durationMin)
            kept.insert(position, visit)
            logger.info("Moved %s on day %d to %s to fit its opening hours", visit.place.name, visit.day, visit.startTime)
            continue

        logger.info("Dropping %s from day %d: no longer fits its opening hours", visit.place.name, visit.day)
        dropped.append(knowledge)

    # A rest only makes sense between activities
    while kept and kept[-1].type == "rest":
        kept.pop()

    return reflow_activities(kept), dropped


# Day packing


def _packing_duration(knowledge: PlaceKnowledge) -> int:
    return knowledge.typicalDuration if knowledge.typicalDuration > 0 else PACKING_DEFAULT_DURATION


def packing_travel_minutes(knowledge: Sequence[PlaceKnowledge]) -> np.ndarray:
    """Pairwise travel minutes at local road speed, rounded up."""
    km = distance_matrix([k.coordinates for k in knowledge])
    return np.ceil(km / PACKING_SPEED_KMH * 60)


def group_nearby(travel: np.ndarray) -> List[List[int]]:
    """Seed-based groups: each unassigned place pulls in every other within GROUP_TRAVEL_MINUTES."""
    n = len(travel)
    assigned = [False] * n
    groups: List[List[int]] = []
    for i in range(n):
        if assigned[i]:
            continue
        group = [i]
        assigned[i] = True
        for j in range(n):
            if not assigned[j] and travel[i, j] <= GROUP_TRAVEL_MINUTES:
                group.append(j)
                assigned[j] = True
        groups.append(group)
    return groups


def distribute_by_geography(knowledge: Sequence[PlaceKnowledge], num_days: int) -> List[List[PlaceKnowledge]]:
    """
    Pack researched places into days by proximity and time budget.

    Flow:
    1. Group places within GROUP_TRAVEL_MINUTES of a seed place
    2. First-fit decreasing: largest group first, onto the fitting day with
       the most time left (earliest day on ties), else the emptiest day
    3. While the busiest day is over EFFECTIVE_DAY_MINUTES + MAX_DAY_OVERLOAD,
       move its place closest to the emptiest day's centroid there, if it fits

    Args:
        knowledge: Places to visit, lodging excluded
        num_days: Number of day buckets

    Returns:
        `num_days` lists; days may be empty. Order within a day is packing
        order, routing happens later.
    """
    if not knowledge or num_days < 1:
        return [[] for _ in range(max(num_days, 0))]

    bins: List[List[int]] = [[] for _ in range(num_days)]

    travel = packing_travel_minutes(knowledge)
    durations = [_packing_duration(k) for k in knowledge]
    used = np.zeros(num_days)

    def chain_travel(group: List[int]) -> float:
        return float(sum(travel[a, b] for a, b in zip(group, group[1:])))

    groups = group_nearby(travel)
    sized = [(sum(durations[i] for i in g) + chain_travel(g), g) for g in groups]
    # Stable sort keeps input order among equal sizes
    sized.sort(key=lambda s: -s[0])
    logger.info(f"Packing {len(knowledge)} places in {len(groups)} groups over {num_days} days")

    for total, group in sized:
        best_day, best_left = -1, -1.0
        for d in range(num_days):
            left = EFFECTIVE_DAY_MINUTES - used[d]
            extra = travel[bins[d][-1], group[0]] if bins[d] else 0
            if total + extra <= left and left > best_left:
                best_day, best_left = d, left
        if best_day == -1:
            best_day = int(np.argmin(used))

        bins[best_day].extend(group)
        used[best_day] += total

    for _ in range(MAX_REBALANCE_ROUNDS):
        busiest, emptiest = int(np.argmax(used)), int(np.argmin(used))
        if used[busiest] <= EFFECTIVE_DAY_MINUTES + MAX_DAY_OVERLOAD or len(bins[busiest]) <= 1:
            break

        target = bins[emptiest] or bins[busiest]
        centroid = calculate_centroid([knowledge[i].coordinates for i in target])
        best, best_km = None, float("inf")
        for pos, i in enumerate(bins[busiest]):
            km = haversine_distance_km(centroid, knowledge[i].coordinates)
            if used[emptiest] + durations[i] <= EFFECTIVE_DAY_MINUTES and km < best_km:
                best, best_km = pos, km
        if best is None:
            break

        moved = bins[busiest].pop(best)
        bins[emptiest].append(moved)
        used[busiest] -= durations[moved]
        used[emptiest] += durations[moved]
        logger.info(f"Day {busiest + 1} over time budget, moving {knowledge[moved].name} to day {emptiest + 1}")

    return [[knowledge[i] for i in b] for b in bins]
