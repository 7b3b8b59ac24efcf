import uuid
from typing import Dict, List, Optional, Sequence, Tuple

from itinerary_engine.schemas.itinerary import (
    ActivityType,
    Place,
    PlaceCategory,
    ScheduledActivity,
    TimeSlot,
)
from itinerary_engine.services.categories import classify_place
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)


# Configuration

MINUTES_PER_DAY = 24 * 60

TIME_SLOTS: Dict[str, Tuple[int, int]] = {
    "morning": (6 * 60, 12 * 60),
    "afternoon": (12 * 60, 17 * 60),
    "evening": (17 * 60, 21 * 60),
    "night": (21 * 60, 24 * 60),
}

# Minutes spent at a place of each category
DEFAULT_DURATIONS: Dict[PlaceCategory, int] = {
    PlaceCategory.ACCOMMODATION: 30,
    PlaceCategory.BEACH: 180,
    PlaceCategory.LANDMARK: 90,
    PlaceCategory.FORT: 120,
    PlaceCategory.RESTAURANT: 60,
    PlaceCategory.NIGHTLIFE: 180,
    PlaceCategory.ACTIVITY: 120,
    PlaceCategory.DESTINATION: 90,
}

PREFERRED_SLOT: Dict[PlaceCategory, TimeSlot] = {
    PlaceCategory.ACCOMMODATION: "evening",
    PlaceCategory.BEACH: "evening",
    PlaceCategory.LANDMARK: "morning",
    PlaceCategory.FORT: "morning",
    PlaceCategory.RESTAURANT: "afternoon",
    PlaceCategory.NIGHTLIFE: "night",
    PlaceCategory.ACTIVITY: "morning",
    PlaceCategory.DESTINATION: "morning",
}

DAY_START = 7 * 60
VISIT_BUFFER_MIN = 30

BREAKFAST_DURATION = 60
LUNCH_AT = 12 * 60 + 30
LUNCH_LATEST = 14 * 60
LUNCH_DURATION = 60
SIESTA_AT = 14 * 60
SIESTA_LATEST = 16 * 60
SIESTA_DURATION = 90
EVENING_AT = 17 * 60
DINNER_AT = 19 * 60 + 30
DINNER_DURATION = 90
NIGHT_AT = 21 * 60


# Time helpers


def time_to_minutes(time_str: str) -> int:
    """Convert 'HH:MM' to minutes from midnight."""
    h, m = map(int, time_str.split(":"))
    return h * 60 + m


def format_minutes(minutes: int) -> str:
    """Minutes from midnight to 'HH:MM', wrapping past midnight."""
    minutes = int(minutes) % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes_to_time(time_str: str, minutes: int) -> str:
    return format_minutes(time_to_minutes(time_str) + minutes)


def slot_for_minutes(minutes: int) -> TimeSlot:
    minutes %= MINUTES_PER_DAY
    for slot, (start, end) in TIME_SLOTS.items():
        if start <= minutes < end:
            return slot
    return "night"


def new_activity_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


def make_activity(
    place: Place,
    day: int,
    start: int,
    duration: int,
    activity_type: ActivityType,
    category: Optional[PlaceCategory] = None,
    notes: Optional[str] = None,
) -> ScheduledActivity:
    """Build an activity starting at `start` minutes from midnight."""
    return ScheduledActivity(
        id=new_activity_id(activity_type),
        place=place,
        day=day,
        timeSlot=slot_for_minutes(start),
        startTime=format_minutes(start),
        endTime=format_minutes(start + duration),
        durationMin=duration,
        type=activity_type,
        category=category or classify_place(place),
        notes=notes,
    )


def meal_place(label: str) -> Place:
    return Place(name=label, category="restaurant")


# Timeline


def activity_timeline(activities: Sequence[ScheduledActivity]) -> List[Tuple[int, int]]:
    """
    Absolute (start, end) minutes for a day's activities in list order.

    Clock labels wrap at midnight; a start that falls far behind the previous
    end is read as the next calendar day.
    """
    timeline: List[Tuple[int, int]] = []
    offset = 0
    prev_end: Optional[int] = None

    for activity in activities:
        start = time_to_minutes(activity.startTime) + offset
        if prev_end is not None and start + MINUTES_PER_DAY // 2 < prev_end:
            offset += MINUTES_PER_DAY
            start += MINUTES_PER_DAY
        end = start + activity.durationMin
        timeline.append((start, end))
        prev_end = end

    return timeline


def reflow_activities(activities: List[ScheduledActivity]) -> List[ScheduledActivity]:
    """
    Re-time a day in list order after activities were spliced or moved.

    Each activity keeps its planned start unless the previous one has not
    finished yet, in which case it starts right after it. Mutates in place.
    """
    cursor: Optional[int] = None
    for activity in activities:
        planned = time_to_minutes(activity.startTime)
        start = planned if cursor is None else max(planned, cursor)
        activity.startTime = format_minutes(start)
        activity.endTime = format_minutes(start + activity.durationMin)
        activity.timeSlot = slot_for_minutes(start)
        cursor = start + activity.durationMin
    return activities


def is_slot_available(
    activities: Sequence[ScheduledActivity], start: int, end: int
) -> bool:
    """True if [start, end) minutes does not overlap any scheduled activity."""
    for a_start, a_end in activity_timeline(activities):
        if start < a_end and end > a_start:
            return False
    return True


# Assignment


def place_duration(category: PlaceCategory) -> int:
    return DEFAULT_DURATIONS.get(category, DEFAULT_DURATIONS[PlaceCategory.DESTINATION])


def anchor_type(day_number: int, is_last_day: bool) -> ActivityType:
    return "checkout" if is_last_day and day_number > 1 else "checkin"


def assign_time_slots(
    places: Sequence[Place], day_number: int, is_last_day: bool = False
) -> List[ScheduledActivity]:
    """
    Lay out one day's places as a non-overlapping schedule.

    Order of the day: lodging anchor, breakfast, morning places, lunch,
    afternoon places (or a siesta when there are none), evening places,
    dinner, nightlife. Within a slot, places keep their input (route) order.

    Args:
        places: Day's places, typically already route-ordered
        day_number: 1-based day index
        is_last_day: Whether the lodging anchor is a checkout

    Returns:
        Activities sorted by start time
    """
    if not places:
        return []

    activities: List[ScheduledActivity] = []
    cursor = DAY_START

    def add(place: Place, start: int, duration: int, kind: ActivityType,
            category: Optional[PlaceCategory] = None, notes: Optional[str] = None) -> int:
        start = max(start, cursor)
        activities.append(
            make_activity(place, day_number, start, duration, kind, category, notes)
        )
        return start + duration

    buckets: Dict[TimeSlot, List[Tuple[Place, PlaceCategory]]] = {
        "morning": [], "afternoon": [], "evening": [], "night": [],
    }
    anchor: Optional[Place] = None

    for place in places:
        category = classify_place(place)
        if category == PlaceCategory.ACCOMMODATION and anchor is None:
            anchor = place
            continue
        buckets[PREFERRED_SLOT[category]].append((place, category))

    if anchor is not None:
        kind = anchor_type(day_number, is_last_day)
        note = "Check out" if kind == "checkout" else "Start from lodging"
        cursor = add(anchor, DAY_START, DEFAULT_DURATIONS[PlaceCategory.ACCOMMODATION],
                     kind, PlaceCategory.ACCOMMODATION, note)

    cursor = add(meal_place("Breakfast"), cursor, BREAKFAST_DURATION, "meal",
                 PlaceCategory.RESTAURANT) + VISIT_BUFFER_MIN

    for place, category in buckets["morning"]:
        cursor = add(place, cursor, place_duration(category), "visit", category) + VISIT_BUFFER_MIN

    if cursor < LUNCH_LATEST:
        cursor = add(meal_place("Lunch"), LUNCH_AT, LUNCH_DURATION, "meal",
                     PlaceCategory.RESTAURANT) + VISIT_BUFFER_MIN

    for place, category in buckets["afternoon"]:
        cursor = add(place, cursor, place_duration(category), "visit", category) + VISIT_BUFFER_MIN

    if not buckets["afternoon"] and cursor < SIESTA_LATEST:
        cursor = add(Place(name="Afternoon Rest", category="rest"), SIESTA_AT, SIESTA_DURATION,
                     "rest", PlaceCategory.DESTINATION, "Relax during the afternoon heat")
        cursor += VISIT_BUFFER_MIN

    cursor = max(cursor, EVENING_AT)
    for place, category in buckets["evening"]:
        cursor = add(place, cursor, place_duration(category), "visit", category) + VISIT_BUFFER_MIN

    cursor = add(meal_place("Dinner"), DINNER_AT, DINNER_DURATION, "meal",
                 PlaceCategory.RESTAURANT) + VISIT_BUFFER_MIN

    for place, category in buckets["night"]:
        cursor = add(place, max(cursor, NIGHT_AT), place_duration(category), "visit", category)

    if cursor > MINUTES_PER_DAY:
        logger.warning("Day %d runs past midnight (%d places)", day_number, len(places))

    return activities
