"""
Fatigue pacing.

Per-day flow: apply_fatigue_values -> insert_rest_breaks. Across days:
balance_fatigue_across_days -> adjust_first_day_fatigue (once). A day's
totalFatigue is always the sum of its activities' fatigueImpact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from math import ceil
from typing import Dict, List, Optional, Sequence

import numpy as np

from itinerary_engine.schemas.itinerary import (
    DayItinerary,
    Place,
    PlaceCategory,
    ScheduledActivity,
)
from itinerary_engine.services.time_slots import (
    make_activity,
    reflow_activities,
    time_to_minutes,
)
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)


# Config

# Fatigue per hour spent at a place of each category
FATIGUE_COSTS: Dict[PlaceCategory, int] = {
    PlaceCategory.ACCOMMODATION: -20,
    PlaceCategory.BEACH: 20,
    PlaceCategory.LANDMARK: 40,
    PlaceCategory.FORT: 50,
    PlaceCategory.RESTAURANT: 10,
    PlaceCategory.NIGHTLIFE: 35,
    PlaceCategory.ACTIVITY: 60,
    PlaceCategory.DESTINATION: 30,
}

FATIGUE_LEVELS = [
    (50, "light"),
    (75, "moderate"),
    (100, "heavy"),
]


@dataclass(frozen=True, slots=True)
class FatigueConfig:
    category_costs: Dict[PlaceCategory, int] = field(default_factory=lambda: dict(FATIGUE_COSTS))
    travel_fatigue_per_30_min: int = 5
    meal_fatigue: int = 10
    rest_recovery: int = 25
    rest_threshold: int = 70
    rest_duration_min: int = 30
    daily_budget: int = 100
    light_day_ratio: float = 0.7
    balance_variance_threshold: float = 400.0
    first_day_budget_ratio: float = 0.7
    arrival_fatigue: int = 10


DEFAULT_FATIGUE_CONFIG = FatigueConfig()

# Activity types that carry a place's own fatigue
_PLACE_TYPES = {"visit", "checkin", "checkout"}


# Per-activity


def calculate_activity_fatigue(
    activity: ScheduledActivity, config: FatigueConfig = DEFAULT_FATIGUE_CONFIG
) -> int:
    if activity.durationMin < 0:
        raise ValueError(f"Negative duration for {activity.place.name}")

    if activity.type == "meal":
        return config.meal_fatigue
    if activity.type == "rest":
        return -config.rest_recovery
    if activity.type == "travel":
        return ceil(activity.durationMin / 30) * config.travel_fatigue_per_30_min

    base = config.category_costs.get(activity.category, 0)
    return round(base * activity.durationMin / 60)


def apply_fatigue_values(
    activities: List[ScheduledActivity], config: FatigueConfig = DEFAULT_FATIGUE_CONFIG
) -> List[ScheduledActivity]:
    for activity in activities:
        activity.fatigueImpact = calculate_activity_fatigue(activity, config)
    return activities


def calculate_day_fatigue(activities: Sequence[ScheduledActivity]) -> int:
    return sum(a.fatigueImpact for a in activities)


def get_fatigue_level(total: int) -> str:
    for limit, label in FATIGUE_LEVELS:
        if total < limit:
            return label
    return "exhausting"


def _rest_break(before: ScheduledActivity, config: FatigueConfig) -> ScheduledActivity:
    rest = make_activity(
        Place(name="Rest Break", category="rest"),
        before.day,
        time_to_minutes(before.startTime),
        config.rest_duration_min,
        "rest",
        PlaceCategory.DESTINATION,
        notes="Take a break to recharge",
    )
    rest.fatigueImpact = -config.rest_recovery
    rest.estimatedCost = 0
    return rest


def insert_rest_breaks(
    activities: List[ScheduledActivity], config: FatigueConfig = DEFAULT_FATIGUE_CONFIG
) -> List[ScheduledActivity]:
    """
    Splice rest breaks into a day whose fatigue builds up without relief.

    Walks the day accumulating fatigueImpact since the last rest. Before a
    visit, if the accumulator has reached `rest_threshold` and at least one
    real activity already happened, a rest is inserted and the accumulator
    resets. A rest is never the first or last entry of the day.

    Args:
        activities: Day's activities with fatigue already applied
        config: Fatigue tuning

    Returns:
        New activity list, re-timed so nothing overlaps
    """
    result: List[ScheduledActivity] = []
    since_rest = 0
    seen_real = False

    for activity in activities:
        if activity.type == "rest":
            since_rest = 0
        elif (
            activity.type == "visit"
            and seen_real
            and since_rest >= config.rest_threshold
            and result
            and result[-1].type != "rest"
        ):
            result.append(_rest_break(activity, config))
            since_rest = 0

        result.append(activity)
        if activity.type != "rest":
            since_rest += activity.fatigueImpact
            seen_real = True

    inserted = len(result) - len(activities)
    if inserted:
        logger.debug("Inserted %d rest breaks on day %d", inserted, activities[0].day)

    return reflow_activities(result)


# Cross-day


def finalize_fatigue_totals(days: Sequence[DayItinerary]) -> None:
    for day in days:
        day.totalFatigue = calculate_day_fatigue(day.activities)


def _movable_index(day: DayItinerary) -> Optional[int]:
    """Last visit that can leave its day: not nightlife, positive fatigue."""
    for idx in range(len(day.activities) - 1, -1, -1):
        activity = day.activities[idx]
        if (
            activity.type == "visit"
            and activity.category != PlaceCategory.NIGHTLIFE
            and activity.fatigueImpact > 0
        ):
            return idx
    return None


def _move_activity(source: DayItinerary, idx: int, target: DayItinerary) -> None:
    activity = source.activities.pop(idx)
    activity.day = target.day
    position = max(0, len(target.activities) - 2)
    target.activities.insert(position, activity)
    reflow_activities(source.activities)
    reflow_activities(target.activities)
    source.totalFatigue = calculate_day_fatigue(source.activities)
    target.totalFatigue = calculate_day_fatigue(target.activities)


def balance_fatigue_across_days(
    days: List[DayItinerary], config: FatigueConfig = DEFAULT_FATIGUE_CONFIG
) -> List[DayItinerary]:
    """
    Best-effort local rebalancing of fatigue between neighbouring days.

    Nothing happens if the variance of day totals is within
    `balance_variance_threshold`. Otherwise each day over `daily_budget`
    may hand its last movable visit to an adjacent day that sits under
    `light_day_ratio * daily_budget`, but only when that strictly lowers the
    variance. A balanced schedule is returned unchanged.
    """
    finalize_fatigue_totals(days)
    if len(days) <= 1:
        return days

    totals = np.array([d.totalFatigue for d in days], dtype=float)
    if np.var(totals) <= config.balance_variance_threshold:
        return days

    light_limit = config.daily_budget * config.light_day_ratio

    for i, day in enumerate(days):
        if day.totalFatigue <= config.daily_budget:
            continue
        idx = _movable_index(day)
        if idx is None:
            continue

        impact = day.activities[idx].fatigueImpact
        for j in (i - 1, i + 1):
            if not 0 <= j < len(days) or days[j].totalFatigue >= light_limit:
                continue

            current = np.array([d.totalFatigue for d in days], dtype=float)
            proposed = current.copy()
            proposed[i] -= impact
            proposed[j] += impact
            if np.var(proposed) >= np.var(current):
                continue

            logger.info(
                "Moving %s from day %d to day %d to balance fatigue",
                day.activities[idx].place.name,
                day.day,
                days[j].day,
            )
            _move_activity(day, idx, days[j])
            break

    return days


def adjust_first_day_fatigue(
    days: List[DayItinerary], config: FatigueConfig = DEFAULT_FATIGUE_CONFIG
) -> List[DayItinerary]:
    """
    Account for arrival-day tiredness on day 1, exactly once.

    If day 1 is over its reduced budget and a second day exists, the most
    tiring non-night visit moves to day 2. The arrival fatigue is then
    charged to day 1's first activity. Repeated calls are no-ops.
    """
    if not days or days[0].arrivalAdjusted:
        return days

    first = days[0]
    first.totalFatigue = calculate_day_fatigue(first.activities)
    budget = config.daily_budget * config.first_day_budget_ratio

    if first.totalFatigue > budget and len(days) > 1:
        candidates = [
            (a.fatigueImpact, idx)
            for idx, a in enumerate(first.activities)
            if a.type == "visit" and a.timeSlot != "night"
        ]
        if candidates:
            # max() keeps the earliest activity among equal impacts
            _, idx = max(candidates, key=lambda c: (c[0], -c[1]))
            logger.info(
                "Day 1 over arrival budget (%d > %.0f), moving %s to day 2",
                first.totalFatigue,
                budget,
                first.activities[idx].place.name,
            )
            _move_activity(first, idx, days[1])

    if first.activities:
        first.activities[0].fatigueImpact += config.arrival_fatigue

    first.arrivalAdjusted = True
    finalize_fatigue_totals(days)
    return days


def suggest_adjustments(day: DayItinerary, config: FatigueConfig = DEFAULT_FATIGUE_CONFIG) -> List[str]:
    """Human-readable pacing hints for a finished day."""
    suggestions: List[str] = []
    total = calculate_day_fatigue(day.activities)

    if total > config.daily_budget:
        suggestions.append("This day is quite packed. Consider moving some activities to another day.")

    high_fatigue = [a for a in day.activities if a.fatigueImpact > 40]
    if len(high_fatigue) > 2:
        suggestions.append("Multiple high-energy activities scheduled. Add more rest time between them.")

    if not any(a.type == "rest" for a in day.activities) and total > 60:
        suggestions.append("Consider adding a rest break in the afternoon.")

    travel_minutes = sum(a.durationMin for a in day.activities if a.type == "travel")
    if travel_minutes > 120:
        suggestions.append(f"Significant travel time ({travel_minutes} min). Group nearby places together.")

    return suggestions
