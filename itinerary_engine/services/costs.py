from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from itinerary_engine.schemas.itinerary import Budget, PlaceCategory, ScheduledActivity


# Config

# Share of the daily budget per category when a budget is given
COST_RATIOS: Dict[PlaceCategory, float] = {
    PlaceCategory.ACCOMMODATION: 0.35,
    PlaceCategory.RESTAURANT: 0.10,
    PlaceCategory.ACTIVITY: 0.20,
    PlaceCategory.NIGHTLIFE: 0.15,
    PlaceCategory.BEACH: 0.0,
    PlaceCategory.LANDMARK: 0.05,
    PlaceCategory.FORT: 0.05,
    PlaceCategory.DESTINATION: 0.02,
}

# Flat amounts (INR) when no budget is given
DEFAULT_COSTS: Dict[PlaceCategory, int] = {
    PlaceCategory.ACCOMMODATION: 2000,
    PlaceCategory.RESTAURANT: 400,
    PlaceCategory.ACTIVITY: 1500,
    PlaceCategory.NIGHTLIFE: 800,
    PlaceCategory.BEACH: 0,
    PlaceCategory.LANDMARK: 100,
    PlaceCategory.FORT: 100,
    PlaceCategory.DESTINATION: 50,
}


@dataclass(frozen=True, slots=True)
class CostConfig:
    ratios: Dict[PlaceCategory, float] = field(default_factory=lambda: dict(COST_RATIOS))
    defaults: Dict[PlaceCategory, int] = field(default_factory=lambda: dict(DEFAULT_COSTS))
    meal_ratio: float = 0.10
    default_meal_cost: int = 400


DEFAULT_COST_CONFIG = CostConfig()

FREE_TYPES = {"travel", "rest"}


def trip_budget_total(budget: Optional[Budget], members: Sequence[str] = ()) -> float:
    """Whole-party trip budget; per-person budgets scale with the party size."""
    if budget is None or budget.total <= 0:
        return 0.0
    if budget.perPerson:
        return budget.total * max(1, len(members))
    return budget.total


def estimate_activity_cost(
    activity: ScheduledActivity,
    budget: Optional[Budget] = None,
    num_days: int = 1,
    members: Sequence[str] = (),
    config: CostConfig = DEFAULT_COST_CONFIG,
) -> int:
    """
    Estimated spend for one activity.

    Args:
        activity: Scheduled activity
        budget: Optional trip budget; non-positive totals count as no budget
        num_days: Trip length used to derive the daily budget
        members: Party members, used for per-person budgets
        config: Ratio and default tables

    Returns:
        Non-negative whole currency amount; always 0 for travel and rest
    """
    if activity.type in FREE_TYPES:
        return 0

    total = trip_budget_total(budget, members)
    if total > 0:
        daily = total / max(1, num_days)
        if activity.type == "meal":
            cost = daily * config.meal_ratio
        else:
            cost = daily * config.ratios.get(activity.category, 0.0)
    elif activity.type == "meal":
        cost = config.default_meal_cost
    else:
        cost = config.defaults.get(activity.category, 0)

    return max(0, round(cost))


def apply_cost_estimates(
    activities: List[ScheduledActivity],
    budget: Optional[Budget] = None,
    num_days: int = 1,
    members: Sequence[str] = (),
    config: CostConfig = DEFAULT_COST_CONFIG,
) -> List[ScheduledActivity]:
    """Fill estimatedCost where not already known (e.g. a researched entry fee)."""
    for activity in activities:
        if activity.type in FREE_TYPES:
            activity.estimatedCost = 0
        elif activity.estimatedCost is None:
            activity.estimatedCost = estimate_activity_cost(
                activity, budget, num_days, members, config
            )
        else:
            activity.estimatedCost = max(0, activity.estimatedCost)
    return activities
