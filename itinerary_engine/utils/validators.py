from typing import Any, Dict, List, Optional, Sequence

from itinerary_engine.schemas.itinerary import GeneratedItinerary
from itinerary_engine.schemas.research import PlaceKnowledge
from itinerary_engine.services.fatigue import calculate_day_fatigue
from itinerary_engine.services.smart_scheduler import opening_window
from itinerary_engine.services.time_slots import activity_timeline


# Validation Functions


def validate_itinerary(
    itinerary: GeneratedItinerary, knowledge: Optional[Sequence[PlaceKnowledge]] = None
) -> Dict[str, Any]:
    """
    Validate a generated itinerary against scheduling invariants.

    With researched `knowledge`, visits are also checked against opening hours.

    Returns:
        {
            "valid": bool,
            "violations": [{"type": str, "severity": str, "message": str, "day": int, "activity": str}],
            "stats": {...}
        }
    """
    violations: List[Dict[str, Any]] = []
    windows = {k.name.lower(): opening_window(k) for k in knowledge or []}
    stats = {
        "total_days": len(itinerary.days),
        "total_activities": 0,
        "total_visits": 0,
        "activities_per_day": [],
        "fatigue_per_day": [],
        "type_distribution": {},
    }

    for day in itinerary.days:
        activities = day.activities
        stats["total_activities"] += len(activities)
        stats["activities_per_day"].append(len(activities))
        stats["fatigue_per_day"].append(day.totalFatigue)

        timeline = activity_timeline(activities)
        prev = None
        for activity, (start, end) in zip(activities, timeline):
            stats["type_distribution"][activity.type] = (
                stats["type_distribution"].get(activity.type, 0) + 1
            )
            if activity.type == "visit":
                stats["total_visits"] += 1

            # 1. Positive duration on the unwrapped timeline
            if end <= start:
                violations.append(
                    {
                        "type": "non_positive_duration",
                        "severity": "error",
                        "message": f"{activity.place.name} ends before it starts ({activity.startTime}-{activity.endTime})",
                        "day": day.day,
                        "activity": activity.id,
                    }
                )

            # 2. No overlap with the previous activity
            if prev is not None and start < prev[1]:
                violations.append(
                    {
                        "type": "overlap",
                        "severity": "error",
                        "message": f"{activity.place.name} starts at {activity.startTime} before {prev[0]} ends",
                        "day": day.day,
                        "activity": activity.id,
                    }
                )

            # 3. Non-negative costs
            if activity.estimatedCost is not None and activity.estimatedCost < 0:
                violations.append(
                    {
                        "type": "negative_cost",
                        "severity": "error",
                        "message": f"Negative cost {activity.estimatedCost} for {activity.place.name}",
                        "day": day.day,
                        "activity": activity.id,
                    }
                )

            # 4. Inside opening hours
            window = windows.get(activity.place.name.lower()) if activity.type == "visit" else None
            if window is not None and (start < window[0] or end > window[1]):
                violations.append(
                    {
                        "type": "outside_opening_hours",
                        "severity": "error",
                        "message": f"{activity.place.name} at {activity.startTime}-{activity.endTime} is outside its opening hours",
                        "day": day.day,
                        "activity": activity.id,
                    }
                )

            if activity.day != day.day:
                violations.append(
                    {
                        "type": "wrong_day",
                        "severity": "warning",
                        "message": f"{activity.place.name} is tagged day {activity.day}",
                        "day": day.day,
                        "activity": activity.id,
                    }
                )

            prev = (activity.place.name, end)

        # 5. Fatigue conservation
        expected = calculate_day_fatigue(activities)
        if day.totalFatigue != expected:
            violations.append(
                {
                    "type": "fatigue_mismatch",
                    "severity": "error",
                    "message": f"Day {day.day} totalFatigue {day.totalFatigue} != sum of impacts {expected}",
                    "day": day.day,
                    "activity": None,
                }
            )

        if day.totalCost < 0:
            violations.append(
                {
                    "type": "negative_cost",
                    "severity": "error",
                    "message": f"Day {day.day} has negative total cost {day.totalCost}",
                    "day": day.day,
                    "activity": None,
                }
            )

    # 6. Summary counts
    summary = itinerary.summary
    if summary.placesVisited != stats["total_visits"]:
        violations.append(
            {
                "type": "visit_count_mismatch",
                "severity": "error",
                "message": f"placesVisited {summary.placesVisited} != {stats['total_visits']} visit activities",
                "day": None,
                "activity": None,
            }
        )

    if summary.totalDays != len(itinerary.days):
        violations.append(
            {
                "type": "day_count_mismatch",
                "severity": "error",
                "message": f"totalDays {summary.totalDays} != {len(itinerary.days)} days",
                "day": None,
                "activity": None,
            }
        )

    if summary.totalCost < 0:
        violations.append(
            {
                "type": "negative_cost",
                "severity": "error",
                "message": f"Negative trip cost {summary.totalCost}",
                "day": None,
                "activity": None,
            }
        )

    return {
        "valid": len([v for v in violations if v["severity"] == "error"]) == 0,
        "violations": violations,
        "stats": stats,
    }


def print_validation_report(validation_result: Dict[str, Any]) -> None:
    """Print human-readable validation report."""
    print("\n" + "=" * 70)
    print("ITINERARY VALIDATION REPORT")
    print("=" * 70)

    stats = validation_result["stats"]
    print("\nStatistics:")
    print(f"   Total days: {stats['total_days']}")
    print(f"   Total activities: {stats['total_activities']}")
    print(f"   Total visits: {stats['total_visits']}")
    print(f"   Activities per day: {stats['activities_per_day']}")
    print(f"   Fatigue per day: {stats['fatigue_per_day']}")

    if stats["type_distribution"]:
        print("\nActivity Types:")
        for kind, count in sorted(stats["type_distribution"].items(), key=lambda x: -x[1]):
            print(f"   {kind}: {count}")

    violations = validation_result["violations"]
    if not violations:
        print("\nVALID - No violations found")
    else:
        errors = [v for v in violations if v["severity"] == "error"]
        warnings = [v for v in violations if v["severity"] == "warning"]

        print(f"\nFound {len(errors)} errors, {len(warnings)} warnings")

        if errors:
            print("\nERRORS:")
            for v in errors:
                day_str = f"Day {v['day']}: " if v["day"] else ""
                print(f"   {day_str}{v['message']}")

        if warnings:
            print("\nWARNINGS:")
            for v in warnings:
                day_str = f"Day {v['day']}: " if v["day"] else ""
                print(f"   {day_str}{v['message']}")

    print("=" * 70 + "\n")


def assert_itinerary_valid(
    itinerary: GeneratedItinerary,
    allow_warnings: bool = True,
    knowledge: Optional[Sequence[PlaceKnowledge]] = None,
) -> None:
    """
    Assert itinerary is valid, raise AssertionError if not.

    Args:
        allow_warnings: If False, warnings also cause assertion failure
        knowledge: Researched places whose opening hours are checked too
    """
    result = validate_itinerary(itinerary, knowledge)
    print_validation_report(result)

    errors = [v for v in result["violations"] if v["severity"] == "error"]
    warnings = [v for v in result["violations"] if v["severity"] == "warning"]

    if errors:
        raise AssertionError(
            f"Itinerary has {len(errors)} errors:\n"
            + "\n".join(f"  - {v['message']}" for v in errors)
        )

    if not allow_warnings and warnings:
        raise AssertionError(
            f"Itinerary has {len(warnings)} warnings:\n"
            + "\n".join(f"  - {v['message']}" for v in warnings)
        )
