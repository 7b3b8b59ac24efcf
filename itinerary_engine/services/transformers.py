from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from itinerary_engine.core.config import settings
from itinerary_engine.schemas.itinerary import Budget, Coords, DateRange, ItineraryInput, Place
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)

# ============================================================================
# Dates
# ============================================================================


def _parse_date(value: str) -> date:
    return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()


def calculate_num_days(dates: Union[DateRange, Dict[str, Any], None]) -> int:
    """
    Inclusive number of trip days between start and end.

    Unparseable, missing or reversed dates fall back to DEFAULT_TRIP_DAYS
    instead of raising.

    Args:
        dates: DateRange or {"start", "end"} ISO date strings

    Returns:
        Number of days (minimum 1)
    """
    if isinstance(dates, DateRange):
        start, end = dates.start, dates.end
    elif isinstance(dates, dict):
        start, end = dates.get("start"), dates.get("end")
    else:
        start = end = None

    try:
        if start and end:
            diff_days = (_parse_date(end) - _parse_date(start)).days + 1
            if diff_days >= 1:
                return diff_days
            logger.warning(f"End date {end} is before start date {start}")
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to calculate num_days from dates: {e}")

    return settings.DEFAULT_TRIP_DAYS


def get_date_for_day(start: Optional[str], day_number: int) -> str:
    """ISO date of a 1-based trip day; days count from today when start is unusable."""
    try:
        base = _parse_date(start) if start else date.today()
    except ValueError:
        base = date.today()
    return (base + timedelta(days=day_number - 1)).isoformat()


# ============================================================================
# Payload → ItineraryInput
# ============================================================================


def _parse_coords(raw: Any) -> Optional[Coords]:
    """Accept {lat, lng}, {lat, lon} or [lat, lng]; anything else is no coordinates."""
    try:
        if isinstance(raw, dict):
            lat = raw.get("lat", raw.get("latitude"))
            lng = raw.get("lng", raw.get("lon", raw.get("longitude")))
            if lat is None or lng is None:
                return None
            return Coords(lat=float(lat), lng=float(lng))
        if isinstance(raw, (list, tuple)) and len(raw) == 2:
            return Coords(lat=float(raw[0]), lng=float(raw[1]))
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed coordinates: {raw!r}")
    return None


def transform_place(raw: Dict[str, Any]) -> Optional[Place]:
    name = (raw.get("name") or "").strip()
    if not name:
        return None
    return Place(
        name=name,
        category=raw.get("category") or raw.get("type"),
        coordinates=_parse_coords(raw.get("coordinates")),
        enrichedCoordinates=_parse_coords(raw.get("enrichedCoordinates")),
        mustVisit=bool(raw.get("mustVisit", False)),
        notes=raw.get("notes"),
    )


def transform_itinerary_payload(payload: Dict[str, Any]) -> ItineraryInput:
    """
    Normalize a client payload into ItineraryInput.

    - Nameless places are dropped
    - Must-visit places move to the front (stable otherwise)
    - A non-positive budget total is treated as no budget

    Args:
        payload: {"places": [...], "dates": {"start", "end"}, "budget"?, "members"?}

    Returns:
        ItineraryInput
    """
    places: List[Place] = []
    for raw in payload.get("places") or []:
        if isinstance(raw, str):
            raw = {"name": raw}
        place = transform_place(raw) if isinstance(raw, dict) else None
        if place is not None:
            places.append(place)
    places.sort(key=lambda p: not p.mustVisit)

    dates = payload.get("dates") or {}
    budget_raw = payload.get("budget")
    budget = None
    if isinstance(budget_raw, dict) and float(budget_raw.get("total") or 0) > 0:
        budget = Budget(
            total=float(budget_raw["total"]),
            currency=budget_raw.get("currency") or "INR",
            perPerson=bool(budget_raw.get("perPerson", False)),
        )

    return ItineraryInput(
        places=places,
        dates=DateRange(start=str(dates.get("start") or ""), end=str(dates.get("end") or "")),
        budget=budget,
        members=[str(m) for m in payload.get("members") or []],
    )


def validate_itinerary_payload(payload: Dict[str, Any]) -> tuple[bool, Optional[str]]:
    """
    Validate client payload before processing.

    Dates themselves are not validated here: bad dates fall back to the
    default trip length downstream.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(payload, dict):
        return False, "Payload must be an object"

    places = payload.get("places")
    if not isinstance(places, list):
        return False, "places must be a list"

    for idx, place in enumerate(places):
        if not isinstance(place, (dict, str)):
            return False, f"places[{idx}] must be an object or a name"

    if payload.get("dates") is not None and not isinstance(payload["dates"], dict):
        return False, "dates must be an object with start and end"

    budget = payload.get("budget")
    if budget is not None:
        if not isinstance(budget, dict):
            return False, "budget must be an object"
        try:
            if float(budget.get("total") or 0) < 0:
                return False, "budget.total cannot be negative"
        except (TypeError, ValueError):
            return False, "budget.total must be a number"

    members = payload.get("members")
    if members is not None and not isinstance(members, list):
        return False, "members must be a list"

    return True, None
