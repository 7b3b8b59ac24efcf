from math import atan2, ceil, cos, radians, sin, sqrt
from typing import Dict, List, Optional, Sequence

import numpy as np

from itinerary_engine.schemas.itinerary import Coords, Place, TravelInfo, TravelMode


EARTH_RADIUS_KM = 6371.0

# Average speeds in km/h
TRAVEL_SPEEDS_KMH: Dict[str, float] = {
    "walk": 5.0,
    "bike": 25.0,
    "auto": 30.0,
    "car": 40.0,
}

WALK_MAX_KM = 1.0
BIKE_MAX_KM = 10.0

# Used whenever a centroid is requested for no coordinates (Panaji, Goa)
DEFAULT_CENTER = Coords(lat=15.4909, lng=73.8278)

DEFAULT_BOUNDS = {
    "southwest": Coords(lat=15.0, lng=73.5),
    "northeast": Coords(lat=16.0, lng=74.5),
}


def haversine_distance_km(a: Coords, b: Coords) -> float:
    """Great-circle distance in km."""
    dlat = radians(b.lat - a.lat)
    dlng = radians(b.lng - a.lng)
    x = (
        sin(dlat / 2) ** 2
        + cos(radians(a.lat)) * cos(radians(b.lat)) * sin(dlng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * atan2(sqrt(x), sqrt(1 - x))


def distance_matrix(coords: Sequence[Coords]) -> np.ndarray:
    """
    Pairwise great-circle distances in km.

    Vectorised form of haversine_distance_km. The matrix is symmetric with a
    zero diagonal; row/column order follows `coords`.
    """
    if not coords:
        return np.zeros((0, 0))

    lat = np.radians([c.lat for c in coords])
    lng = np.radians([c.lng for c in coords])

    dlat = lat[None, :] - lat[:, None]
    dlng = lng[None, :] - lng[:, None]
    x = (
        np.sin(dlat / 2) ** 2
        + np.cos(lat[:, None]) * np.cos(lat[None, :]) * np.sin(dlng / 2) ** 2
    )
    x = np.clip(x, 0.0, 1.0)
    return EARTH_RADIUS_KM * 2 * np.arctan2(np.sqrt(x), np.sqrt(1 - x))


def default_travel_mode(distance_km: float) -> TravelMode:
    if distance_km <= WALK_MAX_KM:
        return "walk"
    if distance_km <= BIKE_MAX_KM:
        return "bike"
    return "car"


def travel_minutes(distance_km: float, mode: TravelMode) -> int:
    speed = TRAVEL_SPEEDS_KMH.get(mode, TRAVEL_SPEEDS_KMH["car"])
    return ceil(distance_km / speed * 60)


def estimate_travel(a: Coords, b: Coords, mode: Optional[TravelMode] = None) -> TravelInfo:
    """
    Estimate a single hop between two coordinates.

    Args:
        a: Origin
        b: Destination
        mode: Travel mode; inferred from distance when omitted

    Returns:
        TravelInfo with distance (km), duration (whole minutes, rounded up) and mode
    """
    distance = haversine_distance_km(a, b)
    mode = mode or default_travel_mode(distance)
    return TravelInfo(distance=distance, duration=travel_minutes(distance, mode), mode=mode)


def calculate_centroid(coords: Sequence[Coords]) -> Coords:
    if not coords:
        return DEFAULT_CENTER
    lat = sum(c.lat for c in coords) / len(coords)
    lng = sum(c.lng for c in coords) / len(coords)
    return Coords(lat=lat, lng=lng)


def effective_coords(place: Place) -> Optional[Coords]:
    """A place's own coordinates, else its looked-up coordinates, else None."""
    return place.coordinates or place.enrichedCoordinates


def geocoded(places: Sequence[Place]) -> List[Place]:
    return [p for p in places if effective_coords(p) is not None]


def calculate_route_bounds(coords: Sequence[Coords]) -> Dict[str, Coords]:
    """Bounding box of a polyline, used to frame a map."""
    if not coords:
        return dict(DEFAULT_BOUNDS)
    return {
        "southwest": Coords(lat=min(c.lat for c in coords), lng=min(c.lng for c in coords)),
        "northeast": Coords(lat=max(c.lat for c in coords), lng=max(c.lng for c in coords)),
    }
