"""
Day clustering.

Both strategies here are greedy heuristics. `cluster_places_by_proximity`
grows each day's bucket from a seed by repeatedly taking the nearest
unclustered place to the last one added; ties go to the first candidate in
input order. The result is deterministic but not an optimal partition.
"""

from math import ceil
from typing import List, Optional, Sequence

import numpy as np

from itinerary_engine.schemas.itinerary import Place, PlaceCluster
from itinerary_engine.services.categories import is_accommodation
from itinerary_engine.services.geo import (
    calculate_centroid,
    distance_matrix,
    effective_coords,
    geocoded,
    haversine_distance_km,
)
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)


# Helpers


def find_anchor(places: Sequence[Place]) -> Optional[Place]:
    """First accommodation-like place, kept in every day."""
    for place in places:
        if is_accommodation(place):
            return place
    return None


def sequential_distance(places: Sequence[Place]) -> float:
    """Sum of hop distances in list order, skipping places without coordinates."""
    coords = [c for c in (effective_coords(p) for p in places) if c is not None]
    return sum(haversine_distance_km(a, b) for a, b in zip(coords, coords[1:]))


def _make_cluster(places: List[Place]) -> PlaceCluster:
    coords = [effective_coords(p) for p in places]
    return PlaceCluster(
        places=places,
        centroid=calculate_centroid([c for c in coords if c is not None]),
        totalDistance=sequential_distance(places),
    )


# Strategies


def cluster_places_by_proximity(places: Sequence[Place], num_days: int) -> List[PlaceCluster]:
    """
    Partition places into at most `num_days` proximity buckets.

    Args:
        places: Candidate places; entries without coordinates are ignored
        num_days: Number of trip days, must be positive

    Returns:
        Clusters in creation order. The accommodation anchor (if any) is
        prepended to every cluster. Fewer than `num_days` clusters may be
        returned; callers pad with empty days.

    Raises:
        ValueError: if num_days <= 0
    """
    if num_days <= 0:
        raise ValueError(f"num_days must be positive, got {num_days}")

    located = geocoded(places)
    if not located:
        return []

    if len(located) <= num_days:
        return [_make_cluster(list(located))]

    anchor = find_anchor(located)
    pool = [p for p in located if p is not anchor]
    if not pool:
        return [_make_cluster([anchor])]

    per_day = ceil(len(pool) / num_days)
    dist = distance_matrix([effective_coords(p) for p in pool])
    unclustered = np.ones(len(pool), dtype=bool)

    clusters: List[PlaceCluster] = []
    while unclustered.any() and len(clusters) < num_days:
        seed = int(np.flatnonzero(unclustered)[0])
        unclustered[seed] = False
        bucket = [seed]

        while len(bucket) < per_day and unclustered.any():
            # argmin returns the first index at the minimum distance
            row = np.where(unclustered, dist[bucket[-1]], np.inf)
            nearest = int(np.argmin(row))
            unclustered[nearest] = False
            bucket.append(nearest)

        members = [pool[i] for i in bucket]
        if anchor is not None:
            members.insert(0, anchor)
        clusters.append(_make_cluster(members))

    logger.debug(
        "Clustered %d places into %d buckets (%d per day)",
        len(pool),
        len(clusters),
        per_day,
    )
    return clusters


def distribute_across_days(places: Sequence[Place], num_days: int) -> List[List[Place]]:
    """
    Even split for small place sets.

    Accommodation goes into every day; the remaining places are cut into
    consecutive slices of ceil(n / num_days). Always returns `num_days` lists.
    """
    if num_days <= 0:
        raise ValueError(f"num_days must be positive, got {num_days}")

    located = geocoded(places)
    anchor = find_anchor(located)
    others = [p for p in located if p is not anchor]
    per_day = max(1, ceil(len(others) / num_days))

    days: List[List[Place]] = []
    for day_idx in range(num_days):
        day_places = [anchor] if anchor is not None else []
        day_places.extend(others[day_idx * per_day:(day_idx + 1) * per_day])
        days.append(day_places)
    return days
