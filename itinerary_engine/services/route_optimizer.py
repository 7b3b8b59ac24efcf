"""
Intra-day visit ordering.

`optimize_visit_order` is a nearest-neighbour heuristic, not an exact TSP
solver: it starts at the accommodation (or the first place), always hops to
the closest unvisited place and breaks ties by input order. Crossing paths
are possible. The same input always yields the same route.
"""

from typing import List, Sequence

import numpy as np

from itinerary_engine.schemas.itinerary import OptimizedRoute, Place, RouteSegment
from itinerary_engine.services.categories import is_accommodation
from itinerary_engine.services.geo import distance_matrix, effective_coords, travel_minutes
from itinerary_engine.utils.logger import get_logger

logger = get_logger(__name__)

SEGMENT_MODE = "bike"


def optimize_visit_order(places: Sequence[Place]) -> OptimizedRoute:
    """
    Order one day's places by greedy nearest neighbour.

    Args:
        places: Day's places. Entries without coordinates are kept and
            appended after the routed ones, without segments.

    Returns:
        OptimizedRoute with ordered places, hop segments (bike-speed
        durations) and their summed distance
    """
    located = [p for p in places if effective_coords(p) is not None]
    unlocated = [p for p in places if effective_coords(p) is None]

    if len(located) <= 1:
        return OptimizedRoute(places=located + unlocated, totalDistance=0.0, segments=[])

    start = next((i for i, p in enumerate(located) if is_accommodation(p)), 0)
    dist = distance_matrix([effective_coords(p) for p in located])

    visited = np.zeros(len(located), dtype=bool)
    visited[start] = True
    order: List[int] = [start]
    segments: List[RouteSegment] = []

    while not visited.all():
        current = order[-1]
        row = np.where(visited, np.inf, dist[current])
        nearest = int(np.argmin(row))
        distance = float(dist[current, nearest])

        segments.append(
            RouteSegment(
                from_=located[current],
                to=located[nearest],
                distance=distance,
                duration=travel_minutes(distance, SEGMENT_MODE),
                mode=SEGMENT_MODE,
            )
        )
        visited[nearest] = True
        order.append(nearest)

    total = sum(s.distance for s in segments)
    logger.debug("Optimized %d stops, %.2f km", len(order), total)

    return OptimizedRoute(
        places=[located[i] for i in order] + unlocated,
        totalDistance=total,
        segments=segments,
    )
