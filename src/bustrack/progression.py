"""Progress of a vehicle along the stops of a route direction."""

import logging
from typing import List, Optional, Sequence

from .geo import nearest_point, nearest_stop
from .models import Progression, ShapePoint, Stop

logger = logging.getLogger(__name__)

NO_PROGRESS = Progression(passed_stops=frozenset(), next_stop_index=None)


def stop_shape_indices(stops: Sequence[Stop], shape: Sequence[ShapePoint]) -> List[int]:
    """
    Index of the shape point closest to each stop.

    Computed once per route direction; per-update progression then only scans
    the shape. Empty when there is no shape.
    """
    if not shape:
        return []
    points = [(p.lat, p.lng) for p in shape]
    indices = []
    for stop in stops:
        index, _ = nearest_point(stop.lat, stop.lng, points)
        indices.append(index)
    return indices


def _progression(last_passed: int, stop_count: int) -> Progression:
    if last_passed >= stop_count - 1:
        return Progression(passed_stops=frozenset(range(stop_count)), next_stop_index=None)
    return Progression(passed_stops=frozenset(range(last_passed + 1)), next_stop_index=last_passed + 1)


def progression_from_shape_index(vehicle_shape_index: int, indices: Sequence[int]) -> Progression:
    """
    Passed and next stops given the vehicle's shape index.

    Stops are walked in order and the walk stops at the first stop lying
    further along the shape, so passed stops are always a prefix.
    """
    last_passed = -1
    for i, stop_index in enumerate(indices):
        if stop_index <= vehicle_shape_index:
            last_passed = i
        else:
            break
    return _progression(last_passed, len(indices))


def compute_progression(
    lat: float,
    lng: float,
    stops: Sequence[Stop],
    shape: Sequence[ShapePoint],
    indices: Optional[Sequence[int]] = None,
) -> Progression:
    """
    Which stops a vehicle at (lat, lng) has passed and which one is next.

    Args:
        lat: Vehicle latitude.
        lng: Vehicle longitude.
        stops: Ordered stops of the direction.
        shape: Polyline of the direction; may be empty.
        indices: Precomputed stop_shape_indices(stops, shape).

    Returns:
        Progression whose passed stops are {0 .. next - 1}, or every stop when
        there is no next stop.
    """
    if not stops:
        return NO_PROGRESS

    if shape and indices and len(indices) == len(stops):
        vehicle_index, _ = nearest_point(lat, lng, ((p.lat, p.lng) for p in shape))
        return progression_from_shape_index(vehicle_index, indices)

    # No usable shape: the nearest stop is the boundary
    nearest_index, _ = nearest_stop(lat, lng, stops)
    logger.debug(f"Straight-line progression fallback, nearest stop {nearest_index}")
    if nearest_index >= len(stops) - 1:
        return _progression(nearest_index, len(stops))
    return _progression(nearest_index - 1, len(stops))


class RouteProgressionTracker:
    """Progression for one route direction with its stop positions precomputed."""

    def __init__(self, stops: Sequence[Stop], shape: Sequence[ShapePoint], indices: Optional[Sequence[int]] = None):
        self.stops = list(stops)
        self.shape = list(shape)
        self.indices = list(indices) if indices is not None else stop_shape_indices(self.stops, self.shape)

    def update(self, lat: float, lng: float) -> Progression:
        return compute_progression(lat, lng, self.stops, self.shape, self.indices)

    def next_stop(self, progression: Progression) -> Optional[Stop]:
        if progression.next_stop_index is None or progression.next_stop_index >= len(self.stops):
            return None
        return self.stops[progression.next_stop_index]
