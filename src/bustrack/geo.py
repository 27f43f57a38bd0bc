"""Geometry helpers: great-circle distance, bearings and nearest-point search."""

import math
from typing import Iterable, Optional, Sequence, Tuple

# Mean Earth radius in meters
EARTH_RADIUS_M = 6371000.0


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two points given in degrees."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def initial_bearing(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Initial great-circle bearing from point 1 to point 2, in degrees [0, 360)."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlng = math.radians(lng2 - lng1)
    x = math.sin(dlng) * math.cos(lat2_rad)
    y = math.cos(lat1_rad) * math.sin(lat2_rad) - math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(dlng)
    return math.degrees(math.atan2(x, y)) % 360.0


def bearing_difference(a: float, b: float) -> float:
    """Absolute difference of two bearings after normalizing both to [0, 360)."""
    return abs((a % 360.0) - (b % 360.0))


def bearings_agree(a: float, b: float, cone: float) -> bool:
    """True when two bearings are within `cone` degrees of each other, across the 0/360 wrap."""
    diff = bearing_difference(a, b)
    return diff < cone or diff > 360.0 - cone


def nearest_point(
    lat: float, lng: float, points: Iterable[Tuple[float, float]]
) -> Tuple[Optional[int], float]:
    """
    Linear scan for the point closest to (lat, lng).

    Args:
        lat: Latitude of the probe.
        lng: Longitude of the probe.
        points: (lat, lng) pairs in polyline or sequence order.

    Returns:
        (index, distance in meters); (None, inf) when `points` is empty.
        The first of several equidistant points wins.
    """
    best_index = None
    best_distance = math.inf
    for index, (p_lat, p_lng) in enumerate(points):
        distance = haversine_distance(lat, lng, p_lat, p_lng)
        if distance < best_distance:
            best_distance = distance
            best_index = index
    return best_index, best_distance


def nearest_stop(lat: float, lng: float, stops: Sequence) -> Tuple[Optional[int], float]:
    """Nearest item of a sequence of objects exposing `lat` and `lng`."""
    return nearest_point(lat, lng, ((s.lat, s.lng) for s in stops))
