"""Decides which direction of a route a live vehicle is serving."""

import logging
from typing import Iterable, Optional, Sequence

from .config import ALIGNMENT_CONE_DEGREES
from .geo import bearings_agree, initial_bearing, nearest_stop
from .models import Direction, DirectionStops, DirectionVehicles, Stop, VehiclePosition

logger = logging.getLogger(__name__)


def is_aligned(
    lat: float,
    lng: float,
    bearing: float,
    stops: Sequence[Stop],
    nearest_index: Optional[int],
    cone: float = ALIGNMENT_CONE_DEGREES,
) -> bool:
    """
    Whether the vehicle is heading toward the stop after its nearest stop.

    False when there is no following stop to compare against.
    """
    if nearest_index is None or nearest_index < 0 or nearest_index >= len(stops) - 1:
        return False
    next_stop = stops[nearest_index + 1]
    return bearings_agree(initial_bearing(lat, lng, next_stop.lat, next_stop.lng), bearing, cone)


def classify_direction(
    lat: float,
    lng: float,
    bearing: Optional[float],
    direction0: Sequence[Stop],
    direction1: Sequence[Stop],
    cone: float = ALIGNMENT_CONE_DEGREES,
) -> Direction:
    """
    Classify a vehicle position against the two stop sequences of its route.

    An empty sequence hands the decision to the other direction (OUTBOUND when
    both are empty). With a bearing, a direction whose next stop lies within
    the alignment cone wins when it is the only one. Otherwise the direction
    with the closer nearest stop wins, OUTBOUND on a tie.
    """
    if not direction1:
        return Direction.OUTBOUND
    if not direction0:
        return Direction.INBOUND

    index0, distance0 = nearest_stop(lat, lng, direction0)
    index1, distance1 = nearest_stop(lat, lng, direction1)

    if bearing is not None:
        aligned0 = is_aligned(lat, lng, bearing, direction0, index0, cone)
        aligned1 = is_aligned(lat, lng, bearing, direction1, index1, cone)
        if aligned1 and not aligned0:
            return Direction.INBOUND
        if aligned0 and not aligned1:
            return Direction.OUTBOUND

    return Direction.INBOUND if distance1 < distance0 else Direction.OUTBOUND


def classify_vehicle(
    vehicle: VehiclePosition, stops: DirectionStops, cone: float = ALIGNMENT_CONE_DEGREES
) -> Direction:
    return classify_direction(
        vehicle.latitude, vehicle.longitude, vehicle.bearing, stops.direction0, stops.direction1, cone
    )


def partition_by_direction(
    vehicles: Iterable[VehiclePosition], stops: DirectionStops, cone: float = ALIGNMENT_CONE_DEGREES
) -> DirectionVehicles:
    """Split the live vehicles of one route by the direction each is serving."""
    result = DirectionVehicles()
    for vehicle in vehicles:
        if classify_vehicle(vehicle, stops, cone) == Direction.OUTBOUND:
            result.direction0.append(vehicle)
        else:
            result.direction1.append(vehicle)
    logger.debug(f"Partitioned vehicles: {len(result.direction0)} outbound, {len(result.direction1)} inbound")
    return result
