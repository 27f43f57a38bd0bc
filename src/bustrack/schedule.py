"""Matches live vehicles to scheduled trips and computes schedule adherence."""

import logging
import math
from datetime import datetime
from typing import Iterable, List, Mapping, Optional

from .models import DelayState, DelayStatus, Direction, StopTime, Trip

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440
HALF_DAY_MINUTES = 720


def parse_gtfs_time(time_str: str) -> Optional[float]:
    """
    Minutes since the start of the service day for a GTFS "HH:MM:SS" time.

    Hours of 24 and above are kept as they are ("25:30:00" is 1530), since
    they belong to the previous day's service. Returns None when malformed.
    """
    try:
        parts = [int(p) for p in time_str.strip().split(":")]
    except (ValueError, AttributeError):
        return None
    if len(parts) == 2:
        parts.append(0)
    if len(parts) != 3 or any(p < 0 for p in parts):
        return None
    hours, minutes, seconds = parts
    return hours * 60 + minutes + seconds / 60


def current_time_minutes(now: datetime = None) -> float:
    """Minutes since local midnight, with seconds as a fraction."""
    now = now or datetime.now()
    return now.hour * 60 + now.minute + now.second / 60


def format_time(minutes: float) -> str:
    """Clock string "HH:MM" for a minutes value, hours taken modulo 24."""
    hours = int(minutes // 60) % 24
    mins = int(minutes % 60)
    return f"{hours:02d}:{mins:02d}"


def wrap_difference(diff: float) -> float:
    """
    Fold a time difference onto the nearer side of a 24h day, in [0, 720].

    Differences of a day or more occur with service-day times past 24:00.
    """
    diff = abs(diff) % MINUTES_PER_DAY
    return min(diff, MINUTES_PER_DAY - diff)


def normalize_delay(delay: float) -> float:
    """Bring a signed delay into (-720, 720] minutes."""
    if delay > HALF_DAY_MINUTES:
        return delay - MINUTES_PER_DAY
    if delay < -HALF_DAY_MINUTES:
        return delay + MINUTES_PER_DAY
    return delay


def scheduled_arrival(stop_times: Iterable[StopTime], stop_id: str) -> Optional[float]:
    """Arrival minutes of the first visit to `stop_id`; None when not visited."""
    for stop_time in stop_times:
        if stop_time.stop_id == stop_id:
            return parse_gtfs_time(stop_time.arrival_time)
    return None


def _span_distance(now: float, stop_times: List[StopTime]) -> Optional[float]:
    """How far `now` lies outside a trip's first-to-last stop span; 0 inside."""
    first = parse_gtfs_time(stop_times[0].arrival_time)
    last = parse_gtfs_time(stop_times[-1].arrival_time)
    if first is None or last is None:
        return None

    if first <= last:
        # Times past 24:00 belong to the previous service day
        candidates = [now, now + MINUTES_PER_DAY] if last >= MINUTES_PER_DAY else [now]
        distances = []
        for t in candidates:
            if first <= t <= last:
                return 0.0
            distances.append(first - t if t < first else t - last)
        return min(distances)

    # Trip spans midnight
    if now >= first or now <= last:
        return 0.0
    return min(wrap_difference(abs(first - now)), wrap_difference(abs(now - last)))


def find_active_trip(
    trips: Iterable[Trip],
    stop_times_by_trip: Mapping[str, List[StopTime]],
    direction: Direction,
    now_minutes: float,
    next_stop_id: Optional[str] = None,
) -> Optional[Trip]:
    """
    The scheduled trip a live vehicle most plausibly runs.

    With `next_stop_id`, trips are ranked by how close their scheduled arrival
    at that stop is to now, across the day wrap. Without it, by how far now
    falls outside each trip's scheduled span. The first trip wins ties.

    Args:
        trips: Candidate trips of the route.
        stop_times_by_trip: trip_id -> stop times ordered by stop_sequence.
        direction: Only trips of this direction are considered.
        now_minutes: Current time as minutes since midnight.
        next_stop_id: Stop the vehicle is heading to, when known.

    Returns:
        The best trip, or None when no trip has usable schedule data.
    """
    best_trip = None
    best_score = float("inf")

    for trip in trips:
        if trip.direction_id != direction:
            continue
        stop_times = stop_times_by_trip.get(trip.trip_id)
        if not stop_times:
            continue

        if next_stop_id:
            scheduled = scheduled_arrival(stop_times, next_stop_id)
            if scheduled is None:
                continue
            score = wrap_difference(abs(now_minutes - scheduled))
        else:
            score = _span_distance(now_minutes, stop_times)
            if score is None:
                continue

        if score < best_score:
            best_score = score
            best_trip = trip

    return best_trip


def calculate_delay_status(
    next_stop_id: str,
    active_trip: Optional[Trip],
    stop_times_by_trip: Mapping[str, List[StopTime]],
    now_minutes: float,
) -> Optional[DelayStatus]:
    """
    Delay of a vehicle at its next stop against the active trip's schedule.

    Returns None when there is no active trip or it does not serve the stop;
    that means "not enough data", not an error. A vehicle ahead of schedule is
    reported on time and its estimate never precedes the schedule.
    """
    if active_trip is None:
        return None
    stop_times = stop_times_by_trip.get(active_trip.trip_id)
    if not stop_times:
        return None
    scheduled = scheduled_arrival(stop_times, next_stop_id)
    if scheduled is None:
        return None

    delay = normalize_delay(now_minutes - scheduled)
    status = DelayState.ON_TIME if delay <= 0 else DelayState.LATE
    estimated = scheduled + max(0.0, delay)

    return DelayStatus(
        status=status,
        delay_minutes=0 if status == DelayState.ON_TIME else math.floor(delay + 0.5),
        scheduled_minutes=scheduled,
        estimated_minutes=estimated,
        scheduled_time=format_time(scheduled),
        estimated_time=format_time(estimated),
    )
