"""Choice of one canonical trip per route direction."""

import logging
import unicodedata
from typing import Iterable, List, Mapping, Optional

from .models import Direction, RepresentativeTrips, Route, Trip

logger = logging.getLogger(__name__)

TERMINAL_MATCH_BONUS = 1000
TERMINAL_SEPARATOR = " - "


def _normalize(text: str) -> str:
    """Casefold and strip accents so "S. João" matches "S. JOAO"."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return " ".join(stripped.casefold().split())


def route_terminals(route: Optional[Route]) -> List[str]:
    """The two endpoints named in a long name such as "Bolhão - Campanhã"."""
    if route is None or not route.long_name:
        return []
    parts = [p for p in (_normalize(part) for part in route.long_name.split(TERMINAL_SEPARATOR)) if p]
    if len(parts) < 2:
        return parts
    return [parts[0], parts[-1]]


def headsign_matches_terminal(headsign: str, terminals: Iterable[str]) -> bool:
    """True when the headsign and one terminal name contain one another."""
    normalized = _normalize(headsign)
    if not normalized:
        return False
    return any(t and (t in normalized or normalized in t) for t in terminals)


def score_trip(trip: Trip, stop_count: int, terminals: List[str]) -> int:
    score = stop_count
    if headsign_matches_terminal(trip.headsign, terminals):
        score += TERMINAL_MATCH_BONUS
    return score


def select_representative_trips(
    route: Optional[Route],
    trips: Iterable[Trip],
    stop_counts: Mapping[str, int],
) -> RepresentativeTrips:
    """
    Pick the trip that best stands for each direction of a route.

    Each candidate scores its number of stop-time rows, plus a large bonus when
    its headsign names one of the route's terminals. Equal scores go to the
    smallest trip_id so the choice does not depend on table order.

    Args:
        route: The route; its long name supplies the terminals.
        trips: Trips of the route, any direction.
        stop_counts: trip_id -> number of stop-time rows.

    Returns:
        RepresentativeTrips with None for a direction without trips.
    """
    terminals = route_terminals(route)
    best = {}
    for trip in trips:
        key = (-score_trip(trip, stop_counts.get(trip.trip_id, 0), terminals), trip.trip_id)
        current = best.get(trip.direction_id)
        if current is None or key < current[0]:
            best[trip.direction_id] = (key, trip)

    result = RepresentativeTrips(
        direction0=best[Direction.OUTBOUND][1] if Direction.OUTBOUND in best else None,
        direction1=best[Direction.INBOUND][1] if Direction.INBOUND in best else None,
    )
    logger.debug(
        f"Representative trips for {route.id if route else '?'}: "
        f"{result.direction0.trip_id if result.direction0 else None}, "
        f"{result.direction1.trip_id if result.direction1 else None}"
    )
    return result
