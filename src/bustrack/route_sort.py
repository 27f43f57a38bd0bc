"""Deterministic ordering and search ranking of routes by their line codes."""

import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .config import NIGHT_SERVICE_SUFFIX, ZONAL_SERVICE_PREFIX
from .models import Route

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_DIGIT_RUNS = re.compile(r"(\d+)")

# Bucket order: hundreds ranges, then >= 1000, then night, zonal, unparseable
NIGHT_PRIORITY = 10
ZONAL_PRIORITY = 11
UNPARSEABLE_PRIORITY = 12

EXACT_MATCH_SCORE = 1000
PREFIX_MATCH_SCORE = 800
LONG_NAME_PREFIX_SCORE = 600
LONG_NAME_MATCH_SCORE = 400
STOP_NAME_MATCH_SCORE = 100


def route_priority(short_name: str) -> int:
    """
    Bucket of a line code.

    0 for numbers below 200, 1 for 200-299 and so on up to 8 for 900-999,
    9 for larger numbers. Night lines come next, then zonal lines, and codes
    that do not start with a number come last.
    """
    if short_name.endswith(NIGHT_SERVICE_SUFFIX):
        return NIGHT_PRIORITY
    if short_name.startswith(ZONAL_SERVICE_PREFIX):
        return ZONAL_PRIORITY

    match = _LEADING_INT.match(short_name)
    if not match:
        return UNPARSEABLE_PRIORITY
    number = int(match.group(1))
    if number < 200:
        return 0
    if number < 1000:
        return number // 100 - 1
    return 9


def natural_key(text: str) -> Tuple:
    """Case-insensitive key comparing digit runs by value ("9" < "10")."""
    parts = _DIGIT_RUNS.split(text.casefold())
    # Alternate (0, number) and (1, text) so numbers and text never compare directly
    return tuple((0, int(p)) if p.isdigit() else (1, p) for p in parts if p != "")


def route_sort_key(route: Route) -> Tuple:
    return (route_priority(route.short_name), natural_key(route.short_name), route.short_name, route.id)


def compare_routes(a: Route, b: Route) -> int:
    key_a, key_b = route_sort_key(a), route_sort_key(b)
    return (key_a > key_b) - (key_a < key_b)


def sort_routes(routes: Iterable[Route]) -> List[Route]:
    return sorted(routes, key=route_sort_key)


def _search_score(route: Route, term: str, stop_names: Optional[Set[str]]) -> int:
    short_name = route.short_name.lower()
    long_name = route.long_name.lower()
    if short_name == term:
        return EXACT_MATCH_SCORE
    if short_name.startswith(term):
        return PREFIX_MATCH_SCORE
    if term in long_name:
        return LONG_NAME_PREFIX_SCORE if long_name.startswith(term) else LONG_NAME_MATCH_SCORE
    if stop_names and any(term in name for name in stop_names):
        return STOP_NAME_MATCH_SCORE
    return -1


def search_routes(
    routes: Iterable[Route],
    search_term: str = "",
    selected_lines: Optional[Iterable[str]] = None,
    route_stop_names: Optional[Dict[str, Set[str]]] = None,
) -> List[Route]:
    """
    Filter and rank routes for a search box.

    Args:
        routes: All routes.
        search_term: Free text; blank lists every route in bucket order.
        selected_lines: When non-empty, only routes with these short names.
        route_stop_names: route_id -> lower-cased stop names, to match routes by stop.

    Returns:
        Matching routes, best score first, ties in bucket order.
    """
    candidates = list(routes)
    selected = set(selected_lines or [])
    if selected:
        candidates = [route for route in candidates if route.short_name in selected]

    term = (search_term or "").strip().lower()
    if not term:
        return sort_routes(candidates)

    stop_names = route_stop_names or {}
    scored = []
    for route in candidates:
        score = _search_score(route, term, stop_names.get(route.id))
        if score >= 0:
            scored.append((score, route))

    scored.sort(key=lambda item: (-item[0], route_sort_key(item[1])))
    return [route for _, route in scored]
