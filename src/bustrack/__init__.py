"""BusTrack - live bus direction, progression and delay from a GTFS schedule."""

__version__ = "0.1.0"

from .models import (
    DelayState,
    DelayStatus,
    Direction,
    Progression,
    Route,
    ShapePoint,
    Stop,
    StopTime,
    Trip,
    VehiclePosition,
    VehicleStatus,
)
from .config import TrackerConfig
from .gtfs_loader import GTFSStore
from .direction import classify_direction
from .trip_selector import select_representative_trips
from .progression import RouteProgressionTracker, compute_progression
from .schedule import calculate_delay_status, find_active_trip, parse_gtfs_time
from .route_sort import compare_routes, search_routes, sort_routes
from .vehicle_client import VehicleFeedClient
from .tracker import BusTracker

__all__ = [
    "BusTracker",
    "GTFSStore",
    "VehicleFeedClient",
    "TrackerConfig",
    "RouteProgressionTracker",
    "classify_direction",
    "select_representative_trips",
    "compute_progression",
    "find_active_trip",
    "calculate_delay_status",
    "parse_gtfs_time",
    "compare_routes",
    "sort_routes",
    "search_routes",
    "Direction",
    "DelayState",
    "DelayStatus",
    "Progression",
    "Route",
    "ShapePoint",
    "Stop",
    "StopTime",
    "Trip",
    "VehiclePosition",
    "VehicleStatus",
]
