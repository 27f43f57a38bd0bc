"""Data models for the bus tracking engine."""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, FrozenSet, List, Optional


class Direction(IntEnum):
    """GTFS direction_id of a trip."""
    OUTBOUND = 0
    INBOUND = 1


class DelayState(str, Enum):
    ON_TIME = "on-time"
    LATE = "late"


@dataclass(frozen=True)
class Stop:
    """Represents a GTFS stop."""
    id: str
    name: str
    lat: float
    lng: float


@dataclass(frozen=True)
class Route:
    """Represents a GTFS route (a public line)."""
    id: str
    short_name: str
    long_name: str
    color: str = ""
    text_color: str = ""
    desc: str = ""
    url: str = ""


@dataclass(frozen=True)
class Trip:
    """Represents one scheduled run of a route."""
    route_id: str
    trip_id: str
    headsign: str
    direction_id: Direction
    shape_id: str


@dataclass(frozen=True)
class StopTime:
    """Scheduled visit of a trip at a stop."""
    trip_id: str
    arrival_time: str  # "HH:MM:SS", hours may exceed 23
    departure_time: str
    stop_id: str
    stop_sequence: int


@dataclass(frozen=True)
class ShapePoint:
    """One vertex of a shape polyline."""
    shape_id: str
    lat: float
    lng: float
    sequence: int


@dataclass(frozen=True)
class VehiclePosition:
    """Latest known position of a live vehicle."""
    id: str
    line: str  # Route short name
    latitude: float
    longitude: float
    bearing: Optional[float] = None
    speed: Optional[float] = None
    timestamp: str = ""


@dataclass
class DirectionStops:
    """Ordered stops of the representative trip of each direction."""
    direction0: List[Stop] = field(default_factory=list)
    direction1: List[Stop] = field(default_factory=list)

    def for_direction(self, direction: Direction) -> List[Stop]:
        return self.direction0 if direction == Direction.OUTBOUND else self.direction1


@dataclass
class DirectionShapes:
    """Shape polylines of the representative trip of each direction."""
    direction0: List[ShapePoint] = field(default_factory=list)
    direction1: List[ShapePoint] = field(default_factory=list)

    def for_direction(self, direction: Direction) -> List[ShapePoint]:
        return self.direction0 if direction == Direction.OUTBOUND else self.direction1


@dataclass
class RepresentativeTrips:
    """Canonical trip per direction; None when a direction has no trips."""
    direction0: Optional[Trip] = None
    direction1: Optional[Trip] = None

    def for_direction(self, direction: Direction) -> Optional[Trip]:
        return self.direction0 if direction == Direction.OUTBOUND else self.direction1


@dataclass
class DirectionVehicles:
    """Live vehicles of a route split by the direction they serve."""
    direction0: List[VehiclePosition] = field(default_factory=list)
    direction1: List[VehiclePosition] = field(default_factory=list)


@dataclass(frozen=True)
class Progression:
    """Stops passed by a vehicle and the next stop it will reach."""
    passed_stops: FrozenSet[int]
    next_stop_index: Optional[int]


@dataclass(frozen=True)
class DelayStatus:
    """Schedule adherence at the next stop."""
    status: DelayState
    delay_minutes: int
    scheduled_minutes: float
    estimated_minutes: float
    scheduled_time: str  # "HH:MM"
    estimated_time: str  # "HH:MM"


@dataclass
class RouteContext:
    """Everything needed to follow vehicles on one route, computed once per route."""
    route: Route
    trips: List[Trip]
    representative_trips: RepresentativeTrips
    stops: DirectionStops
    shapes: DirectionShapes
    stop_shape_indices: Dict[Direction, List[int]]
    stop_times_by_trip: Dict[str, List[StopTime]]


@dataclass
class VehicleStatus:
    """Derived state of one live vehicle."""
    vehicle: VehiclePosition
    route: Optional[Route]
    direction: Direction
    progression: Progression
    next_stop: Optional[Stop] = None
    active_trip: Optional[Trip] = None
    delay: Optional[DelayStatus] = None
