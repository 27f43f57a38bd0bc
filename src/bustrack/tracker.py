"""Main bus tracker: correlates live vehicles with the static schedule."""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from .config import TrackerConfig
from .direction import classify_vehicle, partition_by_direction
from .executor import TaskExecutor, make_executor
from .gtfs_loader import GTFSStore
from .inflight import InFlightRequests
from .models import (
    Direction,
    DirectionVehicles,
    Route,
    RouteContext,
    VehiclePosition,
    VehicleStatus,
)
from .progression import NO_PROGRESS, RouteProgressionTracker, stop_shape_indices
from .route_sort import search_routes, sort_routes
from .schedule import calculate_delay_status, current_time_minutes, find_active_trip
from .vehicle_client import VehicleFeedClient

logger = logging.getLogger(__name__)


class BusTracker:
    """
    Follows live buses against the static GTFS schedule.

    This class provides methods to:
    - Load and cache the per-route reference data (stops, shapes, schedule)
    - Classify each vehicle's direction and its progress along the route
    - Match each vehicle to a scheduled trip and report its delay
    - Refresh the live vehicle positions on a fixed interval
    """

    def __init__(
        self,
        config: TrackerConfig = None,
        store: GTFSStore = None,
        feed_client: VehicleFeedClient = None,
        executor: TaskExecutor = None,
    ):
        """
        Initialize the tracker.

        Args:
            config: Settings; defaults to TrackerConfig() read from the environment.
            store: GTFS store; built from the config when omitted.
            feed_client: Live feed client; built from the config when omitted.
            executor: Where heavy work runs; built from config.worker_threads when omitted.
        """
        self.config = config or TrackerConfig()
        self._owns_executor = executor is None
        self.executor = executor or make_executor(self.config.worker_threads)
        self._owns_store = store is None
        self.store = store or GTFSStore(
            self.config.gtfs_data_path, executor=self.executor, timeout=self.config.http_timeout
        )
        self.feed_client = feed_client or VehicleFeedClient(
            self.config.live_feed_url,
            timeout=self.config.http_timeout,
            cache_ttl=self.config.live_feed_cache_ttl,
        )

        self.positions: List[VehiclePosition] = []
        self.last_refresh: Optional[datetime] = None
        self._contexts: Dict[str, RouteContext] = {}
        self._inflight: InFlightRequests = InFlightRequests()

    # Routes

    async def list_routes(self) -> List[Route]:
        """Every route in display order."""
        return sort_routes(await self.store.fetch_routes())

    async def search_routes(self, search_term: str = "", selected_lines: List[str] = None) -> List[Route]:
        routes, stop_names = await asyncio.gather(self.store.fetch_routes(), self.store.fetch_route_stop_names())
        return search_routes(routes, search_term, selected_lines, stop_names)

    async def resolve_route(self, vehicle: VehiclePosition) -> Optional[Route]:
        """Route a vehicle runs, matched on its line code."""
        return await self.store.find_route_by_short_name(vehicle.line)

    async def load_route(self, route_id: str) -> Optional[RouteContext]:
        """
        Reference data for one route, built once and kept for the session.

        Returns None when the route is unknown.
        """
        if route_id in self._contexts:
            return self._contexts[route_id]
        return await self._inflight.run(route_id, lambda: self._build_context(route_id))

    async def _build_context(self, route_id: str) -> Optional[RouteContext]:
        route = await self.store.get_route(route_id)
        if route is None:
            logger.warning(f"Route {route_id} not found")
            return None

        trips, representative, stops, shapes, stop_times_by_trip = await asyncio.gather(
            self.store.fetch_trips(route_id),
            self.store.fetch_representative_trips(route_id),
            self.store.fetch_stops_for_route(route_id),
            self.store.fetch_route_shapes(route_id),
            self.store.fetch_stop_times_by_trip(route_id),
        )

        indices0, indices1 = await asyncio.gather(
            self.executor.submit(stop_shape_indices, stops.direction0, shapes.direction0),
            self.executor.submit(stop_shape_indices, stops.direction1, shapes.direction1),
        )

        context = RouteContext(
            route=route,
            trips=trips,
            representative_trips=representative,
            stops=stops,
            shapes=shapes,
            stop_shape_indices={Direction.OUTBOUND: indices0, Direction.INBOUND: indices1},
            stop_times_by_trip=stop_times_by_trip,
        )
        # Incomplete data is not kept so a later call can retry
        if trips and stop_times_by_trip:
            self._contexts[route_id] = context
        logger.info(
            f"Loaded route {route.short_name}: {len(stops.direction0)}/{len(stops.direction1)} stops, "
            f"{len(trips)} trips"
        )
        return context

    # Vehicles

    async def track_vehicle(
        self,
        vehicle: VehiclePosition,
        route_id: str = None,
        now_minutes: float = None,
    ) -> VehicleStatus:
        """
        Direction, progression and delay of one vehicle.

        Args:
            vehicle: Latest position of the vehicle.
            route_id: Route to use; resolved from the vehicle's line when omitted.
            now_minutes: Clock time in minutes since midnight; defaults to now.

        Returns:
            VehicleStatus. Missing schedule data leaves the route, trip or
            delay empty and the direction OUTBOUND.
        """
        if route_id is None:
            route = await self.resolve_route(vehicle)
            route_id = route.id if route else None
        context = await self.load_route(route_id) if route_id else None
        if context is None:
            return VehicleStatus(vehicle=vehicle, route=None, direction=Direction.OUTBOUND, progression=NO_PROGRESS)
        return self.status_for(context, vehicle, now_minutes)

    def status_for(
        self, context: RouteContext, vehicle: VehiclePosition, now_minutes: float = None
    ) -> VehicleStatus:
        """Synchronous per-tick evaluation against already loaded route data."""
        if now_minutes is None:
            now_minutes = current_time_minutes()

        direction = classify_vehicle(vehicle, context.stops, self.config.alignment_cone)
        progress_tracker = RouteProgressionTracker(
            context.stops.for_direction(direction),
            context.shapes.for_direction(direction),
            context.stop_shape_indices.get(direction),
        )
        progression = progress_tracker.update(vehicle.latitude, vehicle.longitude)
        next_stop = progress_tracker.next_stop(progression)

        active_trip = find_active_trip(
            context.trips,
            context.stop_times_by_trip,
            direction,
            now_minutes,
            next_stop.id if next_stop else None,
        )
        delay = None
        if next_stop is not None:
            delay = calculate_delay_status(next_stop.id, active_trip, context.stop_times_by_trip, now_minutes)

        return VehicleStatus(
            vehicle=vehicle,
            route=context.route,
            direction=direction,
            progression=progression,
            next_stop=next_stop,
            active_trip=active_trip,
            delay=delay,
        )

    async def vehicles_by_direction(self, route_id: str) -> DirectionVehicles:
        """Current vehicles of a route split by direction."""
        context = await self.load_route(route_id)
        if context is None:
            return DirectionVehicles()
        vehicles = [v for v in self.positions if v.line.casefold() == context.route.short_name.casefold()]
        return partition_by_direction(vehicles, context.stops, self.config.alignment_cone)

    async def refresh_positions(self) -> List[VehiclePosition]:
        """
        Fetch the live feed and replace the known positions wholesale.

        An empty fetch keeps the previous positions, since it usually means the
        feed was unavailable.
        """
        routes = await self.store.fetch_routes()
        short_names = {route.id: route.short_name for route in routes}
        loop = asyncio.get_running_loop()
        positions = await loop.run_in_executor(None, self.feed_client.fetch_positions, short_names)
        if positions:
            self.positions = positions
            self.last_refresh = datetime.now()
        return self.positions

    async def poll(
        self,
        on_update: Callable[[List[VehiclePosition]], Optional[Awaitable[None]]] = None,
        iterations: int = None,
    ) -> None:
        """
        Refresh positions every `config.refresh_interval` seconds.

        Args:
            on_update: Called with the positions after each refresh; may be a coroutine function.
            iterations: Stop after this many refreshes; run until cancelled when None.
        """
        count = 0
        while iterations is None or count < iterations:
            positions = await self.refresh_positions()
            if on_update is not None:
                result = on_update(positions)
                if asyncio.iscoroutine(result):
                    await result
            count += 1
            if iterations is None or count < iterations:
                await asyncio.sleep(self.config.refresh_interval)

    def cleanup(self) -> None:
        """Release resources and clear caches."""
        self.feed_client.clear_cache()
        self._contexts.clear()
        self.positions = []
        self.last_refresh = None
        if self._owns_store:
            self.store.invalidate()
        if self._owns_executor:
            self.executor.shutdown()
        logger.info("Cleaned up tracker resources")
