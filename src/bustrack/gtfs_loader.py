"""GTFS static schedule store: loads, parses and indexes the schedule tables."""

import asyncio
import io
import logging
import threading
import zipfile
from collections import defaultdict
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Union

import pandas as pd
import requests

from .config import GTFS_DATA_PATH, HTTP_TIMEOUT_SECONDS, UNKNOWN_HEADSIGN
from .executor import InlineExecutor, TaskExecutor
from .inflight import InFlightRequests
from .models import (
    Direction,
    DirectionShapes,
    DirectionStops,
    RepresentativeTrips,
    Route,
    ShapePoint,
    Stop,
    StopTime,
    Trip,
)
from .trip_selector import select_representative_trips

logger = logging.getLogger(__name__)


class GTFSSource:
    """Where the raw schedule tables come from."""

    def read(self, name: str) -> bytes:
        """Return the raw bytes of a table such as "stops.txt"."""
        raise NotImplementedError


class DirectorySource(GTFSSource):
    """Tables stored as files in a local directory."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read(self, name: str) -> bytes:
        return (self.path / name).read_bytes()

    def __repr__(self):
        return f"DirectorySource({str(self.path)!r})"


class UrlSource(GTFSSource):
    """Tables served individually over HTTP under a base URL."""

    def __init__(self, base_url: str, timeout: float = HTTP_TIMEOUT_SECONDS, session: requests.Session = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def read(self, name: str) -> bytes:
        url = f"{self.base_url}/{name}"
        logger.debug(f"Downloading {url}")
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.content

    def __repr__(self):
        return f"UrlSource({self.base_url!r})"


class ZipSource(GTFSSource):
    """A GTFS zip archive, local or remote. The archive is read once."""

    def __init__(self, location: str, timeout: float = HTTP_TIMEOUT_SECONDS, session: requests.Session = None):
        self.location = location
        self.timeout = timeout
        self.session = session
        self._archive: Optional[bytes] = None
        self._lock = threading.Lock()

    def _load_archive(self) -> bytes:
        with self._lock:
            if self._archive is None:
                if self.location.startswith(("http://", "https://")):
                    logger.info(f"Downloading GTFS archive from {self.location}")
                    session = self.session or requests.Session()
                    response = session.get(self.location, timeout=self.timeout)
                    response.raise_for_status()
                    self._archive = response.content
                else:
                    self._archive = Path(self.location).read_bytes()
            return self._archive

    def read(self, name: str) -> bytes:
        with zipfile.ZipFile(io.BytesIO(self._load_archive())) as zip_file:
            # Some feeds nest the tables in a folder inside the archive
            for member in zip_file.namelist():
                if member == name or member.endswith("/" + name):
                    return zip_file.read(member)
        raise FileNotFoundError(f"{name} not found in {self.location}")

    def __repr__(self):
        return f"ZipSource({self.location!r})"


def open_source(location: Union[str, Path, GTFSSource], timeout: float = HTTP_TIMEOUT_SECONDS) -> GTFSSource:
    """Pick a source for a directory path, a zip path/URL, or a base URL."""
    if isinstance(location, GTFSSource):
        return location
    if isinstance(location, Path):
        location = str(location)
    if not isinstance(location, str) or not location:
        raise ValueError(f"Unsupported GTFS location: {location!r}")
    if location.lower().endswith(".zip"):
        return ZipSource(location, timeout=timeout)
    if location.startswith(("http://", "https://")):
        return UrlSource(location, timeout=timeout)
    return DirectorySource(location)


# Table parsing. These are plain functions so they can run on a worker thread.

def read_table(data: bytes) -> pd.DataFrame:
    """Parse a comma-delimited table with a header row; every cell is a string."""
    if not data or not data.strip():
        return pd.DataFrame()
    df = pd.read_csv(
        io.BytesIO(data),
        dtype=str,
        keep_default_na=False,
        encoding="utf-8-sig",
        skipinitialspace=True,
    )
    df.columns = [str(c).strip() for c in df.columns]
    return df


def _text(df: pd.DataFrame, column: str, default: str = "") -> pd.Series:
    if column not in df.columns:
        return pd.Series([default] * len(df), index=df.index, dtype=object)
    return df[column].astype(str).str.strip()


def _number(df: pd.DataFrame, column: str) -> pd.Series:
    return pd.to_numeric(_text(df, column), errors="coerce")


def _drop_invalid(df: pd.DataFrame, mask: pd.Series, table: str) -> pd.DataFrame:
    dropped = int((~mask).sum())
    if dropped:
        logger.warning(f"Dropped {dropped} malformed rows from {table}")
    return df[mask]


def parse_routes(data: bytes) -> List[Route]:
    df = read_table(data)
    if df.empty:
        return []
    return [
        Route(id=r, short_name=s, long_name=l, color=c, text_color=t, desc=d, url=u)
        for r, s, l, c, t, d, u in zip(
            _text(df, "route_id"),
            _text(df, "route_short_name"),
            _text(df, "route_long_name"),
            _text(df, "route_color"),
            _text(df, "route_text_color"),
            _text(df, "route_desc"),
            _text(df, "route_url"),
        )
    ]


def parse_trips(data: bytes, unknown_headsign: str = UNKNOWN_HEADSIGN) -> List[Trip]:
    df = read_table(data)
    if df.empty:
        return []
    directions = _number(df, "direction_id").fillna(0)
    return [
        Trip(
            route_id=route_id,
            trip_id=trip_id,
            headsign=headsign or unknown_headsign,
            direction_id=Direction.INBOUND if direction == 1 else Direction.OUTBOUND,
            shape_id=shape_id,
        )
        for route_id, trip_id, headsign, direction, shape_id in zip(
            _text(df, "route_id"),
            _text(df, "trip_id"),
            _text(df, "trip_headsign"),
            directions,
            _text(df, "shape_id"),
        )
    ]


def parse_stop_times(data: bytes) -> List[StopTime]:
    df = read_table(data)
    if df.empty:
        return []
    df = df.assign(_seq=_number(df, "stop_sequence"))
    df = _drop_invalid(df, df["_seq"].notna(), "stop_times.txt")
    return [
        StopTime(trip_id=t, arrival_time=a, departure_time=d, stop_id=s, stop_sequence=int(q))
        for t, a, d, s, q in zip(
            _text(df, "trip_id"),
            _text(df, "arrival_time"),
            _text(df, "departure_time"),
            _text(df, "stop_id"),
            df["_seq"],
        )
    ]


def parse_stops(data: bytes) -> List[Stop]:
    df = read_table(data)
    if df.empty:
        return []
    df = df.assign(_lat=_number(df, "stop_lat"), _lng=_number(df, "stop_lon"))
    df = _drop_invalid(df, df["_lat"].notna() & df["_lng"].notna(), "stops.txt")
    return [
        Stop(id=i, name=n, lat=float(lat), lng=float(lng))
        for i, n, lat, lng in zip(_text(df, "stop_id"), _text(df, "stop_name"), df["_lat"], df["_lng"])
    ]


def parse_shapes(data: bytes) -> Dict[str, List[ShapePoint]]:
    """Group shape points by shape_id, each group sorted by sequence."""
    df = read_table(data)
    if df.empty:
        return {}
    df = df.assign(
        _id=_text(df, "shape_id"),
        _lat=_number(df, "shape_pt_lat"),
        _lng=_number(df, "shape_pt_lon"),
        _seq=_number(df, "shape_pt_sequence"),
    )
    valid = (df["_id"] != "") & df["_lat"].notna() & df["_lng"].notna() & df["_seq"].notna()
    df = _drop_invalid(df, valid, "shapes.txt")
    df = df.sort_values(["_id", "_seq"], kind="mergesort")

    shapes: Dict[str, List[ShapePoint]] = {}
    for shape_id, group in df.groupby("_id", sort=False):
        shapes[shape_id] = [
            ShapePoint(shape_id=shape_id, lat=float(lat), lng=float(lng), sequence=int(seq))
            for lat, lng, seq in zip(group["_lat"], group["_lng"], group["_seq"])
        ]
    return shapes


class GTFSStore:
    """
    Loads the static GTFS tables on demand and keeps them for the session.

    Every table is parsed at most once per store instance. Concurrent requests
    for a table that is still loading share a single load. A failed load is
    logged and yields an empty collection; it is not cached, so a later call
    tries again.
    """

    def __init__(
        self,
        source: Union[str, Path, GTFSSource] = GTFS_DATA_PATH,
        executor: TaskExecutor = None,
        unknown_headsign: str = UNKNOWN_HEADSIGN,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        """
        Initialize the store.

        Args:
            source: Directory, zip archive (path or URL), base URL, or a GTFSSource.
            executor: Where parsing runs. Defaults to inline execution.
            unknown_headsign: Placeholder for trips without a headsign.
            timeout: HTTP timeout for remote sources.
        """
        self.source = open_source(source, timeout=timeout)
        self.executor = executor or InlineExecutor()
        self.unknown_headsign = unknown_headsign
        self._reset()

    def _reset(self) -> None:
        self._generation = getattr(self, "_generation", 0) + 1
        self._inflight: InFlightRequests = InFlightRequests()

        self._routes: Optional[List[Route]] = None
        self._routes_by_id: Dict[str, Route] = {}
        self._trips: Optional[List[Trip]] = None
        self._trips_by_route: Dict[str, List[Trip]] = {}
        self._stop_times: Optional[List[StopTime]] = None
        self._stop_times_by_trip: Dict[str, List[StopTime]] = {}
        self._stops: Optional[List[Stop]] = None
        self._stops_by_id: Dict[str, Stop] = {}
        self._shapes: Optional[Dict[str, List[ShapePoint]]] = None
        self._representative: Dict[str, RepresentativeTrips] = {}
        self._route_stop_names: Optional[Dict[str, Set[str]]] = None

    def invalidate(self) -> None:
        """Drop every cached table. Loads already running do not repopulate the cache."""
        self._reset()
        logger.info("Cleared GTFS data from memory")

    async def _load_table(self, name: str, parser: Callable, *args):
        """Read and parse one table; None on failure."""
        try:
            data = await self.executor.submit(self.source.read, name)
            return await self.executor.submit(parser, data, *args)
        except Exception as e:
            logger.error(f"Failed to load {name} from {self.source!r}: {e}")
            return None

    # Tables

    async def fetch_routes(self) -> List[Route]:
        if self._routes is not None:
            return self._routes
        return await self._inflight.run("routes", self._load_routes)

    async def _load_routes(self) -> List[Route]:
        generation = self._generation
        routes = await self._load_table("routes.txt", parse_routes)
        if routes is None:
            return []
        if generation == self._generation:
            self._routes = routes
            self._routes_by_id = {route.id: route for route in routes}
        logger.info(f"Loaded {len(routes)} routes")
        return routes

    async def fetch_all_trips(self) -> List[Trip]:
        if self._trips is not None:
            return self._trips
        return await self._inflight.run("trips", self._load_trips)

    async def _load_trips(self) -> List[Trip]:
        generation = self._generation
        trips = await self._load_table("trips.txt", parse_trips, self.unknown_headsign)
        if trips is None:
            return []
        by_route: Dict[str, List[Trip]] = defaultdict(list)
        for trip in trips:
            by_route[trip.route_id].append(trip)
        if generation == self._generation:
            self._trips = trips
            self._trips_by_route = dict(by_route)
        logger.info(f"Loaded {len(trips)} trips across {len(by_route)} routes")
        return trips

    async def fetch_trips(self, route_id: str) -> List[Trip]:
        """Trips of one route, served from the route index."""
        if self._trips is None:
            await self.fetch_all_trips()
        return list(self._trips_by_route.get(route_id, []))

    async def fetch_stop_times(self) -> List[StopTime]:
        if self._stop_times is not None:
            return self._stop_times
        return await self._inflight.run("stop_times", self._load_stop_times)

    async def _load_stop_times(self) -> List[StopTime]:
        generation = self._generation
        stop_times = await self._load_table("stop_times.txt", parse_stop_times)
        if stop_times is None:
            return []
        by_trip: Dict[str, List[StopTime]] = defaultdict(list)
        for stop_time in stop_times:
            by_trip[stop_time.trip_id].append(stop_time)
        for times in by_trip.values():
            times.sort(key=lambda st: st.stop_sequence)
        if generation == self._generation:
            self._stop_times = stop_times
            self._stop_times_by_trip = dict(by_trip)
        logger.info(f"Loaded {len(stop_times)} stop times for {len(by_trip)} trips")
        return stop_times

    async def fetch_stop_times_for_trip(self, trip_id: str) -> List[StopTime]:
        """Stop times of one trip ordered by stop_sequence."""
        if self._stop_times is None:
            await self.fetch_stop_times()
        return list(self._stop_times_by_trip.get(trip_id, []))

    async def fetch_stops(self) -> List[Stop]:
        if self._stops is not None:
            return self._stops
        return await self._inflight.run("stops", self._load_stops)

    async def _load_stops(self) -> List[Stop]:
        generation = self._generation
        stops = await self._load_table("stops.txt", parse_stops)
        if stops is None:
            return []
        if generation == self._generation:
            self._stops = stops
            self._stops_by_id = {stop.id: stop for stop in stops}
        logger.info(f"Loaded {len(stops)} stops")
        return stops

    async def fetch_shape(self, shape_id: str) -> List[ShapePoint]:
        """Points of one shape sorted by sequence; empty when unknown."""
        if self._shapes is None:
            await self._inflight.run("shapes", self._load_shapes)
        return list((self._shapes or {}).get(shape_id, []))

    async def _load_shapes(self) -> Dict[str, List[ShapePoint]]:
        generation = self._generation
        shapes = await self._load_table("shapes.txt", parse_shapes)
        if shapes is None:
            return {}
        if generation == self._generation:
            self._shapes = shapes
        logger.info(f"Loaded {len(shapes)} shapes")
        return shapes

    # Lookups

    async def get_route(self, route_id: str) -> Optional[Route]:
        if self._routes is None:
            await self.fetch_routes()
        return self._routes_by_id.get(route_id)

    async def find_route_by_short_name(self, short_name: str) -> Optional[Route]:
        """Route whose public line code equals `short_name` (case-insensitive)."""
        wanted = (short_name or "").strip().casefold()
        if not wanted:
            return None
        for route in await self.fetch_routes():
            if route.short_name.casefold() == wanted:
                return route
        return None

    async def get_stop(self, stop_id: str) -> Optional[Stop]:
        if self._stops is None:
            await self.fetch_stops()
        return self._stops_by_id.get(stop_id)

    # Derived per-route data

    async def fetch_stop_times_by_trip(self, route_id: str) -> Dict[str, List[StopTime]]:
        """trip_id -> ordered stop times, for every trip of the route that has any."""
        trips, _ = await asyncio.gather(self.fetch_trips(route_id), self.fetch_stop_times())
        return {
            trip.trip_id: list(self._stop_times_by_trip[trip.trip_id])
            for trip in trips
            if trip.trip_id in self._stop_times_by_trip
        }

    async def fetch_representative_trips(self, route_id: str) -> RepresentativeTrips:
        if route_id in self._representative:
            return self._representative[route_id]
        generation = self._generation
        route, trips, _ = await asyncio.gather(
            self.get_route(route_id), self.fetch_trips(route_id), self.fetch_stop_times()
        )
        stop_counts = {trip.trip_id: len(self._stop_times_by_trip.get(trip.trip_id, [])) for trip in trips}
        result = select_representative_trips(route, trips, stop_counts)
        # Only cache once the inputs were actually available
        if trips and self._stop_times is not None and generation == self._generation:
            self._representative[route_id] = result
        return result

    async def fetch_stops_for_route(self, route_id: str) -> DirectionStops:
        """Ordered stops of the representative trip of each direction."""
        representative, _ = await asyncio.gather(self.fetch_representative_trips(route_id), self.fetch_stops())

        def stops_for(trip: Optional[Trip]) -> List[Stop]:
            if trip is None:
                return []
            return [
                self._stops_by_id[st.stop_id]
                for st in self._stop_times_by_trip.get(trip.trip_id, [])
                if st.stop_id in self._stops_by_id
            ]

        return DirectionStops(
            direction0=stops_for(representative.direction0),
            direction1=stops_for(representative.direction1),
        )

    async def fetch_route_shapes(self, route_id: str) -> DirectionShapes:
        """Shapes of the representative trip of each direction."""
        representative = await self.fetch_representative_trips(route_id)

        async def shape_for(trip: Optional[Trip]) -> List[ShapePoint]:
            if trip is None or not trip.shape_id:
                return []
            return await self.fetch_shape(trip.shape_id)

        shape0, shape1 = await asyncio.gather(
            shape_for(representative.direction0), shape_for(representative.direction1)
        )
        return DirectionShapes(direction0=shape0, direction1=shape1)

    async def fetch_route_stop_names(self) -> Dict[str, Set[str]]:
        """route_id -> lower-cased names of every stop any of its trips serves."""
        if self._route_stop_names is not None:
            return self._route_stop_names
        generation = self._generation
        routes, trips, _, _ = await asyncio.gather(
            self.fetch_routes(), self.fetch_all_trips(), self.fetch_stop_times(), self.fetch_stops()
        )

        names: Dict[str, Set[str]] = {route.id: set() for route in routes}
        for trip in trips:
            route_names = names.setdefault(trip.route_id, set())
            for stop_time in self._stop_times_by_trip.get(trip.trip_id, []):
                stop = self._stops_by_id.get(stop_time.stop_id)
                if stop is not None and stop.name:
                    route_names.add(stop.name.lower())

        loaded = self._routes is not None and self._trips is not None
        if loaded and generation == self._generation:
            self._route_stop_names = names
        return names
