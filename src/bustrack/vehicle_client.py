"""Live vehicle position fetcher and feed adapters."""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from .config import HTTP_TIMEOUT_SECONDS, LIVE_FEED_CACHE_TTL_SECONDS, LIVE_FEED_URL
from .models import VehiclePosition

logger = logging.getLogger(__name__)

PROTOBUF_CONTENT_TYPES = ("application/x-protobuf", "application/octet-stream")


def _float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _first(record: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def _ngsi_value(entity: Dict[str, Any], key: str) -> Any:
    """Value of an NGSI attribute, which may or may not be wrapped in {"value": ...}."""
    attribute = entity.get(key)
    if isinstance(attribute, dict) and "value" in attribute:
        return attribute["value"]
    return attribute


def parse_datastore_record(record: Dict[str, Any]) -> Optional[VehiclePosition]:
    """One row of the open-data datastore; None when it has no usable position."""
    vehicle_id = _first(record, "vehicle_id", "id")
    line = _first(record, "line_id", "route_id", "line")
    latitude = _float(_first(record, "lat", "latitude"))
    longitude = _float(_first(record, "lon", "lng", "longitude"))
    if vehicle_id is None or latitude is None or longitude is None:
        return None
    return VehiclePosition(
        id=str(vehicle_id),
        line=str(line or ""),
        latitude=latitude,
        longitude=longitude,
        bearing=_float(record.get("bearing")),
        speed=_float(record.get("speed")),
        timestamp=str(record.get("timestamp") or ""),
    )


def _line_from_annotations(annotations: Iterable[str]) -> str:
    # e.g. "stcp:route:205"
    for annotation in annotations or []:
        parts = str(annotation).split(":")
        if len(parts) >= 2 and parts[-2].lower() in ("route", "line"):
            return parts[-1]
    return ""


def parse_ngsi_vehicle(entity: Dict[str, Any]) -> Optional[VehiclePosition]:
    """An NGSI/FIWARE "Vehicle" entity; coordinates are [longitude, latitude]."""
    location = _ngsi_value(entity, "location") or {}
    coordinates = location.get("coordinates") if isinstance(location, dict) else None
    if not coordinates or len(coordinates) < 2:
        return None
    longitude, latitude = _float(coordinates[0]), _float(coordinates[1])
    if latitude is None or longitude is None:
        return None

    bearing = _ngsi_value(entity, "bearing")
    if bearing is None:
        bearing = _ngsi_value(entity, "heading")
    line = _line_from_annotations(_ngsi_value(entity, "annotations")) or str(_ngsi_value(entity, "name") or "")

    return VehiclePosition(
        id=str(_ngsi_value(entity, "fleetVehicleId") or entity.get("id", "")),
        line=line,
        latitude=latitude,
        longitude=longitude,
        bearing=_float(bearing),
        speed=_float(_ngsi_value(entity, "speed")),
        timestamp=str(_ngsi_value(entity, "observationDateTime") or ""),
    )


def parse_json_feed(payload: Any) -> List[VehiclePosition]:
    """
    Normalize a JSON vehicle feed.

    Accepts a datastore response ({"result": {"records": [...]}}), a plain list
    of records, or a list of NGSI "Vehicle" entities.
    """
    if isinstance(payload, dict):
        records = (payload.get("result") or {}).get("records")
        if records is None:
            records = payload.get("records", [])
    elif isinstance(payload, list):
        records = payload
    else:
        return []

    positions: List[VehiclePosition] = []
    skipped = 0
    for record in records:
        if not isinstance(record, dict):
            skipped += 1
            continue
        if "location" in record:
            position = parse_ngsi_vehicle(record)
        else:
            position = parse_datastore_record(record)
        if position is None:
            skipped += 1
        else:
            positions.append(position)

    if skipped:
        logger.debug(f"Skipped {skipped} vehicle records without a usable position")
    return positions


def parse_gtfs_realtime(feed_data: bytes, route_short_names: Dict[str, str] = None) -> List[VehiclePosition]:
    """
    Vehicle positions from a GTFS-Realtime protobuf feed.

    Args:
        feed_data: Raw protobuf bytes.
        route_short_names: Optional route_id -> short name, since the feed
            identifies routes by route_id.

    Returns:
        List of VehiclePosition objects.
    """
    from google.transit import gtfs_realtime_pb2

    feed = gtfs_realtime_pb2.FeedMessage()
    feed.ParseFromString(feed_data)

    positions: List[VehiclePosition] = []
    for entity in feed.entity:
        if not entity.HasField("vehicle"):
            continue
        vehicle = entity.vehicle
        if not vehicle.HasField("position"):
            continue

        route_id = vehicle.trip.route_id
        line = (route_short_names or {}).get(route_id, route_id)
        position = vehicle.position
        timestamp = ""
        if vehicle.timestamp:
            timestamp = datetime.fromtimestamp(vehicle.timestamp, tz=timezone.utc).isoformat()

        positions.append(VehiclePosition(
            id=vehicle.vehicle.id or entity.id,
            line=line,
            latitude=position.latitude,
            longitude=position.longitude,
            bearing=position.bearing if position.HasField("bearing") else None,
            speed=position.speed if position.HasField("speed") else None,
            timestamp=timestamp,
        ))

    return positions


class VehicleFeedClient:
    """Fetches and parses the live vehicle feed, with a short cache."""

    def __init__(
        self,
        feed_url: str = LIVE_FEED_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        cache_ttl: float = LIVE_FEED_CACHE_TTL_SECONDS,
        session: requests.Session = None,
    ):
        self.feed_url = feed_url
        self.timeout = timeout
        self._cache_ttl = cache_ttl
        self._cache: Optional[Tuple[List[VehiclePosition], float]] = None
        self.session = session or requests.Session()

    def fetch_positions(self, route_short_names: Dict[str, str] = None) -> List[VehiclePosition]:
        """
        Latest positions of every vehicle in the feed.

        Args:
            route_short_names: route_id -> short name, used for GTFS-Realtime feeds.

        Returns:
            List of VehiclePosition objects; empty when the feed is unavailable.
        """
        now = time.monotonic()
        if self._cache is not None:
            positions, fetched_at = self._cache
            if now - fetched_at < self._cache_ttl:
                logger.debug(f"Using cached positions from {self.feed_url}")
                return positions

        logger.debug(f"Fetching {self.feed_url}")
        try:
            response = self.session.get(self.feed_url, timeout=self.timeout)
            response.raise_for_status()
            content_type = response.headers.get("Content-Type", "").split(";")[0].strip()
            if content_type in PROTOBUF_CONTENT_TYPES or self.feed_url.endswith(".pb"):
                positions = parse_gtfs_realtime(response.content, route_short_names)
            else:
                positions = parse_json_feed(response.json())
        except Exception as e:
            logger.error(f"Failed to fetch vehicle positions from {self.feed_url}: {e}")
            return []

        self._cache = (positions, now)
        logger.info(f"Fetched {len(positions)} vehicle positions")
        return positions

    def clear_cache(self) -> None:
        """Manually clear the cache."""
        self._cache = None
