"""Tests for the live vehicle feed client."""

import sys
import time
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import requests

# Add src to path so we can import bustrack
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bustrack.vehicle_client import (
    VehicleFeedClient,
    parse_datastore_record,
    parse_gtfs_realtime,
    parse_json_feed,
    parse_ngsi_vehicle,
)

DATASTORE_PAYLOAD = {
    "success": True,
    "result": {
        "records": [
            {"vehicle_id": "3301", "line_id": "205", "lat": "41.15", "lon": "-8.61",
             "bearing": "90", "speed": "22.5", "timestamp": "2024-05-01T08:12:00"},
            {"id": "3302", "route_id": "900M", "latitude": 41.16, "longitude": -8.62},
            {"vehicle_id": "3303", "line_id": "502", "lat": "", "lon": "-8.6"},
        ]
    },
}

NGSI_ENTITY = {
    "id": "urn:ngsi-ld:Vehicle:porto:stcp:3401",
    "type": "Vehicle",
    "annotations": {"type": "StructuredValue", "value": ["stcp:route:500", "stcp:sentido:1"]},
    "bearing": {"type": "Number", "value": 180},
    "fleetVehicleId": {"type": "Text", "value": "3401"},
    "location": {"type": "geo:json", "value": {"type": "Point", "coordinates": [-8.63, 41.14]}},
    "name": {"type": "Text", "value": "Autocarro 500"},
    "observationDateTime": {"type": "DateTime", "value": "2024-05-01T08:12:05Z"},
    "speed": {"type": "Number", "value": 12},
}


class TestFeedParsing(unittest.TestCase):
    def test_datastore_records(self):
        positions = parse_json_feed(DATASTORE_PAYLOAD)
        self.assertEqual([p.id for p in positions], ["3301", "3302"])
        first = positions[0]
        self.assertEqual(first.line, "205")
        self.assertEqual(first.latitude, 41.15)
        self.assertEqual(first.bearing, 90.0)
        self.assertEqual(first.speed, 22.5)
        self.assertIsNone(positions[1].bearing)
        self.assertEqual(positions[1].line, "900M")

    def test_record_without_position(self):
        self.assertIsNone(parse_datastore_record({"vehicle_id": "1", "lat": "x", "lon": "-8.6"}))

    def test_ngsi_entity(self):
        position = parse_ngsi_vehicle(NGSI_ENTITY)
        self.assertEqual(position.id, "3401")
        self.assertEqual(position.line, "500")
        self.assertEqual(position.latitude, 41.14)
        self.assertEqual(position.longitude, -8.63)
        self.assertEqual(position.bearing, 180.0)
        self.assertEqual(position.timestamp, "2024-05-01T08:12:05Z")

    def test_plain_list_and_mixed_entities(self):
        positions = parse_json_feed([NGSI_ENTITY, {"vehicle_id": "9", "lat": 41.1, "lon": -8.6}, "junk"])
        self.assertEqual([p.id for p in positions], ["3401", "9"])

    def test_unexpected_payload(self):
        self.assertEqual(parse_json_feed("nope"), [])
        self.assertEqual(parse_json_feed({"result": {}}), [])

    def test_gtfs_realtime(self):
        from google.transit import gtfs_realtime_pb2

        feed = gtfs_realtime_pb2.FeedMessage()
        feed.header.gtfs_realtime_version = "2.0"
        entity = feed.entity.add()
        entity.id = "e1"
        entity.vehicle.vehicle.id = "3301"
        entity.vehicle.trip.route_id = "205_0"
        entity.vehicle.position.latitude = 41.15
        entity.vehicle.position.longitude = -8.61
        entity.vehicle.position.bearing = 270
        entity.vehicle.timestamp = int(time.time())
        other = feed.entity.add()
        other.id = "e2"
        other.trip_update.trip.trip_id = "T"

        positions = parse_gtfs_realtime(feed.SerializeToString(), {"205_0": "205"})
        self.assertEqual(len(positions), 1)
        self.assertEqual(positions[0].id, "3301")
        self.assertEqual(positions[0].line, "205")
        self.assertAlmostEqual(positions[0].latitude, 41.15, places=4)
        self.assertEqual(positions[0].bearing, 270.0)
        self.assertIsNone(positions[0].speed)


class TestVehicleFeedClient(unittest.TestCase):
    def make_session(self, payload):
        session = MagicMock()
        response = session.get.return_value
        response.headers = {"Content-Type": "application/json; charset=utf-8"}
        response.json.return_value = payload
        return session

    def test_fetch_positions_is_cached(self):
        session = self.make_session(DATASTORE_PAYLOAD)
        client = VehicleFeedClient("http://test", cache_ttl=60, session=session)
        self.assertEqual(len(client.fetch_positions()), 2)
        self.assertEqual(len(client.fetch_positions()), 2)
        session.get.assert_called_once_with("http://test", timeout=client.timeout)

    def test_clear_cache_forces_refetch(self):
        session = self.make_session(DATASTORE_PAYLOAD)
        client = VehicleFeedClient("http://test", cache_ttl=60, session=session)
        client.fetch_positions()
        client.clear_cache()
        client.fetch_positions()
        self.assertEqual(session.get.call_count, 2)

    def test_failures_return_empty(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("down")
        client = VehicleFeedClient("http://test", session=session)
        with self.assertLogs("bustrack.vehicle_client", level="ERROR"):
            self.assertEqual(client.fetch_positions(), [])

    def test_http_error_returns_empty(self):
        session = self.make_session(DATASTORE_PAYLOAD)
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("503")
        client = VehicleFeedClient("http://test", session=session)
        self.assertEqual(client.fetch_positions(), [])


if __name__ == "__main__":
    unittest.main()
