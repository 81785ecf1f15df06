"""Tests for TransitService orchestration and caching."""

import io
import sys
import unittest
import zipfile
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

# Add src to path so we can import transitnet
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from transitnet.archive import ArchiveError
from transitnet.cache import TTLCache
from transitnet.client import TransitClient
from transitnet.config import (
    CACHE_TTL,
    CityConfig,
    GTFSArchiveSource,
    NammaMetroSource,
    OverpassRailSource,
    OverpassRouteSource,
    RidershipLogSource,
    TransitRouterBusSource,
)
from transitnet.models import TransitNetwork
from transitnet import service
from transitnet.service import TransitService

STOPS_URL = "https://example.test/stops.min.json"
SERVICES_URL = "https://example.test/services.min.json"
NAMMA_URL = "https://example.test/metro-lines-stations.geojson"
GTFS_URL = "https://example.test/gtfs.zip"
RIDERSHIP_URL = "https://example.test/ridership.csv"

PAYLOADS = {
    STOPS_URL: {
        "1": [77.57, 12.97, "Majestic", "N", 0],
        "2": [77.60, 12.98, "Shivajinagar", "", 0],
    },
    SERVICES_URL: {
        "r1": {"name": "500D", "up": [["1", "2"]]},
        "r2": {"name": "335E", "up": [["1"]]},
    },
    NAMMA_URL: {"features": [
        {"type": "Feature", "properties": {"Name": "Line-1 (Purple)"},
         "geometry": {"type": "LineString", "coordinates": [[77.50, 12.96], [77.55, 12.97]]}},
        {"type": "Feature", "properties": {"Name": "Magadi Road"},
         "geometry": {"type": "Point", "coordinates": [77.551, 12.971]}},
    ]},
}

RIDERSHIP_LOG = (
    "2024-01-01;8;MAGADI ROAD;100\n"
    "2024-01-01;9;Majestic;50\n"
    "2024-01-02;8;Magadi Road;150\n"
)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@dataclass(frozen=True)
class FerrySource:
    url: str


class ServiceTestCase(unittest.TestCase):
    """Builds a service over a mocked client and a fake clock."""

    def setUp(self):
        self.payloads = dict(PAYLOADS)
        self.client = MagicMock(spec=TransitClient)
        self.client.get_json.side_effect = self._get_json
        self.clock = FakeClock()
        self.city = CityConfig(
            id="testville",
            name="Testville",
            lat=12.97,
            lon=77.59,
            zoom=11,
            bus=TransitRouterBusSource(stops_url=STOPS_URL, services_url=SERVICES_URL),
            metro=NammaMetroSource(url=NAMMA_URL),
            ridership=RidershipLogSource(url=RIDERSHIP_URL),
        )

    def _get_json(self, url):
        payload = self.payloads[url]
        if isinstance(payload, Exception):
            raise payload
        return payload

    def make_service(self, cities=None, strict=False):
        return TransitService(
            client=self.client,
            cache=TTLCache(clock=self.clock),
            cities=cities if cities is not None else [self.city],
            strict=strict,
        )


class TestFetchTransitNetwork(ServiceTestCase):
    """Test network fetching, caching and degradation."""

    def test_fetch_combines_sources(self):
        """Test bus and metro layers are fetched and assembled."""
        network = self.make_service().fetch_transit_network("testville")

        self.assertEqual(len(network.bus_stops), 2)
        self.assertEqual({s.id: s.route_count for s in network.bus_stops}, {"1": 2, "2": 1})
        self.assertEqual(network.metro_lines[0].key, "purple")
        self.assertEqual(network.metro_stations[0].line_key, "purple")
        self.assertEqual(network.rail_lines, [])

    def test_fresh_cache_makes_no_upstream_calls(self):
        """Test a second request within the TTL returns the cached object."""
        svc = self.make_service()
        first = svc.fetch_transit_network("testville")
        calls = self.client.get_json.call_count

        self.clock.advance(CACHE_TTL - 1)
        second = svc.fetch_transit_network("testville")

        self.assertIs(first, second)
        self.assertEqual(self.client.get_json.call_count, calls)

    def test_expired_cache_refetches_once(self):
        """Test a request after the TTL performs one new fetch."""
        svc = self.make_service()
        first = svc.fetch_transit_network("testville")
        calls = self.client.get_json.call_count

        self.clock.advance(CACHE_TTL + 1)
        second = svc.fetch_transit_network("testville")
        third = svc.fetch_transit_network("testville")

        self.assertIsNot(first, second)
        self.assertIs(second, third)
        self.assertEqual(self.client.get_json.call_count, calls * 2)

    def test_failed_source_degrades(self):
        """Test a metro failure leaves bus data intact."""
        self.payloads[NAMMA_URL] = requests.ConnectionError("metro host down")

        with self.assertLogs("transitnet.service", level="WARNING") as logs:
            network = self.make_service().fetch_transit_network("testville")

        self.assertEqual(len(network.bus_stops), 2)
        self.assertEqual(network.metro_stations, [])
        self.assertEqual(network.metro_lines, [])
        self.assertTrue(any("metro" in line for line in logs.output))

    def test_missing_services_keeps_stops(self):
        """Test stops are kept with zero counts when services fail."""
        self.payloads[SERVICES_URL] = requests.HTTPError("500 Server Error")

        network = self.make_service().fetch_transit_network("testville")

        self.assertEqual([s.route_count for s in network.bus_stops], [0, 0])

    def test_stale_value_served_when_all_sources_fail(self):
        """Test the stale network is served and kept when every source fails."""
        svc = self.make_service()
        first = svc.fetch_transit_network("testville")

        self.clock.advance(CACHE_TTL + 1)
        for url in (STOPS_URL, SERVICES_URL, NAMMA_URL):
            self.payloads[url] = requests.ConnectionError("offline")

        self.assertIs(svc.fetch_transit_network("testville"), first)
        self.assertIs(svc.cache.get_entry(("network", "testville")).value.network, first)

    def test_total_failure_without_stale_not_cached(self):
        """Test an all-failed fetch returns empty data and is retried next time."""
        for url in (STOPS_URL, SERVICES_URL, NAMMA_URL):
            self.payloads[url] = requests.ConnectionError("offline")
        svc = self.make_service()

        network = svc.fetch_transit_network("testville")
        calls = self.client.get_json.call_count
        svc.fetch_transit_network("testville")

        self.assertTrue(network.is_empty())
        self.assertGreater(self.client.get_json.call_count, calls)

    def test_total_failure_not_cached_for_derived_results(self):
        """Test metrics and ridership built during an outage are recomputed once sources return."""
        self.client.get_bytes.return_value = RIDERSHIP_LOG.encode("utf-8")
        saved = dict(self.payloads)
        for url in (STOPS_URL, SERVICES_URL, NAMMA_URL):
            self.payloads[url] = requests.ConnectionError("offline")
        svc = self.make_service()

        outage_report = svc.fetch_transit_metrics("testville")
        outage_summary = svc.fetch_ridership("testville")

        self.assertEqual(outage_report.metrics.total_bus_stops, 0)
        self.assertEqual(outage_summary.ridership_by_line, {"unknown": 150})
        self.assertIsNone(svc.cache.get_entry(("metrics", "testville")))
        self.assertIsNone(svc.cache.get_entry(("ridership", "testville")))

        self.payloads = saved
        report = svc.fetch_transit_metrics("testville")
        summary = svc.fetch_ridership("testville")

        self.assertIsNot(report, outage_report)
        self.assertEqual(report.metrics.total_bus_stops, 2)
        self.assertEqual(summary.ridership_by_line, {"purple": 125, "unknown": 25})

    def test_unknown_city_is_empty(self):
        """Test unknown cities return an empty network without fetching."""
        network = self.make_service().fetch_transit_network("atlantis")

        self.assertTrue(network.is_empty())
        self.client.get_json.assert_not_called()

    def test_unsupported_source_type(self):
        """Test an unknown source variant is a configuration error."""
        city = CityConfig(id="ferryville", name="Ferryville", lat=0, lon=0, zoom=10,
                          metro=FerrySource(url="https://example.test/ferry"))

        with self.assertRaises(TypeError):
            self.make_service(cities=[city]).fetch_transit_network("ferryville")


class TestArchiveSources(ServiceTestCase):
    """Test strict and lenient handling of archive sources."""

    def setUp(self):
        super().setUp()
        self.city = CityConfig(
            id="kochi", name="Kochi", lat=9.93, lon=76.26, zoom=12,
            bus=TransitRouterBusSource(stops_url=STOPS_URL, services_url=SERVICES_URL),
            metro=GTFSArchiveSource(url=GTFS_URL),
        )
        self.client.get_bytes.return_value = b"<html>moved</html>"

    def test_broken_archive_degrades(self):
        """Test a broken feed empties the metro layer by default."""
        network = self.make_service().fetch_transit_network("kochi")

        self.assertEqual(network.metro_lines, [])
        self.assertEqual(len(network.bus_stops), 2)

    def test_broken_archive_strict(self):
        """Test strict mode surfaces archive errors."""
        with self.assertRaises(ArchiveError):
            self.make_service(strict=True).fetch_transit_network("kochi")


class TestRailSources(ServiceTestCase):
    """Test combined rail queries."""

    def test_failed_query_skipped(self):
        """Test lines from the working query survive a failed one."""
        elements = [
            {"type": "node", "id": 1, "lat": 19.0, "lon": 72.8},
            {"type": "node", "id": 2, "lat": 19.1, "lon": 72.8},
            {"type": "way", "id": 10, "nodes": [1, 2]},
            {"type": "relation", "id": 100,
             "tags": {"type": "route", "route": "train", "name": "Western Line Fast"},
             "members": [{"type": "way", "ref": 10, "role": ""}]},
        ]
        self.client.overpass.side_effect = [elements, requests.Timeout("overpass busy")]
        city = CityConfig(
            id="mumbai", name="Mumbai", lat=19.07, lon=72.87, zoom=10,
            rail=OverpassRailSource(queries=(
                OverpassRouteSource(network="Mumbai Suburban Railway", route_type="train",
                                    lines=(("Western Line", "#dc2626"),)),
                OverpassRouteSource(network="Navi Mumbai Metro", lines=(("Line 1", "#2563eb"),)),
            )),
        )

        network = self.make_service(cities=[city]).fetch_transit_network("mumbai")

        self.assertEqual([line.name for line in network.rail_lines], ["Western Line"])
        self.assertEqual(self.client.overpass.call_count, 2)


class TestMetricsAndRidership(ServiceTestCase):
    """Test the derived endpoints."""

    def test_metrics_report(self):
        """Test metrics use the cached network and the bus route total."""
        svc = self.make_service()

        report = svc.fetch_transit_metrics("testville")

        self.assertIs(report.network, svc.fetch_transit_network("testville"))
        self.assertEqual(report.metrics.total_bus_routes, 2)
        self.assertEqual(report.metrics.avg_routes_per_stop, 1.5)
        self.assertGreater(report.metrics.metro_km, 0)
        self.assertIs(svc.fetch_transit_metrics("testville"), report)

    def test_ridership_not_configured(self):
        """Test None for cities without a ridership source."""
        city = CityConfig(id="pune", name="Pune", lat=18.52, lon=73.86, zoom=11)

        self.assertIsNone(self.make_service(cities=[city]).fetch_ridership("pune"))
        self.assertIsNone(self.make_service().fetch_ridership("atlantis"))

    def test_ridership_from_text_log(self):
        """Test the plain log is summarized with line keys from the network."""
        self.client.get_bytes.return_value = RIDERSHIP_LOG.encode("utf-8")

        summary = self.make_service().fetch_ridership("testville")

        self.assertEqual(summary.total_daily_average, 150)
        self.assertEqual(summary.ridership_by_line, {"purple": 125, "unknown": 25})
        self.assertEqual(
            [(s.name, s.ridership) for s in summary.busiest_stations],
            [("MAGADI ROAD", 125), ("Majestic", 25)],
        )

    def test_ridership_from_zipped_log(self):
        """Test a zipped log is unpacked first."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            archive.writestr("ridership.csv", RIDERSHIP_LOG)
        self.client.get_bytes.return_value = buffer.getvalue()

        summary = self.make_service().fetch_ridership("testville")

        self.assertEqual(summary.date_range.start, "2024-01-01")
        self.assertEqual(summary.date_range.end, "2024-01-02")

    def test_ridership_fetch_failure(self):
        """Test a failed ridership download returns None."""
        self.client.get_bytes.side_effect = requests.ConnectionError("offline")

        self.assertIsNone(self.make_service().fetch_ridership("testville"))


class TestModuleFunctions(unittest.TestCase):
    """Test the module-level convenience functions."""

    @patch("transitnet.service.get_default_service")
    def test_delegates_to_default_service(self, mock_default):
        """Test each function forwards to the shared service."""
        default = mock_default.return_value
        default.fetch_transit_network.return_value = TransitNetwork()

        self.assertIsInstance(service.fetch_transit_network("delhi"), TransitNetwork)
        service.fetch_transit_metrics("delhi")
        service.fetch_ridership("delhi")

        default.fetch_transit_network.assert_called_once_with("delhi")
        default.fetch_transit_metrics.assert_called_once_with("delhi")
        default.fetch_ridership.assert_called_once_with("delhi")


if __name__ == "__main__":
    unittest.main()
