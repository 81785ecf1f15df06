"""Tests for network metrics and GeoJSON export."""

import sys
import unittest
from pathlib import Path

# Add src to path so we can import transitnet
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from transitnet.geojson import bus_stops_to_geojson, lines_to_geojson, stations_to_geojson
from transitnet.metrics import compute_metrics, line_length_km
from transitnet.models import BusStop, Line, Point, Station, TransitNetwork


def make_network():
    return TransitNetwork(
        bus_stops=[
            BusStop("1", "Majestic", Point(12.97, 77.57), route_count=5),
            BusStop("2", "Shivajinagar", Point(12.98, 77.60), route_count=2),
            BusStop("3", "Hebbal", Point(13.03, 77.59), route_count=0),
        ],
        metro_stations=[
            Station("Majestic", Point(12.97, 77.57), "purple"),
            Station("Yeshwanthpur", Point(13.02, 77.55), "green"),
            Station("Whitefield", Point(12.99, 77.72), "purple"),
        ],
        metro_lines=[
            Line("Purple", "#9333ea", [Point(0, 0), Point(1, 0)], key="purple"),
        ],
        rail_stations=[Station("Bengaluru City", Point(12.97, 77.56), "South Western")],
        rail_lines=[
            Line("South Western", "#dc2626", [Point(0, 0), Point(0.1, 0), Point(5, 0), Point(5.1, 0)],
                 segments=[[Point(0, 0), Point(0.1, 0)], [Point(5, 0), Point(5.1, 0)]]),
        ],
    )


class TestComputeMetrics(unittest.TestCase):
    """Test summary counts."""

    def test_counts_and_average(self):
        """Test totals and the rounded route average."""
        metrics = compute_metrics(make_network(), total_bus_routes=42)

        self.assertEqual(metrics.total_bus_stops, 3)
        self.assertEqual(metrics.total_metro_stations, 3)
        self.assertEqual(metrics.total_rail_stations, 1)
        self.assertEqual(metrics.total_bus_routes, 42)
        self.assertEqual(metrics.avg_routes_per_stop, 2.3)

    def test_top_hubs(self):
        """Test hubs are ordered by route count and limited."""
        metrics = compute_metrics(make_network(), top_n=2)

        self.assertEqual([s.name for s in metrics.top_hubs], ["Majestic", "Shivajinagar"])

    def test_stations_by_line(self):
        """Test metro and rail stations grouped by line key."""
        metrics = compute_metrics(make_network())

        self.assertEqual(len(metrics.stations_by_line["purple"]), 2)
        self.assertEqual(len(metrics.stations_by_line["green"]), 1)
        self.assertIn("South Western", metrics.stations_by_line)

    def test_operational_lines(self):
        """Test only stations on operational lines are counted as operational."""
        self.assertEqual(compute_metrics(make_network()).operational_metro_stations, 3)
        metrics = compute_metrics(make_network(), operational_lines=("purple",))
        self.assertEqual(metrics.operational_metro_stations, 2)

    def test_lengths(self):
        """Test line length in km ignores the gap between segments."""
        metrics = compute_metrics(make_network())

        self.assertEqual(metrics.metro_km, 111.2)
        self.assertAlmostEqual(line_length_km(make_network().rail_lines[0]), 22.239, places=2)

    def test_empty_network(self):
        """Test an empty network gives zeros."""
        metrics = compute_metrics(TransitNetwork())

        self.assertEqual(metrics.avg_routes_per_stop, 0.0)
        self.assertEqual(metrics.top_hubs, [])
        self.assertEqual(metrics.metro_km, 0.0)
        self.assertEqual(metrics.to_dict()["totalBusStops"], 0)


class TestGeoJSON(unittest.TestCase):
    """Test FeatureCollection export."""

    def test_bus_stops(self):
        """Test points are written in lon, lat order."""
        collection = bus_stops_to_geojson(make_network().bus_stops)

        self.assertEqual(collection["type"], "FeatureCollection")
        self.assertEqual(collection["features"][0]["geometry"]["coordinates"], [77.57, 12.97])
        self.assertEqual(collection["features"][0]["properties"]["routeCount"], 5)

    def test_stations(self):
        """Test station features carry their line key."""
        collection = stations_to_geojson(make_network().metro_stations)

        self.assertEqual(collection["features"][1]["properties"], {"name": "Yeshwanthpur", "line": "green"})

    def test_lines(self):
        """Test segmented lines become MultiLineStrings."""
        network = make_network()
        collection = lines_to_geojson(network.metro_lines + network.rail_lines)

        metro, rail = collection["features"]
        self.assertEqual(metro["geometry"]["type"], "LineString")
        self.assertEqual(rail["geometry"]["type"], "MultiLineString")
        self.assertEqual(len(rail["geometry"]["coordinates"]), 2)
        self.assertEqual(rail["properties"]["key"], "South Western")


if __name__ == "__main__":
    unittest.main()
