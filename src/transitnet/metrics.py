"""Aggregate metrics derived from a transit network."""

from typing import Dict, Iterable, List, Optional, Sequence

from .matcher import haversine
from .models import Line, Station, TransitMetrics, TransitNetwork

TOP_HUBS = 20


def line_length_km(line: Line) -> float:
    """Length of a line in km, summed per segment so gaps are not counted."""
    pieces = line.segments or [line.coordinates]
    total = 0.0
    for piece in pieces:
        for a, b in zip(piece, piece[1:]):
            total += haversine(a.lat, a.lon, b.lat, b.lon)
    return total / 1000


def network_length_km(lines: Iterable[Line]) -> float:
    return sum(line_length_km(line) for line in lines)


def group_by_line(stations: Iterable[Station]) -> Dict[str, List[Station]]:
    grouped: Dict[str, List[Station]] = {}
    for station in stations:
        grouped.setdefault(station.line_key, []).append(station)
    return grouped


def compute_metrics(
    network: TransitNetwork,
    total_bus_routes: int = 0,
    top_n: int = TOP_HUBS,
    operational_lines: Optional[Sequence[str]] = None,
) -> TransitMetrics:
    """
    Summary counts for a network.

    Args:
        network: The city's network.
        total_bus_routes: Number of distinct bus routes in the bus source.
        top_n: How many of the best-connected stops to report.
        operational_lines: Metro line keys in service; None counts every line.
    """
    route_counts = [stop.route_count for stop in network.bus_stops]
    average = sum(route_counts) / len(route_counts) if route_counts else 0.0

    top_hubs = sorted(network.bus_stops, key=lambda stop: stop.route_count, reverse=True)[:top_n]
    if operational_lines is None:
        operational = len(network.metro_stations)
    else:
        operational = sum(1 for s in network.metro_stations if s.line_key in operational_lines)

    return TransitMetrics(
        total_bus_stops=len(network.bus_stops),
        total_metro_stations=len(network.metro_stations),
        total_rail_stations=len(network.rail_stations),
        total_bus_routes=total_bus_routes,
        avg_routes_per_stop=round(average, 1),
        top_hubs=top_hubs,
        stations_by_line=group_by_line(network.metro_stations + network.rail_stations),
        metro_km=round(network_length_km(network.metro_lines), 1),
        rail_km=round(network_length_km(network.rail_lines), 1),
        operational_metro_stations=operational,
    )
