"""Data models for reconstructed transit networks."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Point:
    """A WGS84 coordinate."""
    lat: float
    lon: float

    def to_list(self) -> List[float]:
        """Return the point as a GeoJSON-ordered [lon, lat] pair."""
        return [self.lon, self.lat]


@dataclass
class Node:
    """Raw graph node from an Overpass result."""
    id: int
    point: Point
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class Way:
    """Raw graph way: an ordered list of node ids."""
    id: int
    node_ids: List[int] = field(default_factory=list)


@dataclass
class Member:
    """One entry of a relation's member list."""
    type: str  # "node", "way" or "relation"
    ref: int
    role: str = ""


@dataclass
class Relation:
    """Raw graph relation: tagged, ordered member references."""
    id: int
    tags: Dict[str, str] = field(default_factory=dict)
    members: List[Member] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.tags.get("name") or self.tags.get("ref") or ""


@dataclass
class BusStop:
    """A bus stop with the number of distinct routes serving it."""
    id: str
    name: str
    point: Point
    direction: Optional[str] = None
    route_count: int = 0

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "lon": self.point.lon,
            "lat": self.point.lat,
            "routeCount": self.route_count,
        }
        if self.direction:
            data["direction"] = self.direction
        return data


@dataclass
class Station:
    """A metro or rail station assigned to a line."""
    name: str
    point: Point
    line_key: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "lon": self.point.lon,
            "lat": self.point.lat,
            "line": self.line_key,
        }


@dataclass
class Line:
    """
    A rendered metro or rail line.

    `coordinates` is always the flattened geometry. `segments` is only set
    when the geometry is disjoint and must be drawn as several strokes.
    `key` is what stations refer to; it defaults to the line name.
    """
    name: str
    color_token: str
    coordinates: List[Point]
    segments: Optional[List[List[Point]]] = None
    key: Optional[str] = None

    def __post_init__(self):
        if self.key is None:
            self.key = self.name

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "key": self.key,
            "color": self.color_token,
            "coordinates": [p.to_list() for p in self.coordinates],
        }
        if self.segments:
            data["segments"] = [[p.to_list() for p in seg] for seg in self.segments]
        return data


@dataclass
class TransitNetwork:
    """All transit layers for one city. Fields are never None."""
    bus_stops: List[BusStop] = field(default_factory=list)
    metro_stations: List[Station] = field(default_factory=list)
    metro_lines: List[Line] = field(default_factory=list)
    rail_stations: List[Station] = field(default_factory=list)
    rail_lines: List[Line] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.bus_stops
            or self.metro_stations
            or self.metro_lines
            or self.rail_stations
            or self.rail_lines
        )

    def to_dict(self) -> dict:
        return {
            "busStops": [s.to_dict() for s in self.bus_stops],
            "metroStations": [s.to_dict() for s in self.metro_stations],
            "metroLines": [l.to_dict() for l in self.metro_lines],
            "railStations": [s.to_dict() for s in self.rail_stations],
            "railLines": [l.to_dict() for l in self.rail_lines],
        }


@dataclass
class RidershipRecord:
    """One row of a ridership log."""
    date: str
    hour: int
    station: str
    ridership: float


@dataclass
class StationRidership:
    name: str
    ridership: int


@dataclass
class HourlyRidership:
    hour: int
    ridership: int


@dataclass
class DateRange:
    start: str
    end: str


@dataclass
class RidershipSummary:
    """Daily-average ridership derived from a log."""
    total_daily_average: int
    busiest_stations: List[StationRidership]
    ridership_by_line: Dict[str, int]
    peak_hours: List[HourlyRidership]  # one entry per hour, 0..23
    date_range: DateRange

    def to_dict(self) -> dict:
        return {
            "totalDailyRidership": self.total_daily_average,
            "busiestStations": [
                {"name": s.name, "ridership": s.ridership} for s in self.busiest_stations
            ],
            "ridershipByLine": dict(self.ridership_by_line),
            "peakHours": [{"hour": h.hour, "ridership": h.ridership} for h in self.peak_hours],
            "dateRange": {"from": self.date_range.start, "to": self.date_range.end},
        }


@dataclass
class TransitMetrics:
    """Summary counts derived from a TransitNetwork."""
    total_bus_stops: int
    total_metro_stations: int
    total_rail_stations: int
    total_bus_routes: int
    avg_routes_per_stop: float
    top_hubs: List[BusStop]
    stations_by_line: Dict[str, List[Station]]
    metro_km: float
    rail_km: float
    operational_metro_stations: int = 0

    def to_dict(self) -> dict:
        return {
            "totalBusStops": self.total_bus_stops,
            "totalMetroStations": self.total_metro_stations,
            "totalRailStations": self.total_rail_stations,
            "totalBusRoutes": self.total_bus_routes,
            "avgRoutesPerStop": self.avg_routes_per_stop,
            "topHubs": [s.to_dict() for s in self.top_hubs],
            "stationsByLine": {
                key: [s.to_dict() for s in stations]
                for key, stations in self.stations_by_line.items()
            },
            "metroKm": self.metro_km,
            "railKm": self.rail_km,
            "operationalMetroStations": self.operational_metro_stations,
        }


@dataclass
class TransitReport:
    """A network together with its derived metrics."""
    network: TransitNetwork
    metrics: TransitMetrics
