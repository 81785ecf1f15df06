"""Parsers turning each upstream source format into stops, stations and lines."""

import logging
import re
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .archive import ArchiveReader, EntryNotFoundError
from .assembler import assemble_lines, chain_segments, is_route, parse_overpass_elements
from .config import OVERPASS_TIMEOUT, OverpassRouteSource
from .corridor import merge_corridor_relations
from .feed import parse_delimited
from .matcher import LineVocabulary, StationCandidate, assign_stations_to_lines, compute_route_counts
from .models import BusStop, Line, Node, Point, Relation, Station

logger = logging.getLogger(__name__)

# Vertex stride used when matching stations against dense line geometry
STATION_MATCH_STRIDE = 5

STATION_TAGS = (("railway", "station"), ("public_transport", "station"))
STOP_ROLES = {"stop", "stop_entry_only", "stop_exit_only"}


# --- Geometry helpers ---

def _point(coordinate) -> Optional[Point]:
    """[lon, lat] -> Point, or None when malformed."""
    try:
        return Point(lat=float(coordinate[1]), lon=float(coordinate[0]))
    except (TypeError, ValueError, IndexError):
        return None


def _path(coordinates) -> List[Point]:
    points = (_point(c) for c in coordinates or [])
    return [p for p in points if p is not None]


def _geometry_parts(geometry: Optional[Mapping]) -> List[List[Point]]:
    """Return the paths of a LineString or MultiLineString geometry."""
    if not geometry:
        return []
    kind = geometry.get("type")
    if kind == "LineString":
        parts = [_path(geometry.get("coordinates"))]
    elif kind == "MultiLineString":
        parts = [_path(part) for part in geometry.get("coordinates") or []]
    else:
        return []
    return [part for part in parts if part]


def _make_line(name: str, color: str, parts: List[List[Point]], key: Optional[str] = None) -> Optional[Line]:
    if not parts:
        return None
    return Line(
        name=name,
        color_token=color,
        coordinates=[p for part in parts for p in part],
        segments=parts if len(parts) > 1 else None,
        key=key,
    )


def polygon_centroid(ring: Sequence) -> Optional[Point]:
    """Vertex average of a polygon's exterior ring, ignoring the closing vertex."""
    points = _path(ring)
    if len(points) > 1 and points[0] == points[-1]:
        points = points[:-1]
    if not points:
        return None
    return Point(
        lat=sum(p.lat for p in points) / len(points),
        lon=sum(p.lon for p in points) / len(points),
    )


# --- TransitRouter (bus) ---

def parse_transit_router_stops(raw: Mapping[str, Sequence]) -> List[BusStop]:
    """
    Parse a TransitRouter stops.min.json.

    Format: {stop_id: [lon, lat, name, direction, reserved]}. Entries with
    missing or non-numeric coordinates are skipped.
    """
    stops = []
    for stop_id, entry in raw.items():
        if not isinstance(entry, (list, tuple)) or len(entry) < 3:
            continue
        point = _point(entry)
        if point is None:
            continue
        direction = entry[3] if len(entry) > 3 and entry[3] else None
        stops.append(BusStop(
            id=str(stop_id),
            name=str(entry[2] or ""),
            point=point,
            direction=direction,
        ))
    return stops


def apply_route_counts(stops: Iterable[BusStop], route_counts: Mapping[str, int]) -> List[BusStop]:
    """Set each stop's route_count (0 when the stop is not served)."""
    stops = list(stops)
    for stop in stops:
        stop.route_count = route_counts.get(stop.id, 0)
    return stops


def parse_transit_router_bus(raw_stops: Mapping, raw_services: Optional[Mapping]) -> List[BusStop]:
    """Stops with route counts; counts are all 0 when services are unavailable."""
    counts = compute_route_counts(raw_services) if raw_services else {}
    return apply_route_counts(parse_transit_router_stops(raw_stops), counts)


# --- Namma Metro (Bengaluru) ---

NAMMA_LINE_COLORS = {
    "purple": "#9333ea",
    "green": "#16a34a",
    "yellow": "#eab308",
    "pink": "#ec4899",
    "blue": "#2563eb",
}
NAMMA_DEFAULT_LINE = "purple"


def _namma_color_key(properties: Mapping, name: str) -> str:
    description = (properties.get("description") or "").strip().lower()
    if description in NAMMA_LINE_COLORS:
        return description
    lower = name.lower()
    for color in NAMMA_LINE_COLORS:
        if color in lower:
            return color
    return NAMMA_DEFAULT_LINE


def parse_namma_metro_geojson(geojson: Mapping) -> Tuple[List[Station], List[Line]]:
    """
    Parse the namma-metro FeatureCollection.

    Line features carry their color in `description` or in the name
    ("Line-1 (Purple): Mysore Road - Baiyappanahalli"). Station points have
    no line information and are assigned by proximity.
    """
    lines: List[Line] = []
    candidates: List[StationCandidate] = []

    for feature in geojson.get("features") or []:
        properties = feature.get("properties") or {}
        geometry = feature.get("geometry") or {}
        name = properties.get("Name") or properties.get("name") or ""

        if geometry.get("type") in ("LineString", "MultiLineString"):
            color_key = _namma_color_key(properties, name)
            line = _make_line(name, NAMMA_LINE_COLORS[color_key], _geometry_parts(geometry), key=color_key)
            if line:
                lines.append(line)
        elif geometry.get("type") == "Point":
            point = _point(geometry.get("coordinates"))
            if point:
                candidates.append(StationCandidate(name=name or "Unknown", point=point))

    stations = assign_stations_to_lines(candidates, lines, NAMMA_DEFAULT_LINE)
    return stations, lines


# --- Delhi Metro ---

DELHI_LINE_COLOR_KEY = {
    "yellow line": "yellow",
    "blue line": "blue",
    "blue line branch": "blue",
    "red line": "red",
    "green line": "green",
    "green line branch": "green",
    "violet line": "violet",
    "airport express": "orange",
    "pink line": "pink",
    "magenta line": "magenta",
    "gray line": "gray",
    "grey line": "gray",
}

DELHI_LINE_HEX = {
    "yellow": "#eab308",
    "blue": "#2563eb",
    "red": "#dc2626",
    "green": "#16a34a",
    "violet": "#7c3aed",
    "pink": "#ec4899",
    "magenta": "#d946ef",
    "gray": "#6b7280",
    "orange": "#f97316",
}
DELHI_DEFAULT_LINE = "blue"


def parse_delhi_metro_stations(raw: Iterable[Mapping]) -> List[Station]:
    """
    Parse dhirajt/delhi-metro-stations metro.json.

    Format: [{name, details: {line: [...], latitude, longitude}}]. Interchange
    stations take their first listed line.
    """
    stations = []
    seen = set()
    for entry in raw:
        name = entry.get("name")
        details = entry.get("details") or {}
        lat, lon = details.get("latitude"), details.get("longitude")
        if not name or not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
            continue
        if name in seen:
            continue
        seen.add(name)

        line_names = details.get("line") or [""]
        key = DELHI_LINE_COLOR_KEY.get(str(line_names[0]).lower(), DELHI_DEFAULT_LINE)
        stations.append(Station(name=name, point=Point(lat=float(lat), lon=float(lon)), line_key=key))
    return stations


def _rgb_to_hex(rgb: Sequence) -> str:
    return "#" + "".join(f"{max(0, min(255, round(float(c)))):02x}" for c in rgb[:3])


def parse_delhi_metro_lines(raw: Mapping[str, Mapping]) -> List[Line]:
    """
    Parse Delhi_NCR_metro_lines.json.

    Format is column-oriented: {name: {i: str}, color: {i: [r, g, b]},
    path: {i: [[lon, lat], ...]}}. Known line names map to the standard
    palette; anything else keeps its RGB color and uses its name as key.
    """
    names = raw.get("name") or {}
    colors = raw.get("color") or {}
    paths = raw.get("path") or {}

    lines = []
    for index, name in names.items():
        rgb = colors.get(index)
        path = _path(paths.get(index))
        if not name or not rgb or not path:
            continue

        lower = name.lower()
        key = None
        for pattern, color_key in DELHI_LINE_COLOR_KEY.items():
            if pattern.replace(" line", "").strip() in lower:
                key = color_key
                break

        color = DELHI_LINE_HEX[key] if key else _rgb_to_hex(rgb)
        lines.append(Line(name=name, color_token=color, coordinates=path, key=key or name))
    return lines


# --- Hyderabad Metro ---

HYDERABAD_LINE_HEX = {
    "red": "#dc2626",
    "green": "#16a34a",
    "blue": "#2563eb",
}
HYDERABAD_DEFAULT_LINE = "red"
_LINE_NUMBER = re.compile(r"Line\s*(\d+)", re.IGNORECASE)


def _hyderabad_color_key(name: str) -> str:
    lower = name.lower()
    for color in HYDERABAD_LINE_HEX:
        if color in lower:
            return color
    return HYDERABAD_DEFAULT_LINE


def parse_hyderabad_metro_routes(geojson: Mapping) -> List[Line]:
    """
    Group the ~130 route LineStrings by line color into one Line each.

    Pieces that share endpoints are chained; the rest stay separate segments.
    """
    groups: Dict[str, Tuple[str, List[List[Point]]]] = {}
    for feature in geojson.get("features") or []:
        geometry = feature.get("geometry") or {}
        if geometry.get("type") != "LineString":
            continue
        name = (feature.get("properties") or {}).get("name") or ""
        color_key = _hyderabad_color_key(name)

        if color_key not in groups:
            number = _LINE_NUMBER.search(name)
            display = f"Line {number.group(1)} ({color_key.capitalize()})" if number else name
            groups[color_key] = (display, [])

        path = _path(geometry.get("coordinates"))
        if len(path) > 1:
            groups[color_key][1].append(path)

    lines = []
    for color_key, (display, pieces) in groups.items():
        line = _make_line(display, HYDERABAD_LINE_HEX[color_key], chain_segments(pieces), key=color_key)
        if line:
            lines.append(line)
    return lines


def parse_hyderabad_metro_stations(geojson: Mapping, lines: Sequence[Line]) -> List[Station]:
    """
    Station building footprints -> stations at the footprint centroid.

    A name hint such as "Ameerpet (Red Line)" decides the line; otherwise the
    nearest line wins. Several footprints of one station collapse to one.
    """
    candidates = []
    for feature in geojson.get("features") or []:
        properties = feature.get("properties") or {}
        name = properties.get("station_name") or properties.get("name")
        if not name:
            continue

        geometry = feature.get("geometry") or {}
        coordinates = geometry.get("coordinates") or []
        try:
            if geometry.get("type") == "Polygon":
                ring = coordinates[0]
            elif geometry.get("type") == "MultiPolygon":
                ring = coordinates[0][0]
            else:
                continue
        except (IndexError, TypeError):
            continue

        centroid = polygon_centroid(ring)
        if centroid:
            candidates.append(StationCandidate(name=name, point=centroid))

    return assign_stations_to_lines(
        candidates, lines, HYDERABAD_DEFAULT_LINE, stride=STATION_MATCH_STRIDE
    )


# --- GTFS archive ---

def _read_table(reader: ArchiveReader, name: str, required: bool = True) -> List[Dict[str, str]]:
    try:
        content = reader.read(name)
    except EntryNotFoundError:
        if required:
            raise
        return []
    return parse_delimited(content.decode("utf-8", errors="replace"))


def _gtfs_shapes(shape_rows: Iterable[Mapping[str, str]]) -> Dict[str, List[Point]]:
    collected: Dict[str, List[Tuple[float, Point]]] = defaultdict(list)
    for row in shape_rows:
        try:
            sequence = float(row["shape_pt_sequence"])
            point = Point(lat=float(row["shape_pt_lat"]), lon=float(row["shape_pt_lon"]))
        except (KeyError, ValueError):
            continue
        collected[row.get("shape_id", "")].append((sequence, point))
    return {
        shape_id: [point for _, point in sorted(points, key=lambda item: item[0])]
        for shape_id, points in collected.items()
    }


def parse_gtfs_archive(archive_bytes: bytes, default_color: str = "#2563eb") -> Tuple[List[Station], List[Line]]:
    """
    Build stations and lines from a zipped GTFS feed.

    stops.txt and shapes.txt are required. When routes.txt and trips.txt are
    present each route becomes one line drawn with its longest shape;
    otherwise every shape becomes a line.

    Raises:
        ArchiveError: The archive is malformed or lacks a required table.
    """
    reader = ArchiveReader(archive_bytes)
    stop_rows = _read_table(reader, "stops.txt")
    shapes = _gtfs_shapes(_read_table(reader, "shapes.txt"))
    route_rows = _read_table(reader, "routes.txt", required=False)
    trip_rows = _read_table(reader, "trips.txt", required=False)

    shapes_by_route: Dict[str, set] = defaultdict(set)
    for trip in trip_rows:
        if trip.get("shape_id"):
            shapes_by_route[trip.get("route_id", "")].add(trip["shape_id"])

    lines: List[Line] = []
    for route in route_rows:
        route_shapes = [shapes[s] for s in shapes_by_route.get(route.get("route_id", ""), ()) if s in shapes]
        if not route_shapes:
            continue
        name = route.get("route_long_name") or route.get("route_short_name") or route.get("route_id", "")
        color = f"#{route['route_color']}" if route.get("route_color") else default_color
        lines.append(Line(name=name, color_token=color, coordinates=max(route_shapes, key=len)))

    if not lines:
        lines = [
            Line(name=shape_id, color_token=default_color, coordinates=points)
            for shape_id, points in shapes.items()
            if points
        ]

    parents = [row for row in stop_rows if row.get("location_type") == "1"]
    station_rows = parents or [row for row in stop_rows if row.get("location_type", "") in ("", "0")]

    candidates = []
    for row in station_rows:
        try:
            point = Point(lat=float(row["stop_lat"]), lon=float(row["stop_lon"]))
        except (KeyError, ValueError):
            continue
        candidates.append(StationCandidate(name=row.get("stop_name") or row.get("stop_id", ""), point=point))

    fallback = lines[0].key if lines else "metro"
    stations = assign_stations_to_lines(candidates, lines, fallback, stride=STATION_MATCH_STRIDE)
    logger.debug(f"GTFS archive: {len(stations)} stations, {len(lines)} lines")
    return stations, lines


# --- Overpass ---

def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_overpass_route_query(source: OverpassRouteSource, timeout: int = OVERPASS_TIMEOUT) -> str:
    """Overpass QL for a network's route relations, their geometry and its stations."""
    network = _quote(source.network)
    relation_filter = f'["type"="route"]["route"="{_quote(source.route_type)}"]["network"="{network}"]'
    if source.operator:
        relation_filter += f'["operator"="{_quote(source.operator)}"]'
    return (
        f"[out:json][timeout:{timeout}];\n"
        "(\n"
        f"  relation{relation_filter};\n"
        f'  node["railway"="station"]["network"="{network}"];\n'
        f'  node["public_transport"="station"]["network"="{network}"];\n'
        ");\n"
        "(._;>;);\n"
        "out body;"
    )


def build_overpass_bus_query(area: str, timeout: int = OVERPASS_TIMEOUT) -> str:
    """Overpass QL for bus stops and bus route relations inside an administrative area."""
    return (
        f"[out:json][timeout:{timeout}];\n"
        f'area["name"="{_quote(area)}"]["boundary"="administrative"]->.searchArea;\n'
        "(\n"
        '  node["highway"="bus_stop"](area.searchArea);\n'
        '  relation["type"="route"]["route"="bus"](area.searchArea);\n'
        ");\n"
        "out body;"
    )


def _is_station(node: Node) -> bool:
    return bool(node.tags.get("name")) and any(node.tags.get(k) == v for k, v in STATION_TAGS)


def _station_candidates(nodes: Mapping[int, Node], relations: Iterable[Relation]) -> List[StationCandidate]:
    """Station-tagged nodes, or named stop members of the routes when there are none."""
    stations = [n for n in nodes.values() if _is_station(n)]
    if not stations:
        seen = set()
        for relation in relations:
            for member in relation.members:
                node = nodes.get(member.ref) if member.type == "node" else None
                if node is None or member.role not in STOP_ROLES or not node.tags.get("name"):
                    continue
                if node.id not in seen:
                    seen.add(node.id)
                    stations.append(node)
    return [StationCandidate(name=n.tags["name"], point=n.point) for n in stations]


def parse_overpass_routes(
    elements: Iterable[dict],
    source: OverpassRouteSource,
    merge_corridors: bool = True,
) -> Tuple[List[Station], List[Line]]:
    """
    Assemble an Overpass route query result into stations and lines.

    Direction and service variants of one corridor are merged first, then
    matched against the source's line vocabulary.
    """
    nodes, ways, relations = parse_overpass_elements(elements)
    route_types = (source.route_type,)
    routes = [r for r in relations if is_route(r, route_types)]
    if merge_corridors:
        routes = merge_corridor_relations(routes)

    vocabulary = LineVocabulary(source.vocabulary)
    lines = assemble_lines(nodes, ways, routes, vocabulary, route_types)

    fallback = lines[0].key if lines else next(iter(vocabulary), source.network)
    stations = assign_stations_to_lines(
        _station_candidates(nodes, relations), lines, fallback, stride=STATION_MATCH_STRIDE
    )
    logger.debug(f"{source.network}: {len(routes)} corridors -> {len(lines)} lines, {len(stations)} stations")
    return stations, lines


def overpass_bus_topology(relations: Iterable[Relation]) -> Dict[str, dict]:
    """Bus route relations as a {route_id: {name, stops: [[stop ids]]}} topology."""
    topology = {}
    for relation in relations:
        if not is_route(relation, ("bus",)):
            continue
        sequence = [str(m.ref) for m in relation.members if m.type == "node"]
        topology[str(relation.id)] = {"name": relation.name, "stops": [sequence]}
    return topology


def parse_overpass_bus_stops(elements: Iterable[dict]) -> Tuple[List[BusStop], int]:
    """
    Bus stops from an Overpass bus query, with route counts.

    Returns:
        (stops, number of bus route relations)
    """
    nodes, _, relations = parse_overpass_elements(elements)
    topology = overpass_bus_topology(relations)
    stops = [
        BusStop(
            id=str(node.id),
            name=node.tags.get("name", ""),
            point=node.point,
            direction=node.tags.get("direction"),
        )
        for node in nodes.values()
        if node.tags.get("highway") == "bus_stop"
    ]
    return apply_route_counts(stops, compute_route_counts(topology)), len(topology)
