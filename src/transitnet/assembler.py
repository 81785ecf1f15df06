"""Reconstruct line geometries from graph nodes, ways and route relations."""

import logging
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from .matcher import LineVocabulary
from .models import Line, Member, Node, Point, Relation, Way

logger = logging.getLogger(__name__)

DEFAULT_ROUTE_TYPES = ("subway", "light_rail", "train", "monorail", "tram")

# Platform members are areas or ways beside the track, not part of the path.
IGNORED_ROLES = {"platform", "platform_entry_only", "platform_exit_only"}


def parse_overpass_elements(elements: Iterable[dict]) -> Tuple[Dict[int, Node], Dict[int, Way], List[Relation]]:
    """
    Split an Overpass `elements` list into nodes, ways and relations.

    Nodes without coordinates are dropped.
    """
    nodes: Dict[int, Node] = {}
    ways: Dict[int, Way] = {}
    relations: List[Relation] = []

    for element in elements:
        kind = element.get("type")
        if kind == "node":
            if "lat" not in element or "lon" not in element:
                continue
            nodes[element["id"]] = Node(
                id=element["id"],
                point=Point(lat=float(element["lat"]), lon=float(element["lon"])),
                tags=element.get("tags") or {},
            )
        elif kind == "way":
            ways[element["id"]] = Way(id=element["id"], node_ids=list(element.get("nodes") or []))
        elif kind == "relation":
            members = [
                Member(type=m.get("type", ""), ref=m.get("ref"), role=m.get("role") or "")
                for m in element.get("members") or []
                if m.get("ref") is not None
            ]
            relations.append(Relation(id=element["id"], tags=element.get("tags") or {}, members=members))

    logger.debug(f"Parsed {len(nodes)} nodes, {len(ways)} ways, {len(relations)} relations")
    return nodes, ways, relations


def chain_segments(way_coordinates: Iterable[Sequence[Point]]) -> List[List[Point]]:
    """
    Join way geometries end-to-end into continuous segments.

    Each way extends the current segment when its first point (or, reversed,
    its last point) equals the segment's last point; the shared join point is
    not repeated. Any other way starts a new segment. Points must be exactly
    equal to join.
    """
    segments: List[List[Point]] = []
    current: List[Point] = []

    for coords in way_coordinates:
        coords = list(coords)
        if not coords:
            continue
        if not current:
            current = coords
            continue

        tail = current[-1]
        if coords[0] == tail:
            current.extend(coords[1:])
        elif coords[-1] == tail:
            current.extend(reversed(coords[:-1]))
        else:
            segments.append(current)
            current = coords

    if current:
        segments.append(current)
    return segments


def _way_coordinates(relation: Relation, nodes: Mapping[int, Node], ways: Mapping[int, Way]) -> List[List[Point]]:
    resolved = []
    for member in relation.members:
        if member.type != "way" or member.role in IGNORED_ROLES:
            continue
        way = ways.get(member.ref)
        if way is None:
            continue
        coords = [nodes[node_id].point for node_id in way.node_ids if node_id in nodes]
        if coords:
            resolved.append(coords)
    return resolved


def is_route(relation: Relation, route_types: Sequence[str] = DEFAULT_ROUTE_TYPES) -> bool:
    """True for route relations of one of the given kinds."""
    kind = relation.tags.get("type")
    return kind in (None, "route") and relation.tags.get("route") in route_types


def assemble_lines(
    nodes: Mapping[int, Node],
    ways: Mapping[int, Way],
    relations: Iterable[Relation],
    vocabulary: LineVocabulary,
    route_types: Sequence[str] = DEFAULT_ROUTE_TYPES,
) -> List[Line]:
    """
    Build one Line per vocabulary entry from route relations.

    Relations whose name matches no vocabulary entry are skipped, as are
    later relations resolving to an entry that already produced a line.

    Args:
        nodes: Node id -> Node.
        ways: Way id -> Way.
        relations: Route relations in priority order.
        vocabulary: Canonical line names and their color tokens.
        route_types: Accepted values of the relation's `route` tag.

    Returns:
        Lines in the order their first relation appeared.
    """
    lines: List[Line] = []
    assembled = set()

    for relation in relations:
        if not is_route(relation, route_types):
            continue
        canonical = vocabulary.match(relation.name)
        if canonical is None or canonical in assembled:
            continue

        segments = chain_segments(_way_coordinates(relation, nodes, ways))
        if not segments:
            continue

        assembled.add(canonical)
        lines.append(Line(
            name=canonical,
            color_token=vocabulary.color_for(canonical),
            coordinates=[point for segment in segments for point in segment],
            segments=segments if len(segments) > 1 else None,
        ))
        logger.debug(f"Assembled {canonical} from relation {relation.id}: {len(segments)} segment(s)")

    return lines
