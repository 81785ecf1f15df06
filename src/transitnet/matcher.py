"""Line name vocabulary matching and spatial station-to-line assignment."""

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import Line, Point, Station

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000
MIN_KEYWORD_LENGTH = 3
GENERIC_KEYWORDS = {"line"}

_TRAILING_LINE = re.compile(r"\s+line\s*$", re.IGNORECASE)
_KEYWORD_SPLIT = re.compile(r"[\s\-–()]+")
_PARENTHESISED = re.compile(r"\s*\(([^()]*)\)\s*$")


class ContainsMatcher:
    """Either name contains the other, ignoring case."""

    def matches(self, canonical: str, candidate: str) -> bool:
        a, b = canonical.lower(), candidate.lower()
        return bool(a) and bool(b) and (a in b or b in a)


class SuffixStrippedMatcher:
    """Drop a trailing "Line" from the canonical name and look for the rest."""

    def matches(self, canonical: str, candidate: str) -> bool:
        stripped = _TRAILING_LINE.sub("", canonical).strip().lower()
        if not stripped or stripped == canonical.strip().lower():
            return False
        return stripped in candidate.lower()


class KeywordMatcher:
    """
    Any significant word of the canonical name appears in the candidate.

    Words shorter than three characters and the word "line" are skipped, so
    "Blue Line" does not match "Harbour Line".
    """

    def matches(self, canonical: str, candidate: str) -> bool:
        target = candidate.lower()
        for keyword in _KEYWORD_SPLIT.split(canonical.lower()):
            if len(keyword) < MIN_KEYWORD_LENGTH or keyword in GENERIC_KEYWORDS:
                continue
            if keyword in target:
                return True
        return False


DEFAULT_STRATEGIES = (ContainsMatcher(), SuffixStrippedMatcher(), KeywordMatcher())


class LineVocabulary:
    """
    Ordered mapping of canonical line names to color tokens.

    `match()` runs each strategy over every entry before falling through to
    the next, weaker strategy. The first hit wins.
    """

    def __init__(self, entries: Mapping[str, str], strategies: Sequence = DEFAULT_STRATEGIES):
        self.entries: Dict[str, str] = dict(entries)
        self.strategies = tuple(strategies)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def match(self, name: str) -> Optional[str]:
        """Return the canonical name for `name`, or None when nothing matches."""
        if not name:
            return None
        for strategy in self.strategies:
            for canonical in self.entries:
                if strategy.matches(canonical, name):
                    return canonical
        return None

    def color_for(self, canonical: str) -> str:
        return self.entries[canonical]


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in metres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def nearest_line_key(point: Point, lines: Sequence[Line], stride: int = 1) -> Optional[str]:
    """
    Return the key of the line with a vertex closest to `point`.

    Args:
        point: Station location.
        lines: Candidate lines.
        stride: Only every n-th vertex is considered; dense lines can use 5-10.
    """
    stride = max(1, stride)
    best_key = None
    best_distance = math.inf
    for line in lines:
        for vertex in line.coordinates[::stride]:
            d = haversine(point.lat, point.lon, vertex.lat, vertex.lon)
            if d < best_distance:
                best_distance = d
                best_key = line.key
    return best_key


def extract_line_hint(name: str, lines: Sequence[Line]) -> Tuple[str, Optional[str]]:
    """
    Resolve a parenthesised line hint such as "Ameerpet (Red Line)".

    Returns:
        (name without the hint, matched line key) when the hint names one of
        `lines`, else (name, None).
    """
    found = _PARENTHESISED.search(name)
    if not found or not lines:
        return name, None

    vocabulary = LineVocabulary({line.key: line.color_token for line in lines})
    hint = found.group(1).strip()
    key = vocabulary.match(hint)
    if key is None:
        # "Red Line" against key "red": compare without the trailing "Line".
        key = vocabulary.match(_TRAILING_LINE.sub("", hint).strip())
    if key is None:
        return name, None
    return name[:found.start()].strip(), key


@dataclass
class StationCandidate:
    """A named point that still needs a line."""
    name: str
    point: Point


def assign_stations_to_lines(
    candidates: Iterable[StationCandidate],
    lines: Sequence[Line],
    fallback_key: str,
    stride: int = 1,
) -> List[Station]:
    """
    Give each candidate the key of its line.

    A line hint in the name wins over distance. Stations are de-duplicated by
    (cleaned) name, keeping the first occurrence.
    """
    stations: List[Station] = []
    seen = set()
    for candidate in candidates:
        name, key = extract_line_hint(candidate.name, lines)
        if name in seen:
            continue
        seen.add(name)
        if key is None:
            key = nearest_line_key(candidate.point, lines, stride) or fallback_key
        stations.append(Station(name=name, point=candidate.point, line_key=key))
    return stations


def compute_route_counts(service_topology: Mapping[str, Mapping]) -> Dict[str, int]:
    """
    Count the distinct routes serving each stop.

    Args:
        service_topology: {route_id: {"name": ..., terminus: [[stop_id, ...], ...]}}.
            Values that are not lists of sequences are ignored.

    Returns:
        {stop_id: number of routes}. A route visiting a stop twice counts once.
    """
    counts: Dict[str, int] = {}
    for route in service_topology.values():
        if not isinstance(route, Mapping):
            continue
        stops_seen = set()
        for key, value in route.items():
            if key == "name" or not isinstance(value, list):
                continue
            for sequence in value:
                if isinstance(sequence, list):
                    stops_seen.update(str(stop_id) for stop_id in sequence)
        for stop_id in stops_seen:
            counts[stop_id] = counts.get(stop_id, 0) + 1
    return counts
