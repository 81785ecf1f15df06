"""TransitNet - Transit network reconstruction and ridership summaries for Indian cities."""

__version__ = "0.1.0"

from .models import (
    Point,
    BusStop,
    Station,
    Line,
    TransitNetwork,
    RidershipRecord,
    RidershipSummary,
    TransitMetrics,
    TransitReport,
)
from .archive import ArchiveError, ArchiveReader, extract_entry, extract_first_entry
from .feed import parse_delimited, parse_ridership_log
from .assembler import assemble_lines, chain_segments
from .matcher import LineVocabulary, assign_stations_to_lines, compute_route_counts, haversine
from .corridor import merge_corridor_relations, normalize_corridor_key
from .ridership import aggregate_ridership
from .cache import TTLCache
from .client import TransitClient
from .config import CITIES, CityConfig, get_city
from .service import TransitService, fetch_transit_network, fetch_transit_metrics, fetch_ridership

__all__ = [
    "TransitService",
    "TransitClient",
    "TTLCache",
    "fetch_transit_network",
    "fetch_transit_metrics",
    "fetch_ridership",
    "CITIES",
    "CityConfig",
    "get_city",
    "ArchiveError",
    "ArchiveReader",
    "extract_entry",
    "extract_first_entry",
    "parse_delimited",
    "parse_ridership_log",
    "assemble_lines",
    "chain_segments",
    "LineVocabulary",
    "assign_stations_to_lines",
    "compute_route_counts",
    "haversine",
    "merge_corridor_relations",
    "normalize_corridor_key",
    "aggregate_ridership",
    "Point",
    "BusStop",
    "Station",
    "Line",
    "TransitNetwork",
    "RidershipRecord",
    "RidershipSummary",
    "TransitMetrics",
    "TransitReport",
]
