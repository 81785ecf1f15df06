"""Per-city transit fetching with concurrent sources and a TTL cache."""

import logging
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import requests

from .archive import ArchiveError, LOCAL_HEADER_SIGNATURE, extract_first_entry
from .cache import CacheKey, TTLCache
from .client import TransitClient
from .config import (
    CITIES,
    CityConfig,
    DelhiMetroSource,
    GTFSArchiveSource,
    HyderabadMetroSource,
    NammaMetroSource,
    OverpassBusSource,
    OverpassRailSource,
    OverpassRouteSource,
    TransitRouterBusSource,
    get_city,
)
from .feed import parse_ridership_log
from .metrics import compute_metrics
from .models import BusStop, Line, RidershipSummary, Station, TransitNetwork, TransitReport
from .ridership import summarize_ridership
from .sources import (
    build_overpass_bus_query,
    build_overpass_route_query,
    parse_delhi_metro_lines,
    parse_delhi_metro_stations,
    parse_gtfs_archive,
    parse_hyderabad_metro_routes,
    parse_hyderabad_metro_stations,
    parse_namma_metro_geojson,
    parse_overpass_bus_stops,
    parse_overpass_routes,
    parse_transit_router_bus,
)

logger = logging.getLogger(__name__)

ZIP_MAGIC = LOCAL_HEADER_SIGNATURE.to_bytes(4, "little")

BusResult = Tuple[List[BusStop], int]
StationsAndLines = Tuple[List[Station], List[Line]]


@dataclass
class _NetworkSnapshot:
    network: TransitNetwork
    bus_route_total: int = 0
    # False when every source failed and nothing was cached.
    usable: bool = True


class TransitService:
    """
    Fetches, reconstructs and caches transit networks per city.

    Each city's bus, metro and rail sources are fetched concurrently. A
    source that fails leaves its layer empty instead of failing the city.
    """

    def __init__(
        self,
        client: Optional[TransitClient] = None,
        cache: Optional[TTLCache] = None,
        cities: Optional[List[CityConfig]] = None,
        strict: bool = False,
    ):
        """
        Initialize the service.

        Args:
            client: Upstream HTTP client.
            cache: Result cache; a 24h TTLCache by default.
            cities: City table; the built-in CITIES by default.
            strict: Propagate archive parse errors instead of degrading.
                Meant for refresh tooling, where a format change should fail loudly.
        """
        self.client = client or TransitClient()
        self.cache = cache or TTLCache()
        self.cities = cities if cities is not None else CITIES
        self.strict = strict

        self._key_locks: Dict[CacheKey, threading.Lock] = defaultdict(threading.Lock)
        self._key_locks_guard = threading.Lock()

        self._bus_loaders: Dict[type, Callable] = {
            TransitRouterBusSource: self._load_transit_router_bus,
            OverpassBusSource: self._load_overpass_bus,
        }
        self._metro_loaders: Dict[type, Callable] = {
            NammaMetroSource: self._load_namma_metro,
            DelhiMetroSource: self._load_delhi_metro,
            HyderabadMetroSource: self._load_hyderabad_metro,
            OverpassRouteSource: self._load_overpass_routes,
            GTFSArchiveSource: self._load_gtfs_archive,
        }
        self._rail_loaders: Dict[type, Callable] = {
            OverpassRailSource: self._load_overpass_rail,
        }

    # --- Public API ---

    def fetch_transit_network(self, city_id: str) -> TransitNetwork:
        """
        Get the transit network for a city.

        Returns:
            TransitNetwork; all layers empty when the city is unknown or has
            no sources configured.
        """
        return self._network_snapshot(city_id).network

    def fetch_transit_metrics(self, city_id: str) -> TransitReport:
        """Get a city's network together with summary metrics."""

        def build():
            snapshot = self._network_snapshot(city_id)
            city = get_city(city_id, self.cities)
            metrics = compute_metrics(
                snapshot.network,
                total_bus_routes=snapshot.bus_route_total,
                operational_lines=city.operational_lines if city else None,
            )
            return TransitReport(network=snapshot.network, metrics=metrics), snapshot.usable

        return self._cached(("metrics", city_id), build)

    def fetch_ridership(self, city_id: str) -> Optional[RidershipSummary]:
        """
        Get the ridership summary for a city.

        Returns:
            RidershipSummary, or None when the city has no ridership source
            (or it could not be fetched and nothing is cached).
        """
        city = get_city(city_id, self.cities)
        if city is None or city.ridership is None:
            return None

        def build():
            try:
                totals = parse_ridership_log(self._read_log(city.ridership.url))
            except (requests.RequestException, ArchiveError) as e:
                if self.strict and isinstance(e, ArchiveError):
                    raise
                logger.warning(f"Failed to load ridership for {city_id}: {e}")
                return None, False

            snapshot = self._network_snapshot(city_id)
            network = snapshot.network
            station_lines = {s.name: s.line_key for s in network.metro_stations + network.rail_stations}
            # Without a network every station falls under "unknown"; retry later.
            return summarize_ridership(totals, station_lines), snapshot.usable

        return self._cached(("ridership", city_id), build)

    def clear_cache(self) -> None:
        self.cache.clear()

    # --- Caching ---

    def _lock_for(self, key: CacheKey) -> threading.Lock:
        with self._key_locks_guard:
            return self._key_locks[key]

    def _cached(self, key: CacheKey, build: Callable[[], Tuple[object, bool]]):
        """
        Return the fresh cached value for `key` or build a new one.

        `build` returns (value, usable). An unusable result (every source
        failed) is not cached; a stale entry is served instead when one exists.
        """
        entry = self.cache.get_entry(key)
        if entry is not None and self.cache.is_fresh(entry):
            logger.debug(f"Using cached data for {key}")
            return entry.value

        # One fetch per key at a time; waiting callers reuse its result.
        with self._lock_for(key):
            entry = self.cache.get_entry(key)
            if entry is not None and self.cache.is_fresh(entry):
                return entry.value

            value, usable = build()
            if not usable:
                if entry is not None:
                    logger.warning(f"Refetch failed for {key}; serving stale data")
                    return entry.value
                return value

            self.cache.set(key, value)
            return value

    # --- Network assembly ---

    def _network_snapshot(self, city_id: str) -> _NetworkSnapshot:
        city = get_city(city_id, self.cities)
        if city is None or not city.has_sources:
            logger.debug(f"No transit sources configured for {city_id}")
            return _NetworkSnapshot(network=TransitNetwork())
        return self._cached(("network", city_id), lambda: self._build_snapshot(city))

    @staticmethod
    def _resolve(loaders: Dict[type, Callable], source) -> Callable:
        loader = loaders.get(type(source))
        if loader is None:
            raise TypeError(f"Unsupported source type: {type(source).__name__}")
        return loader

    def _build_snapshot(self, city: CityConfig) -> Tuple[_NetworkSnapshot, bool]:
        jobs = []
        if city.bus is not None:
            jobs.append(("bus", self._resolve(self._bus_loaders, city.bus), city.bus))
        if city.metro is not None:
            jobs.append(("metro", self._resolve(self._metro_loaders, city.metro), city.metro))
        if city.rail is not None:
            jobs.append(("rail", self._resolve(self._rail_loaders, city.rail), city.rail))

        results = {}
        with ThreadPoolExecutor(max_workers=len(jobs)) as pool:
            futures = {kind: pool.submit(loader, source) for kind, loader, source in jobs}
            for kind, future in futures.items():
                try:
                    results[kind] = future.result()
                except Exception as e:
                    if self.strict and isinstance(e, ArchiveError):
                        raise
                    logger.warning(f"Failed to load {kind} data for {city.id}: {e}")

        bus_stops, bus_route_total = results.get("bus", ([], 0))
        metro_stations, metro_lines = results.get("metro", ([], []))
        rail_stations, rail_lines = results.get("rail", ([], []))

        network = TransitNetwork(
            bus_stops=bus_stops,
            metro_stations=metro_stations,
            metro_lines=metro_lines,
            rail_stations=rail_stations,
            rail_lines=rail_lines,
        )
        logger.info(
            f"{city.id}: {len(bus_stops)} bus stops, {len(metro_stations)} metro stations, "
            f"{len(metro_lines)} metro lines, {len(rail_stations)} rail stations, {len(rail_lines)} rail lines"
        )
        usable = bool(results)
        return _NetworkSnapshot(network=network, bus_route_total=bus_route_total, usable=usable), usable

    # --- Source loaders ---

    def _load_transit_router_bus(self, source: TransitRouterBusSource) -> BusResult:
        raw_stops = self.client.get_json(source.stops_url)
        try:
            raw_services = self.client.get_json(source.services_url)
        except (requests.RequestException, ValueError) as e:
            # Stops are still useful without route counts.
            logger.warning(f"Failed to fetch bus services: {e}")
            raw_services = None
        return parse_transit_router_bus(raw_stops, raw_services), len(raw_services or {})

    def _load_overpass_bus(self, source: OverpassBusSource) -> BusResult:
        return parse_overpass_bus_stops(self.client.overpass(build_overpass_bus_query(source.area)))

    def _load_namma_metro(self, source: NammaMetroSource) -> StationsAndLines:
        return parse_namma_metro_geojson(self.client.get_json(source.url))

    def _load_delhi_metro(self, source: DelhiMetroSource) -> StationsAndLines:
        stations = parse_delhi_metro_stations(self.client.get_json(source.stations_url))
        lines = parse_delhi_metro_lines(self.client.get_json(source.lines_url))
        return stations, lines

    def _load_hyderabad_metro(self, source: HyderabadMetroSource) -> StationsAndLines:
        lines = parse_hyderabad_metro_routes(self.client.get_json(source.lines_url))
        stations = parse_hyderabad_metro_stations(self.client.get_json(source.stations_url), lines)
        return stations, lines

    def _load_overpass_routes(self, source: OverpassRouteSource) -> StationsAndLines:
        return parse_overpass_routes(self.client.overpass(build_overpass_route_query(source)), source)

    def _load_gtfs_archive(self, source: GTFSArchiveSource) -> StationsAndLines:
        return parse_gtfs_archive(self.client.get_bytes(source.url), source.default_color)

    def _load_overpass_rail(self, source: OverpassRailSource) -> StationsAndLines:
        stations: List[Station] = []
        lines: List[Line] = []
        failed = 0
        for query in source.queries:
            try:
                query_stations, query_lines = self._load_overpass_routes(query)
            except requests.RequestException as e:
                logger.warning(f"Rail query for {query.network} failed: {e}")
                failed += 1
                continue
            stations.extend(query_stations)
            lines.extend(query_lines)
        if source.queries and failed == len(source.queries):
            raise requests.RequestException("Every rail query failed")
        return stations, lines

    def _read_log(self, url: str) -> str:
        payload = self.client.get_bytes(url)
        if payload[:4] == ZIP_MAGIC:
            return extract_first_entry(payload)
        return payload.decode("utf-8", errors="replace")


_default_service: Optional[TransitService] = None
_default_lock = threading.Lock()


def get_default_service() -> TransitService:
    """Shared service used by the module-level fetch functions."""
    global _default_service
    with _default_lock:
        if _default_service is None:
            _default_service = TransitService()
        return _default_service


def fetch_transit_network(city_id: str) -> TransitNetwork:
    return get_default_service().fetch_transit_network(city_id)


def fetch_transit_metrics(city_id: str) -> TransitReport:
    return get_default_service().fetch_transit_metrics(city_id)


def fetch_ridership(city_id: str) -> Optional[RidershipSummary]:
    return get_default_service().fetch_ridership(city_id)
