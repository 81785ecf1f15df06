"""City definitions and transit data source configuration."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

# Cache lifetime for fetched networks, metrics and ridership (seconds)
CACHE_TTL = 24 * 60 * 60

REQUEST_TIMEOUT = 60
OVERPASS_TIMEOUT = 180
USER_AGENT = "transitnet/0.1"

# Tried in order until one answers
OVERPASS_URLS = (
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
)

TRANSIT_ROUTER_BASE = "https://raw.githubusercontent.com/Vonter/transitrouter/main/data"


# --- Bus sources ---

@dataclass(frozen=True)
class TransitRouterBusSource:
    """TransitRouter stops.min.json + services.min.json."""
    stops_url: str
    services_url: str


@dataclass(frozen=True)
class OverpassBusSource:
    """Bus stops and bus route relations inside a named administrative area."""
    area: str


# --- Metro / rail sources ---

@dataclass(frozen=True)
class NammaMetroSource:
    """Single GeoJSON with LineString lines and Point stations."""
    url: str


@dataclass(frozen=True)
class DelhiMetroSource:
    """Station list JSON plus column-oriented line JSON."""
    stations_url: str
    lines_url: str


@dataclass(frozen=True)
class HyderabadMetroSource:
    """Station building footprints plus per-segment route GeoJSON."""
    stations_url: str
    lines_url: str


@dataclass(frozen=True)
class OverpassRouteSource:
    """
    Route relations of one network, assembled into lines.

    `lines` maps canonical line names to colors, in matching priority order.
    """
    network: str
    lines: Tuple[Tuple[str, str], ...]
    route_type: str = "subway"
    operator: Optional[str] = None

    @property
    def vocabulary(self) -> Dict[str, str]:
        return dict(self.lines)


@dataclass(frozen=True)
class GTFSArchiveSource:
    """A zipped GTFS feed providing stops and shapes."""
    url: str
    default_color: str = "#2563eb"


@dataclass(frozen=True)
class OverpassRailSource:
    """One or more Overpass route queries whose lines are combined."""
    queries: Tuple[OverpassRouteSource, ...]


@dataclass(frozen=True)
class RidershipLogSource:
    """Semicolon-delimited date;hour;station;count log, plain or zipped."""
    url: str


BusSource = Union[TransitRouterBusSource, OverpassBusSource]
MetroSource = Union[
    NammaMetroSource, DelhiMetroSource, HyderabadMetroSource, OverpassRouteSource, GTFSArchiveSource
]
RailSource = OverpassRailSource


@dataclass(frozen=True)
class CityConfig:
    id: str
    name: str
    lat: float
    lon: float
    zoom: int
    bus: Optional[BusSource] = None
    metro: Optional[MetroSource] = None
    rail: Optional[RailSource] = None
    ridership: Optional[RidershipLogSource] = None
    # Line keys counted as operational; None means all lines are
    operational_lines: Optional[Tuple[str, ...]] = None
    region_cities: Optional[str] = None

    @property
    def has_sources(self) -> bool:
        return any(source is not None for source in (self.bus, self.metro, self.rail))


def transit_router_sources(code: str) -> TransitRouterBusSource:
    """TransitRouter URLs for a city code (blr, chennai, delhi, telangana, indore, kochi, pune)."""
    base = f"{TRANSIT_ROUTER_BASE}/{code}"
    return TransitRouterBusSource(
        stops_url=f"{base}/stops.min.json",
        services_url=f"{base}/services.min.json",
    )


CITIES: List[CityConfig] = [
    CityConfig(
        id="ahmedabad",
        name="Ahmedabad",
        lat=23.0225,
        lon=72.5714,
        zoom=12,
        bus=OverpassBusSource(area="Ahmedabad"),
        metro=OverpassRouteSource(
            network="Ahmedabad Metro",
            lines=(
                ("Blue Line (East-West)", "#2563eb"),
                ("Red Line (North-South)", "#dc2626"),
            ),
        ),
    ),
    CityConfig(
        id="bengaluru",
        name="Bengaluru",
        lat=12.9716,
        lon=77.5946,
        zoom=12,
        bus=transit_router_sources("blr"),
        metro=NammaMetroSource(
            url="https://raw.githubusercontent.com/geohacker/namma-metro/master/metro-lines-stations.geojson",
        ),
        # Blue (ORR) and Pink are under construction
        operational_lines=("green", "purple", "yellow"),
    ),
    CityConfig(
        id="chennai",
        name="Chennai",
        lat=13.0827,
        lon=80.2707,
        zoom=12,
        bus=transit_router_sources("chennai"),
        metro=OverpassRouteSource(
            network="Chennai Metro",
            lines=(("Blue Line", "#2563eb"), ("Green Line", "#16a34a")),
        ),
        rail=OverpassRailSource(queries=(
            OverpassRouteSource(
                network="Southern Railway",
                operator="Chennai Suburban Railway",
                route_type="train",
                lines=(("Chennai Suburban", "#2563eb"),),
            ),
            OverpassRouteSource(
                network="Chennai MRTS",
                route_type="train",
                lines=(("MRTS", "#ec4899"),),
            ),
        )),
    ),
    CityConfig(
        id="delhi",
        name="National Capital Region",
        region_cities="Delhi, Noida, Gurugram, Ghaziabad",
        lat=28.6139,
        lon=77.209,
        zoom=11,
        bus=transit_router_sources("delhi"),
        metro=DelhiMetroSource(
            stations_url="https://raw.githubusercontent.com/dhirajt/delhi-metro-stations/master/metro.json",
            lines_url=(
                "https://raw.githubusercontent.com/kavyajeetbora/metro_accessibility/"
                "master/data/delhi/Delhi_NCR_metro_lines.json"
            ),
        ),
        rail=OverpassRailSource(queries=(
            OverpassRouteSource(
                network="RapidX",
                route_type="subway",
                lines=(("Delhi-Meerut RRTS", "#F0631E"),),
            ),
        )),
    ),
    CityConfig(
        id="hyderabad",
        name="Hyderabad",
        lat=17.385,
        lon=78.4867,
        zoom=12,
        bus=transit_router_sources("telangana"),
        metro=HyderabadMetroSource(
            stations_url=(
                "https://raw.githubusercontent.com/kavyajeetbora/metro_accessibility/"
                "master/data/hyderabad/Hyderabad_station_buildings.geojson"
            ),
            lines_url=(
                "https://raw.githubusercontent.com/kavyajeetbora/metro_accessibility/"
                "master/data/hyderabad/Hyderabad_public_transport_route.geojson"
            ),
        ),
        rail=OverpassRailSource(queries=(
            OverpassRouteSource(
                network="Hyderabad MMTS",
                route_type="train",
                lines=(("MMTS", "#dc2626"),),
            ),
        )),
    ),
    CityConfig(
        id="indore",
        name="Indore",
        lat=22.7196,
        lon=75.8577,
        zoom=12,
        bus=transit_router_sources("indore"),
    ),
    CityConfig(
        id="kochi",
        name="Kochi",
        lat=9.9312,
        lon=76.2673,
        zoom=13,
        bus=transit_router_sources("kochi"),
        metro=GTFSArchiveSource(url="https://kochimetro.org/opendata/KMRLOpenData.zip"),
    ),
    CityConfig(
        id="kolkata",
        name="Kolkata Metropolitan Region",
        region_cities="Kolkata, New Town Kolkata",
        lat=22.5726,
        lon=88.3639,
        zoom=12,
        bus=OverpassBusSource(area="Kolkata"),
        metro=OverpassRouteSource(
            network="Kolkata Metro",
            lines=(
                ("Blue Line (North-South)", "#2563eb"),
                ("Green Line (East-West)", "#16a34a"),
                ("Orange Line (Joka-Esplanade)", "#f97316"),
                ("Purple Line (Baranagar-Barrackpore)", "#9333ea"),
                ("Yellow Line (Noapara-Jai Hind)", "#eab308"),
            ),
        ),
        rail=OverpassRailSource(queries=(
            OverpassRouteSource(
                network="Eastern Railway",
                operator="Kolkata Suburban Railway",
                route_type="train",
                lines=(("Eastern Railway Suburban", "#2563eb"),),
            ),
            OverpassRouteSource(
                network="South Eastern Railway",
                route_type="train",
                lines=(("South Eastern Railway Suburban", "#dc2626"),),
            ),
        )),
    ),
    CityConfig(
        id="mumbai",
        name="Mumbai Metropolitan Region",
        region_cities="Mumbai, Thane, Kalyan-Dombivli, Navi Mumbai",
        lat=19.076,
        lon=72.8777,
        zoom=11,
        metro=OverpassRouteSource(
            network="Mumbai Metro",
            lines=(
                ("Blue Line (Line 1)", "#2563eb"),
                ("Yellow Line (Line 2A)", "#eab308"),
                ("Red Line (Line 7)", "#dc2626"),
                ("Aqua Line (Line 3)", "#06b6d4"),
            ),
        ),
        rail=OverpassRailSource(queries=(
            OverpassRouteSource(
                network="Mumbai Suburban Railway",
                route_type="train",
                lines=(
                    ("Western Line", "#2563eb"),
                    ("Central Line", "#dc2626"),
                    ("Harbour Line", "#16a34a"),
                    ("Trans-Harbour Line", "#9333ea"),
                    ("Vasai-Diva Line", "#f97316"),
                    ("Nerul-Uran Line", "#06b6d4"),
                ),
            ),
        )),
    ),
    CityConfig(
        id="pune",
        name="Pune Metropolitan Region",
        region_cities="Pune, Pimpri-Chinchwad",
        lat=18.5204,
        lon=73.8567,
        zoom=12,
        bus=transit_router_sources("pune"),
        metro=OverpassRouteSource(
            network="Pune Metro",
            lines=(("Purple Line", "#9333ea"), ("Aqua Line", "#06b6d4")),
        ),
        rail=OverpassRailSource(queries=(
            OverpassRouteSource(
                network="Pune Suburban Railway",
                route_type="train",
                lines=(("Pune-Lonavala", "#dc2626"),),
            ),
        )),
    ),
]


def get_city(city_id: str, cities: Optional[List[CityConfig]] = None) -> Optional[CityConfig]:
    """Look up a city by id; None when unknown."""
    for city in cities if cities is not None else CITIES:
        if city.id == city_id:
            return city
    return None
