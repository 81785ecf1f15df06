"""Fetch one or all cities and write their networks as JSON."""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add src to path so we can import transitnet
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from transitnet import CITIES, TransitService
from transitnet.geojson import bus_stops_to_geojson, lines_to_geojson, stations_to_geojson

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def dump_city(service: TransitService, city_id: str) -> dict:
    """
    Fetch a city and build a JSON-ready dict of its network and metrics.

    Args:
        service: Service used for fetching.
        city_id: City id such as "mumbai".
    """
    report = service.fetch_transit_metrics(city_id)
    data = report.network.to_dict()
    data["metrics"] = report.metrics.to_dict()

    city = next(c for c in CITIES if c.id == city_id)
    data["city"] = {"id": city.id, "name": city.name, "center": [city.lon, city.lat], "zoom": city.zoom}
    if city.region_cities:
        data["city"]["region"] = city.region_cities
    return data


def write_geojson(service: TransitService, city_id: str, out_dir: Path) -> None:
    """Write one FeatureCollection per layer into out_dir/<city_id>/."""
    network = service.fetch_transit_network(city_id)
    city_dir = out_dir / city_id
    city_dir.mkdir(parents=True, exist_ok=True)

    layers = {
        "bus_stops": bus_stops_to_geojson(network.bus_stops),
        "metro_stations": stations_to_geojson(network.metro_stations),
        "metro_lines": lines_to_geojson(network.metro_lines),
        "rail_stations": stations_to_geojson(network.rail_stations),
        "rail_lines": lines_to_geojson(network.rail_lines),
    }
    for name, collection in layers.items():
        with open(city_dir / f"{name}.geojson", "w", encoding="utf-8") as fh:
            json.dump(collection, fh)
    logger.info(f"Wrote {len(layers)} layers to {city_dir}")


def main():
    known = [c.id for c in CITIES]
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("city", nargs="?", choices=known, help="City id")
    parser.add_argument("--all", action="store_true", help="Fetch every configured city")
    parser.add_argument("-o", "--output", type=Path, help="JSON output file (stdout by default)")
    parser.add_argument("--geojson", type=Path, help="Also write per-layer GeoJSON into this directory")
    parser.add_argument("--strict", action="store_true", help="Fail on malformed archives")
    args = parser.parse_args()

    if not args.all and not args.city:
        parser.error("give a city id or --all")

    service = TransitService(strict=args.strict)
    city_ids = known if args.all else [args.city]

    result = {}
    for city_id in city_ids:
        try:
            result[city_id] = dump_city(service, city_id)
            if args.geojson:
                write_geojson(service, city_id, args.geojson)
        except Exception as e:
            logger.error(f"Failed to dump {city_id}: {e}", exc_info=True)
            if args.strict:
                sys.exit(1)

    output = result if args.all else result.get(args.city, {})
    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            json.dump(output, fh, indent=2)
        logger.info(f"Wrote {args.output}")
    else:
        json.dump(output, sys.stdout, indent=2)
        print()


if __name__ == "__main__":
    main()
