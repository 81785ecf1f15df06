"""GeoJSON FeatureCollections for map layers."""

from typing import Iterable

from .models import BusStop, Line, Station


def _collection(features) -> dict:
    return {"type": "FeatureCollection", "features": list(features)}


def bus_stops_to_geojson(stops: Iterable[BusStop]) -> dict:
    return _collection(
        {
            "type": "Feature",
            "properties": {
                "id": stop.id,
                "name": stop.name,
                "routeCount": stop.route_count,
                "direction": stop.direction,
            },
            "geometry": {"type": "Point", "coordinates": stop.point.to_list()},
        }
        for stop in stops
    )


def stations_to_geojson(stations: Iterable[Station]) -> dict:
    return _collection(
        {
            "type": "Feature",
            "properties": {"name": station.name, "line": station.line_key},
            "geometry": {"type": "Point", "coordinates": station.point.to_list()},
        }
        for station in stations
    )


def lines_to_geojson(lines: Iterable[Line]) -> dict:
    """Lines with several segments become MultiLineStrings."""
    features = []
    for line in lines:
        if line.segments:
            geometry = {
                "type": "MultiLineString",
                "coordinates": [[p.to_list() for p in segment] for segment in line.segments],
            }
        else:
            geometry = {"type": "LineString", "coordinates": [p.to_list() for p in line.coordinates]}
        features.append({
            "type": "Feature",
            "properties": {"name": line.name, "key": line.key, "color": line.color_token},
            "geometry": geometry,
        })
    return _collection(features)
