"""Nearest bus stops to a coordinate."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Optional

from .client import BusTimeClient, CancelToken, get_client
from .config import (
    BASE_SPAN,
    DEFAULT_MAX_RESULTS,
    DEFAULT_RADIUS_METERS,
    EARTH_RADIUS_METERS,
    MAX_LON_SPAN,
    METERS_PER_DEGREE,
    METERS_TO_MILES,
)
from .decoder import as_list, dig
from .routes import RouteRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingBox:
    """Search window centred on a coordinate, spans in degrees."""
    lat: float
    lon: float
    lat_span: float
    lon_span: float

    def as_params(self) -> dict[str, str]:
        return {
            "lat": str(self.lat),
            "lon": str(self.lon),
            "latSpan": f"{self.lat_span:.6f}",
            "lonSpan": f"{self.lon_span:.6f}",
        }


@dataclass
class NearbyStop:
    """A stop near the searched point, with the routes serving it."""
    id: str
    name: str
    latitude: float
    longitude: float
    distance_miles: float
    code: str = ""
    direction: str = ""
    location_type: int = 0
    routes: list[RouteRecord] = field(default_factory=list)


def bounding_box(lat: float, lon: float, radius: float = DEFAULT_RADIUS_METERS) -> BoundingBox:
    """Size a search box that covers radius meters around (lat, lon).

    Spans never drop below BASE_SPAN. Near the poles the longitude span
    grows without bound, so it is capped at MAX_LON_SPAN.
    """
    lat_span = max(BASE_SPAN, 2 * radius / METERS_PER_DEGREE)

    cos_lat = math.cos(math.radians(lat))
    if cos_lat <= 0:
        lon_span = MAX_LON_SPAN
    else:
        lon_span = max(BASE_SPAN, 2 * radius / (METERS_PER_DEGREE * cos_lat))
    lon_span = min(lon_span, MAX_LON_SPAN)

    return BoundingBox(lat=lat, lon=lon, lat_span=lat_span, lon_span=lon_span)


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters on a spherical earth."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def distance_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_meters(lat1, lon1, lat2, lon2) * METERS_TO_MILES


def _coordinate(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _route_lite(raw: Any) -> RouteRecord:
    raw = raw if isinstance(raw, dict) else {}
    return RouteRecord(
        id=str(raw.get("id") or ""),
        short_name=str(raw.get("shortName") or ""),
        long_name=str(raw.get("longName") or ""),
        description=str(raw.get("description") or ""),
    )


def parse_nearby(
    document: dict,
    lat: float,
    lon: float,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> list[NearbyStop]:
    """Rank the stops of a stops-for-location document by distance.

    Stops without coordinates are dropped. Missing data yields an empty list.
    """
    data = dig(document, "data")
    if not isinstance(data, dict):
        logger.warning("stops-for-location response has no data object")
        return []

    raw_stops = data.get("stops")
    if raw_stops is None:
        raw_stops = data.get("list")
    if raw_stops is None:
        logger.warning("stops-for-location response has no stops array")
        return []

    stops = []
    for raw in as_list(raw_stops):
        if not isinstance(raw, dict):
            continue
        stop_lat = _coordinate(raw.get("lat"))
        stop_lon = _coordinate(raw.get("lon"))
        if stop_lat is None or stop_lon is None:
            logger.debug("Stop %s missing coordinates - lat: %r, lon: %r",
                         raw.get("id"), raw.get("lat"), raw.get("lon"))
            continue

        try:
            location_type = int(raw.get("locationType") or 0)
        except (TypeError, ValueError):
            location_type = 0

        stops.append(NearbyStop(
            id=str(raw.get("id") or ""),
            name=str(raw.get("name") or ""),
            latitude=stop_lat,
            longitude=stop_lon,
            distance_miles=distance_miles(lat, lon, stop_lat, stop_lon),
            code=str(raw.get("code") or ""),
            direction=str(raw.get("direction") or ""),
            location_type=location_type,
            routes=[_route_lite(route) for route in as_list(raw.get("routes"))],
        ))

    # list.sort is stable, so equal distances keep response order
    stops.sort(key=lambda s: s.distance_miles)
    return stops[:max_results]


def nearby_stops(
    lat: float,
    lon: float,
    radius: float = DEFAULT_RADIUS_METERS,
    max_results: int = DEFAULT_MAX_RESULTS,
    client: Optional[BusTimeClient] = None,
    token: Optional[CancelToken] = None,
) -> list[NearbyStop]:
    """Find the stops closest to a coordinate.

    Args:
        lat: Latitude in degrees, -90 to 90
        lon: Longitude in degrees, -180 to 180
        radius: Search radius in meters
        max_results: Maximum number of stops returned
        client: Client to use; one is built from the environment if omitted
        token: Optional cancellation token

    Returns:
        List of NearbyStop sorted by ascending distance_miles
    """
    if not -90 <= lat <= 90:
        raise ValueError(f"latitude out of range: {lat}")
    if not -180 <= lon <= 180:
        raise ValueError(f"longitude out of range: {lon}")
    if radius <= 0:
        raise ValueError(f"radius must be positive: {radius}")
    if max_results <= 0:
        raise ValueError(f"max_results must be positive: {max_results}")

    box = bounding_box(lat, lon, radius)
    logger.debug("Radius %s meters, latSpan %.6f, lonSpan %.6f", radius, box.lat_span, box.lon_span)

    client = client or get_client()
    document = client.get_json(
        "stops-for-location.json",
        box.as_params(),
        resource="stops-for-location",
        ident=f"{lat},{lon}",
        token=token,
    )
    results = parse_nearby(document, lat, lon, max_results)
    logger.info("Returning %d closest stops (requested max: %d)", len(results), max_results)
    return results
