"""Directional stop listings for a bus route."""

from __future__ import annotations

import logging
import warnings
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Optional, Union
from urllib.parse import quote

from .client import CANCEL_POLL_INTERVAL, BusTimeClient, CancelToken, get_client
from .config import LOOP_DESTINATION, MAX_WORKERS
from .decoder import as_list, dig
from .errors import DecodeError, PartialResolutionWarning, TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StopRecord:
    """A bus stop with its full detail."""
    id: str
    name: str
    longitude: float = 0.0
    latitude: float = 0.0
    direction: str = ""
    code: str = ""
    location_type: str = ""


@dataclass(frozen=True)
class StopGroup:
    """Ordered stop ids travelling towards one destination."""
    destination: str
    stop_ids: tuple[str, ...]


@dataclass(frozen=True)
class SingleDirection:
    """A loop route: one stop group covers the whole trip."""
    zero: StopGroup


@dataclass(frozen=True)
class TwoDirections:
    zero: StopGroup
    one: StopGroup


StopGrouping = Union[SingleDirection, TwoDirections]


@dataclass(frozen=True)
class DirectionalStopSet:
    """Stops of a route split by travel direction."""
    route: str
    zero_dir_destination: str
    zero_dir_stops: list[StopRecord] = field(default_factory=list)
    one_dir_destination: str = LOOP_DESTINATION
    one_dir_stops: list[StopRecord] = field(default_factory=list)


def _parse_group(raw: dict) -> StopGroup:
    name = dig(raw, "name", "name")
    if name is None and isinstance(raw.get("name"), str):
        name = raw["name"]
    return StopGroup(
        destination=str(name or ""),
        stop_ids=tuple(str(stop_id) for stop_id in as_list(raw.get("stopIds"))),
    )


def resolve_grouping(document: dict, route_id: Optional[str] = None) -> StopGrouping:
    """Decide once whether the route runs in one or two directions."""
    groupings = as_list(dig(document, "data", "entry", "stopGroupings"))
    groups = as_list(dig(groupings[0], "stopGroups")) if groupings else []
    groups = [group for group in groups if isinstance(group, dict)]
    if not groups:
        raise DecodeError("stops-for-route", route_id, "route has no stop groups")

    zero = _parse_group(groups[0])
    if len(groups) == 1:
        return SingleDirection(zero=zero)
    return TwoDirections(zero=zero, one=_parse_group(groups[1]))


def parse_stop(document: dict, stop_id: str) -> StopRecord:
    """Build a StopRecord from a stop detail document."""
    data = dig(document, "response", "data")
    if not isinstance(data, dict):
        raise DecodeError("stop", stop_id, "response has no stop data")

    # Stop detail sometimes nests the stop one level down under "entry".
    if isinstance(data.get("entry"), dict):
        data = data["entry"]

    try:
        longitude = float(data["lon"]) if data.get("lon") else 0.0
        latitude = float(data["lat"]) if data.get("lat") else 0.0
    except (TypeError, ValueError) as e:
        raise DecodeError("stop", stop_id, f"bad coordinates ({e})") from e

    return StopRecord(
        id=str(data.get("id") or stop_id),
        name=str(data.get("name") or ""),
        longitude=longitude,
        latitude=latitude,
        direction=str(data.get("direction") or ""),
        code=str(data.get("code") or ""),
        location_type=str(data.get("locationType") or ""),
    )


def fetch_stop(
    stop_id: str,
    client: BusTimeClient,
    token: Optional[CancelToken] = None,
) -> StopRecord:
    """Fetch the detail of a single stop."""
    document = client.get_xml(
        f"stop/{quote(stop_id, safe='')}.xml",
        resource="stop",
        ident=stop_id,
        token=token,
    )
    return parse_stop(document, stop_id)


def resolve_stops(
    stop_ids: tuple[str, ...],
    client: BusTimeClient,
    token: Optional[CancelToken] = None,
    max_workers: int = MAX_WORKERS,
) -> list[StopRecord]:
    """Fetch stop details concurrently, keeping the order of stop_ids.

    Stops that fail to resolve are logged and left out.
    """
    if not stop_ids:
        return []

    results: list[Optional[StopRecord]] = [None] * len(stop_ids)
    pool = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(stop_ids))))
    try:
        futures = {
            pool.submit(fetch_stop, stop_id, client, token): index
            for index, stop_id in enumerate(stop_ids)
        }
        pending = set(futures)
        while pending:
            done, pending = wait(pending, timeout=CANCEL_POLL_INTERVAL, return_when=FIRST_COMPLETED)
            for future in done:
                index = futures[future]
                try:
                    results[index] = future.result()
                except (TransportError, DecodeError) as e:
                    logger.warning("Error fetching data for stop ID %s: %s", stop_ids[index], e)
                    warnings.warn(PartialResolutionWarning(stop_ids[index], e), stacklevel=2)
            if token is not None:
                token.raise_if_cancelled("stop lookups")
    except BaseException:
        # Queued lookups never start; running ones stop at their next token check.
        pool.shutdown(wait=False, cancel_futures=True)
        raise
    else:
        pool.shutdown(wait=True)

    return [stop for stop in results if stop is not None]


def stops_for_route(
    route_id: str,
    client: Optional[BusTimeClient] = None,
    token: Optional[CancelToken] = None,
) -> DirectionalStopSet:
    """Get the stops of a route in both directions.

    Args:
        route_id: Agency-scoped route id, e.g. "MTA NYCT_M15"
        client: Client to use; one is built from the environment if omitted
        token: Optional cancellation token covering every request of the call

    Returns:
        DirectionalStopSet with stops in route order. Loop routes get an
        empty second direction and the loop destination sentinel.
    """
    if not route_id or not route_id.strip():
        raise ValueError("route_id must be a non-empty string")

    client = client or get_client()
    document = client.get_json(
        f"stops-for-route/{quote(route_id, safe='')}.json",
        {"includePolylines": "false", "version": "2"},
        resource="stops-for-route",
        ident=route_id,
        token=token,
    )
    grouping = resolve_grouping(document, route_id)
    route = str(dig(document, "data", "entry", "routeId") or route_id)

    zero_dir_stops = resolve_stops(grouping.zero.stop_ids, client, token)
    one_dir_destination = LOOP_DESTINATION
    one_dir_stops: list[StopRecord] = []
    if isinstance(grouping, TwoDirections):
        one_dir_destination = grouping.one.destination or LOOP_DESTINATION
        one_dir_stops = resolve_stops(grouping.one.stop_ids, client, token)

    stop_set = DirectionalStopSet(
        route=route,
        zero_dir_destination=grouping.zero.destination,
        zero_dir_stops=zero_dir_stops,
        one_dir_destination=one_dir_destination,
        one_dir_stops=one_dir_stops,
    )

    logger.info(
        "Resolved %d + %d stops for route %s",
        len(stop_set.zero_dir_stops), len(stop_set.one_dir_stops), route,
    )
    return stop_set
