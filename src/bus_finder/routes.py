"""Bus route records and their classification into borough categories."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from .client import BusTimeClient, CancelToken, get_client
from .config import AGENCIES
from .decoder import as_list, dig
from .errors import DecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteRecord:
    """A bus route as published by the agency."""
    id: str
    short_name: str
    long_name: str = ""
    description: str = ""


# Checked in order: "BxM" must win over "Bx", "BM" and "B", "QM" over "Q", etc.
PREFIX_RULES = [
    ("QM", "queensExp"),
    ("BxM", "bronxExp"),
    ("BM", "brooklynExp"),
    ("SIM", "statenislandExp"),
    ("M", "manhattanReg"),
    ("Q", "queensReg"),
    ("Bx", "bronxReg"),
    ("B", "brooklynReg"),
    ("S", "statenislandReg"),
    ("X", "xExp"),
]
FALLBACK_CATEGORY = "shuttles"

CATEGORIES = (
    "manhattanReg",
    "queensReg",
    "bronxReg",
    "brooklynReg",
    "statenislandReg",
    "xExp",
    "queensExp",
    "bronxExp",
    "brooklynExp",
    "statenislandExp",
    "shuttles",
)

CategorizedRoutes = dict[str, list[RouteRecord]]

_DIGITS = re.compile(r"(\d+)")


def natural_key(text: str) -> tuple:
    """Sort key comparing digit runs by value and letters case-insensitively.

    "M2" < "M10" < "M101".
    """
    parts = _DIGITS.split(text)
    return tuple(int(part) if i % 2 else part.casefold() for i, part in enumerate(parts))


def category_for(short_name: str) -> str:
    """Return the category key for a route short name."""
    for prefix, category in PREFIX_RULES:
        if short_name.startswith(prefix):
            return category
    return FALLBACK_CATEGORY


def classify(routes: list[RouteRecord]) -> CategorizedRoutes:
    """Partition routes into the fixed categories, each sorted naturally."""
    categorized: CategorizedRoutes = {category: [] for category in CATEGORIES}
    for route in routes:
        categorized[category_for(route.short_name)].append(route)

    for category in categorized:
        categorized[category].sort(key=lambda r: (natural_key(r.short_name), r.short_name, r.id))
    return categorized


def parse_routes(document: dict, agency: Optional[str] = None) -> list[RouteRecord]:
    """Read route records out of a routes-for-agency document."""
    route_list = dig(document, "response", "data", "list")
    if route_list is None:
        raise DecodeError("routes-for-agency", agency, "response has no route list")

    routes = []
    for raw in as_list(dig(route_list, "route")):
        if not isinstance(raw, dict) or not raw.get("id"):
            logger.warning("Ignoring route entry without id: %r", raw)
            continue
        routes.append(RouteRecord(
            id=str(raw["id"]),
            short_name=str(raw.get("shortName") or ""),
            long_name=str(raw.get("longName") or ""),
            description=str(raw.get("description") or ""),
        ))
    return routes


def fetch_routes(
    agency: str,
    client: Optional[BusTimeClient] = None,
    token: Optional[CancelToken] = None,
) -> CategorizedRoutes:
    """Fetch an agency's routes and classify them.

    Args:
        agency: Agency id, e.g. "MTA NYCT" or "MTABC"
        client: Client to use; one is built from the environment if omitted
        token: Optional cancellation token

    Returns:
        Mapping of category key to naturally sorted routes
    """
    client = client or get_client()
    document = client.get_xml(
        f"routes-for-agency/{quote(agency, safe='')}.xml",
        resource="routes-for-agency",
        ident=agency,
        token=token,
    )
    routes = parse_routes(document, agency)
    categorized = classify(routes)
    logger.info("Classified %d routes for %s", len(routes), agency)
    return categorized


def fetch_all_routes(
    client: Optional[BusTimeClient] = None,
    token: Optional[CancelToken] = None,
) -> dict[str, CategorizedRoutes]:
    """Fetch and classify the routes of every configured agency."""
    client = client or get_client()
    return {key: fetch_routes(agency, client, token) for key, agency in AGENCIES.items()}
