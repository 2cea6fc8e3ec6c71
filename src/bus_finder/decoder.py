"""Decoding of Bus Time XML and JSON payloads into plain dictionaries."""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from typing import Any, Optional

from .errors import DecodeError

ATTRIBUTE_PREFIX = "@_"
TEXT_KEY = "#text"


def _element_to_value(element: ET.Element) -> Any:
    """Convert an element into a string, or a dict when it has structure.

    Repeated child tags collapse into a list, attributes are kept under
    ``@_name`` keys and text alongside attributes goes under ``#text``.
    """
    children = list(element)
    text = (element.text or "").strip()

    if not children and not element.attrib:
        return text

    value: dict[str, Any] = {
        f"{ATTRIBUTE_PREFIX}{name}": attr for name, attr in element.attrib.items()
    }
    for child in children:
        child_value = _element_to_value(child)
        if child.tag in value:
            existing = value[child.tag]
            if isinstance(existing, list):
                existing.append(child_value)
            else:
                value[child.tag] = [existing, child_value]
        else:
            value[child.tag] = child_value

    if text:
        value[TEXT_KEY] = text
    return value


def parse_xml(text: str, resource: str = "payload", ident: Optional[str] = None) -> dict:
    """Parse an XML document into nested dictionaries keyed by the root tag."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise DecodeError(resource, ident, f"malformed XML ({e})") from e
    return {root.tag: _element_to_value(root)}


def parse_json(text: str, resource: str = "payload", ident: Optional[str] = None) -> dict:
    """Parse a JSON document, which must be an object."""
    try:
        document = json.loads(text)
    except ValueError as e:
        raise DecodeError(resource, ident, f"malformed JSON ({e})") from e
    if not isinstance(document, dict):
        raise DecodeError(resource, ident, "expected a JSON object")
    return document


def as_list(value: Any) -> list:
    """Normalize an absent, single or repeated value into a list."""
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    return [value]


def dig(document: Any, *path: str) -> Any:
    """Walk nested dictionaries, returning None at the first missing key."""
    current = document
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current
