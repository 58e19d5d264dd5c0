"""XML feed document parsing.

Turns the vehicle XML pushed by the inventory feed into a plain mapping
that the processing pipeline can map onto the ``vehicles`` table. Feed
documents come in several shapes (attributes vs. child elements, single vs.
repeated children), so the conversion is deliberately shape-agnostic.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from xml.etree import ElementTree as ET

logger = logging.getLogger(__name__)

# Tags that are always returned as lists, even when they occur once.
LIST_TAGS = frozenset({"afbeelding", "optie"})

TEXT_KEY = "#text"


class ParseError(Exception):
    """Raised when a feed document cannot be parsed."""
    pass


@dataclass
class FeedDocument:
    """Result of feed document parsing."""
    root_tag: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def action(self) -> str | None:
        value = self.data.get("actie")
        if isinstance(value, dict):
            value = value.get(TEXT_KEY)
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
        return None

    @property
    def hexon_nr(self) -> int | None:
        value = self.data.get("voertuignr_hexon")
        if isinstance(value, dict):
            value = value.get(TEXT_KEY)
        if value is None:
            return None
        try:
            return int(str(value).strip())
        except ValueError:
            return None


def _local_name(tag: str) -> str:
    """Strip an XML namespace from a tag or attribute name."""
    return tag.rsplit("}", 1)[-1]


def element_to_value(element: ET.Element) -> Any:
    """Convert an element to a string, a mapping, or None.

    Leaf elements without attributes become their stripped text. Anything
    else becomes a mapping of attributes and children, with the element's
    own text (if any) under ``#text``.
    """
    children = list(element)
    text = (element.text or "").strip()

    if not children and not element.attrib:
        return text or None

    value: dict[str, Any] = {_local_name(k): v for k, v in element.attrib.items()}

    for child in children:
        name = _local_name(child.tag)
        child_value = element_to_value(child)
        if name in value:
            existing = value[name]
            if isinstance(existing, list):
                existing.append(child_value)
            else:
                value[name] = [existing, child_value]
        elif name in LIST_TAGS:
            value[name] = [child_value]
        else:
            value[name] = child_value

    if text:
        value[TEXT_KEY] = text

    return value


def parse_feed_document(payload: bytes | str) -> FeedDocument:
    """Parse a feed XML payload.

    Args:
        payload: Raw request body

    Returns:
        FeedDocument with the document element flattened into a mapping

    Raises:
        ParseError: If the payload is empty or not well-formed XML
    """
    if payload is None or not payload.strip():
        raise ParseError("Empty feed document")

    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        logger.error(f"Feed XML parsing failed: {e}")
        raise ParseError(f"Invalid XML: {e}") from e

    value = element_to_value(root)
    if not isinstance(value, dict):
        raise ParseError("Invalid XML Structure")

    root_tag = _local_name(root.tag)
    logger.debug(f"Parsed feed document <{root_tag}> with {len(value)} fields")

    return FeedDocument(root_tag=root_tag, data=value)
