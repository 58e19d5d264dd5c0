"""Value cleaning utilities for feed data.

Handles Dutch/Belgian number formats, yes/no flags, image and option lists,
and category auto-tagging.
"""
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, Mapping

from ..parsers import TEXT_KEY

logger = logging.getLogger(__name__)

_NUMBER_PATTERN = re.compile(r"-?\d[\d.,]*")

TRUE_VALUES = frozenset({"j", "ja", "y", "yes", "true", "1"})
FALSE_VALUES = frozenset({"n", "nee", "no", "false", "0"})

ELECTRIFIED_FUELS = ("Elektrisch", "Hybride")

# (category, body type keywords), evaluated in order
BODY_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("SUV", ("suv", "4x4", "terrein")),
    ("Cabriolet", ("cabrio",)),
    ("Gezinswagens", ("station", "break", "touring", "avant")),
    ("Bestelwagens", ("bestel", "lichte vracht")),
    ("Stadswagens", ("hatchback", "stads")),
    ("Sportief", ("coupé", "coupe", "sport")),
)


def scalar(value: Any) -> str | None:
    """Extract a text value from a parsed feed node."""
    if value is None:
        return None
    if isinstance(value, list):
        return scalar(value[0]) if value else None
    if isinstance(value, dict):
        return scalar(value.get(TEXT_KEY))
    text = str(value).strip()
    return text or None


def first_present(data: Mapping[str, Any], *keys: str) -> str | None:
    """Return the first non-empty scalar among ``keys``."""
    for key in keys:
        value = scalar(data.get(key))
        if value is not None:
            return value
    return None


def _normalize_number(raw: str) -> str | None:
    """Rewrite a formatted number into a float-parsable string.

    A comma is the decimal separator. Dots are thousands separators when a
    comma is present, when there are several of them, or when exactly three
    digits follow a single dot ("12.500").
    """
    match = _NUMBER_PATTERN.search(raw.replace(" ", "").replace("\u00a0", ""))
    if not match:
        return None
    number = match.group(0).rstrip(".,")
    if not number or number == "-":
        return None

    if "," in number:
        number = number.replace(".", "").replace(",", ".", 1).replace(",", "")
    elif number.count(".") > 1:
        number = number.replace(".", "")
    elif "." in number:
        _, fraction = number.split(".")
        if len(fraction) == 3:
            number = number.replace(".", "")
    return number


def parse_float(raw: Any) -> float | None:
    text = scalar(raw)
    if text is None:
        return None
    number = _normalize_number(text)
    if number is None:
        return None
    try:
        return float(number)
    except ValueError:
        return None


def parse_int(raw: Any) -> int | None:
    value = parse_float(raw)
    return int(value) if value is not None else None


def parse_price(raw: Any) -> float:
    """Parse a price such as "12.500", "12.500,00" or "€ 12.500,-"; 0.0 if unparseable."""
    value = parse_float(raw)
    return value if value is not None else 0.0


def parse_bool(raw: Any) -> bool | None:
    text = scalar(raw)
    if text is None:
        return None
    lowered = text.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    return None


def _split_csv(text: str) -> list[str]:
    return [part.strip() for part in text.split(",") if part.strip()]


def extract_image_urls(data: Mapping[str, Any]) -> list[str]:
    """Collect image URLs from ``afbeeldingen``.

    Supports ``<afbeeldingen><afbeelding>url</afbeelding>...``, image
    elements carrying a ``url`` attribute, and a comma-separated string.
    """
    images = data.get("afbeeldingen")
    if images is None:
        return []
    if isinstance(images, str):
        return _split_csv(images)
    if not isinstance(images, dict):
        return []

    urls = []
    for item in images.get("afbeelding") or []:
        if isinstance(item, dict):
            url = scalar(item.get("url")) or scalar(item)
        else:
            url = scalar(item)
        if url:
            urls.append(url)
    return urls


def _option_name(item: Any) -> str | None:
    if isinstance(item, dict):
        return scalar(item.get("naam")) or scalar(item)
    return scalar(item)


def extract_options(data: Mapping[str, Any]) -> list[str]:
    """Collect option names from ``opties``.

    Handles a comma-separated string, repeated ``<opties>`` elements, and
    nested ``<opties><optie>...</optie></opties>``.
    """
    options = data.get("opties")
    if options is None:
        return []

    if isinstance(options, str):
        return _split_csv(options)

    if isinstance(options, list):
        names = []
        for item in options:
            if isinstance(item, dict) and "optie" in item:
                names.extend(n for n in (_option_name(o) for o in item["optie"]) if n)
            else:
                name = _option_name(item)
                if name:
                    names.append(name)
        return names

    if isinstance(options, dict):
        nested = options.get("optie")
        if nested is not None:
            return [n for n in (_option_name(o) for o in nested) if n]
        text = scalar(options)
        return _split_csv(text) if text else []

    return []


def derive_categories(
    body_type: str | None,
    fuel: str | None,
    year: int | None,
    *,
    today: date | None = None,
) -> list[str]:
    """Auto-tag a vehicle with catalog categories.

    Args:
        body_type: Body type as delivered by the feed (e.g. "SUV / Terreinwagen")
        fuel: Fuel type (exact match for electrified fuels)
        year: Construction year
        today: Reference date for the "Recent" tag

    Returns:
        Ordered list of unique category names
    """
    today = today or date.today()
    body = (body_type or "").lower()
    categories: list[str] = []

    for category, keywords in BODY_CATEGORIES:
        if any(keyword in body for keyword in keywords):
            categories.append(category)

    if fuel in ELECTRIFIED_FUELS:
        categories.append("Elek/Hybrid")

    # Mark as "Recent" if newer than 2 years
    if year is not None and year >= today.year - 2:
        categories.append("Recent")

    return categories
