"""Feed pipeline orchestration.

Combines parsing, field mapping, normalization and persistence for a single
inventory feed document.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from inventory.models import VehicleStatus
from inventory.parsers import FeedDocument, parse_feed_document
from inventory.pipelines.ingest import delete_vehicle_by_hexon, upsert_vehicle
from inventory.pipelines.normalization import (
    derive_categories,
    extract_image_urls,
    extract_options,
    first_present,
    parse_bool,
    parse_float,
    parse_int,
    parse_price,
)

logger = logging.getLogger(__name__)

UPSERT_ACTIONS = frozenset({"add", "change"})
DELETE_ACTION = "delete"


def _text(raw: str | None) -> str | None:
    return raw


# column -> (converter, feed tags in fallback order). Columns listed here are
# only written when the feed supplies a value.
OPTIONAL_FIELDS: dict[str, tuple[Callable[[str | None], Any], tuple[str, ...]]] = {
    "license_plate": (_text, ("kenteken",)),
    "make": (_text, ("merk",)),
    "model": (_text, ("model",)),
    "variant": (_text, ("type", "uitvoering")),
    "model_year": (parse_int, ("modeljaar",)),
    "fuel_type": (_text, ("brandstof",)),
    "transmission": (_text, ("transmissie",)),
    "vehicle_type": (_text, ("voertuigsoort",)),
    "description": (_text, ("opmerkingen", "omschrijving")),
    "is_new": (parse_bool, ("nieuw_voertuig",)),
    # Exterior
    "color": (_text, ("kleur", "basiskleur")),
    "color_code": (_text, ("kleurcode",)),
    "paint_type": (_text, ("laksoort",)),
    "doors": (parse_int, ("aantal_deuren",)),
    # Interior
    "interior_color": (_text, ("interieurkleur",)),
    "upholstery": (_text, ("bekleding",)),
    "seats": (parse_int, ("aantal_zitplaatsen",)),
    # Engine & performance
    "horsepower": (parse_int, ("vermogen_motor_pk", "vermogen_pk")),
    "kw_power": (parse_int, ("vermogen_motor_kw", "vermogen_kw")),
    "engine_cc": (parse_int, ("cilinder_inhoud",)),
    "cylinders": (parse_int, ("cilinder_aantal", "aantal_cilinders")),
    "gears": (parse_int, ("aantal_versnellingen",)),
    "torque": (parse_int, ("koppel",)),
    "top_speed": (parse_int, ("topsnelheid",)),
    "acceleration": (parse_float, ("acceleratie",)),
    # Fuel consumption
    "fuel_city": (parse_float, ("gemiddeld_verbruik_stad", "verbruik_stad")),
    "fuel_highway": (parse_float, ("gemiddeld_verbruik_snelweg", "verbruik_snelweg")),
    "fuel_combined": (parse_float, ("gemiddeld_verbruik", "verbruik_gecombineerd")),
    "fuel_range": (parse_int, ("actieradius",)),
    # Emissions
    "co2_emission": (parse_int, ("co2_uitstoot",)),
    "energy_label": (_text, ("energielabel",)),
    "emission_class": (_text, ("emissieklasse",)),
    "particulate_filter": (parse_bool, ("roetfilter",)),
    # Weight & dimensions
    "weight": (parse_int, ("massa", "gewicht")),
    "max_weight": (parse_int, ("max_massa", "toegestane_massa")),
    "payload": (parse_int, ("laadvermogen",)),
    "tow_weight_braked": (parse_int, ("max_trekgewicht", "trekgewicht_geremd")),
    "tow_weight_unbraked": (parse_int, ("max_trekgewicht_ongeremd", "trekgewicht_ongeremd")),
    "wheelbase": (parse_int, ("wielbasis",)),
    "length": (parse_int, ("lengte",)),
    "width": (parse_int, ("breedte",)),
    "height": (parse_int, ("hoogte",)),
    # Registration & legal
    "vin": (_text, ("chassisnummer",)),
    "btw_marge": (_text, ("btw_marge",)),
    "first_registration": (_text, ("datum_deel_1", "datum_eerste_toelating")),
    "construction_date": (_text, ("bouwdatum",)),
    # APK & warranty
    "apk_until": (_text, ("apk_tot", "apk_geldig_tot")),
    "warranty_months": (parse_int, ("garantie_maanden",)),
    "warranty_km": (parse_int, ("garantie_km",)),
    # History
    "previous_owners": (parse_int, ("aantal_eigenaren",)),
}


class FeedProcessingError(Exception):
    """Raised when a feed document cannot be applied."""
    pass


@dataclass
class FeedResult:
    """Result of applying one feed document."""
    action: str | None
    hexon_nr: int | None
    applied: bool
    vehicle_id: int | None = None


def map_vehicle_record(
    document: FeedDocument,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Map a parsed feed document onto ``vehicles`` columns.

    Args:
        document: Parsed feed document
        now: Timestamp for ``updated_at`` (defaults to current UTC time)

    Returns:
        Column/value mapping ready for upsert

    Raises:
        FeedProcessingError: If the inventory number is missing or invalid
    """
    hexon_nr = document.hexon_nr
    if hexon_nr is None:
        raise FeedProcessingError("Feed document has no valid voertuignr_hexon")

    now = now or datetime.now(timezone.utc)
    data = document.data

    body_type = first_present(data, "carrosserie") or "Overig"
    fuel = first_present(data, "brandstof")
    year = parse_int(first_present(data, "bouwjaar")) or 0

    record: dict[str, Any] = {
        "hexon_nr": hexon_nr,
        "price": parse_price(first_present(data, "verkoopprijs", "prijs")),
        "year": year,
        "mileage": parse_int(first_present(data, "tellerstand", "kilometerstand")) or 0,
        "body_type": body_type,
        "image_urls": ",".join(extract_image_urls(data)),
        "categories": derive_categories(body_type, fuel, year, today=now.date()),
        "options": extract_options(data),
        "status": VehicleStatus.ACTIVE.value,
        "sold_at": None,
        "updated_at": now,
    }

    for column, (convert, tags) in OPTIONAL_FIELDS.items():
        value = convert(first_present(data, *tags))
        if value is not None:
            record[column] = value

    return record


async def process_feed_document(
    session: AsyncSession,
    document: FeedDocument,
    *,
    now: datetime | None = None,
) -> FeedResult:
    """Apply a parsed feed document to the database.

    ``delete`` removes the vehicle, ``add``/``change`` upsert it, anything
    else is acknowledged without changes.

    Raises:
        FeedProcessingError: If mapping or persistence fails
    """
    action = document.action
    hexon_nr = document.hexon_nr

    if action != DELETE_ACTION and action not in UPSERT_ACTIONS:
        logger.warning(f"Ignoring feed document for vehicle {hexon_nr} with action {action!r}")
        return FeedResult(action=action, hexon_nr=hexon_nr, applied=False)

    try:
        if hexon_nr is None:
            raise FeedProcessingError("Feed document has no valid voertuignr_hexon")

        if action == DELETE_ACTION:
            deleted = await delete_vehicle_by_hexon(session, hexon_nr)
            await session.commit()
            logger.info(f"Feed delete for vehicle {hexon_nr}: {deleted} row(s) removed")
            return FeedResult(action=action, hexon_nr=hexon_nr, applied=True)

        record = map_vehicle_record(document, now=now)
        vehicle_id = await upsert_vehicle(session, record)
        await session.commit()
        logger.info(f"Feed {action} for vehicle {hexon_nr} stored as id {vehicle_id}")
        return FeedResult(action=action, hexon_nr=hexon_nr, applied=True, vehicle_id=vehicle_id)

    except FeedProcessingError:
        await session.rollback()
        raise
    except Exception as e:
        logger.error(f"Feed processing failed for vehicle {hexon_nr}: {e}", exc_info=True)
        await session.rollback()
        raise FeedProcessingError(f"Processing failed: {e}") from e


async def import_feed_payload(
    session: AsyncSession,
    payload: bytes | str,
    *,
    now: datetime | None = None,
) -> FeedResult:
    """Parse and apply a raw feed payload."""
    document = parse_feed_document(payload)
    return await process_feed_document(session, document, now=now)
