"""Catalog queries and admin mutations for the vehicles table.

The public site lists and filters vehicles; the admin dashboard creates,
edits, archives, marks sold, reorders and deletes them.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Vehicle, VehicleStatus
from .pipelines.normalization import ELECTRIFIED_FUELS
from .storage import object_paths

logger = logging.getLogger(__name__)

ELECTRIFIED_CATEGORY = "Elek/Hybrid"
MAX_GENERATED_HEXON_NR = 10_000_000
GENERATE_ATTEMPTS = 5

# NOT NULL columns; an explicit null in an update leaves them unchanged
REQUIRED_COLUMNS = frozenset({"hexon_nr", "price", "year", "mileage", "is_new"})


class CatalogError(Exception):
    """Base error for catalog operations."""
    status_code = 400
    error = "catalog_error"


class VehicleNotFoundError(CatalogError):
    status_code = 404
    error = "not_found"


class DuplicateVehicleError(CatalogError):
    status_code = 409
    error = "duplicate_vehicle"


class SortOption(str, Enum):
    """Catalog sort orders."""
    DISPLAY = "display"
    ALPHABETICAL = "alphabetical"
    NEWEST = "newest"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    MILEAGE_ASC = "mileage-asc"


@dataclass
class CatalogFilters:
    """Catalog filters; None means "All"."""
    category: str | None = None
    make: str | None = None
    fuel: str | None = None
    transmission: str | None = None
    max_price: float | None = None
    max_mileage: int | None = None
    min_year: int | None = None
    include_sold: bool = True
    include_archived: bool = False


_ORDERINGS = {
    SortOption.DISPLAY: (Vehicle.display_order.asc().nulls_last(), Vehicle.created_at.desc()),
    SortOption.ALPHABETICAL: (func.lower(Vehicle.make), func.lower(Vehicle.model)),
    SortOption.NEWEST: (Vehicle.id.desc(),),
    SortOption.PRICE_ASC: (Vehicle.price.asc(),),
    SortOption.PRICE_DESC: (Vehicle.price.desc(),),
    SortOption.MILEAGE_ASC: (Vehicle.mileage.asc(),),
}


def _filtered_query(filters: CatalogFilters):
    query = select(Vehicle)

    if not filters.include_archived:
        query = query.where(Vehicle.status != VehicleStatus.ARCHIVED.value)
    if not filters.include_sold:
        query = query.where(Vehicle.status != VehicleStatus.SOLD.value)
    if filters.category == ELECTRIFIED_CATEGORY:
        query = query.where(Vehicle.fuel_type.in_(ELECTRIFIED_FUELS))
    if filters.make:
        query = query.where(Vehicle.make == filters.make)
    if filters.fuel:
        query = query.where(Vehicle.fuel_type == filters.fuel)
    if filters.transmission:
        query = query.where(Vehicle.transmission == filters.transmission)
    if filters.max_price is not None:
        query = query.where(Vehicle.price <= filters.max_price)
    if filters.max_mileage is not None:
        query = query.where(Vehicle.mileage <= filters.max_mileage)
    if filters.min_year is not None:
        query = query.where(Vehicle.year >= filters.min_year)

    return query


async def list_vehicles(
    session: AsyncSession,
    filters: CatalogFilters | None = None,
    *,
    sort: SortOption = SortOption.DISPLAY,
    skip: int = 0,
    limit: int = 100,
) -> list[Vehicle]:
    """List vehicles matching ``filters`` in the requested order."""
    filters = filters or CatalogFilters()
    query = _filtered_query(filters).order_by(*_ORDERINGS[sort])

    # Category tags live in a JSON list; match them in Python so the query
    # stays portable across dialects.
    category = filters.category
    if category and category != ELECTRIFIED_CATEGORY:
        result = await session.execute(query)
        vehicles = [v for v in result.scalars().all() if category in (v.categories or [])]
        return vehicles[skip:skip + limit]

    result = await session.execute(query.offset(skip).limit(limit))
    return list(result.scalars().all())


async def list_facets(session: AsyncSession) -> dict[str, list[str]]:
    """Distinct makes, fuels and transmissions of listable vehicles."""
    facets = {}
    for name, column in (
        ("makes", Vehicle.make),
        ("fuels", Vehicle.fuel_type),
        ("transmissions", Vehicle.transmission),
    ):
        query = (
            select(column)
            .where(Vehicle.status != VehicleStatus.ARCHIVED.value, column.is_not(None))
            .distinct()
            .order_by(column)
        )
        result = await session.execute(query)
        facets[name] = list(result.scalars().all())
    return facets


async def get_vehicle(session: AsyncSession, vehicle_id: int) -> Vehicle:
    vehicle = await session.get(Vehicle, vehicle_id)
    if vehicle is None:
        raise VehicleNotFoundError(f"Vehicle {vehicle_id} not found")
    return vehicle


def apply_status(vehicle: Vehicle, status: VehicleStatus | str, now: datetime | None = None) -> None:
    """Move a vehicle to ``status``, keeping ``sold_at`` in step.

    Entering ``sold`` stamps ``sold_at``; leaving it clears the stamp.
    """
    status = VehicleStatus(status)
    if status == VehicleStatus.SOLD and vehicle.status != VehicleStatus.SOLD.value:
        vehicle.sold_at = now or datetime.now(timezone.utc)
    elif status != VehicleStatus.SOLD:
        vehicle.sold_at = None
    vehicle.status = status.value


async def _hexon_nr_taken(session: AsyncSession, hexon_nr: int) -> bool:
    result = await session.execute(select(Vehicle.id).where(Vehicle.hexon_nr == hexon_nr))
    return result.scalar_one_or_none() is not None


async def _generate_hexon_nr(session: AsyncSession) -> int:
    """Pick an unused inventory number for a manually added vehicle."""
    for _ in range(GENERATE_ATTEMPTS):
        candidate = secrets.randbelow(MAX_GENERATED_HEXON_NR)
        if not await _hexon_nr_taken(session, candidate):
            return candidate
    raise DuplicateVehicleError("Could not generate a free inventory number")


async def create_vehicle(
    session: AsyncSession,
    data: Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> Vehicle:
    """Create a vehicle from admin input.

    Raises:
        DuplicateVehicleError: If ``hexon_nr`` is already in use
    """
    values = {k: v for k, v in data.items() if v is not None}
    status = values.pop("status", VehicleStatus.ACTIVE)

    if values.get("hexon_nr") is None:
        values["hexon_nr"] = await _generate_hexon_nr(session)
    elif await _hexon_nr_taken(session, values["hexon_nr"]):
        raise DuplicateVehicleError(f"Vehicle with hexon_nr {values['hexon_nr']} already exists")

    vehicle = Vehicle(**values)
    apply_status(vehicle, status, now)
    session.add(vehicle)

    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise DuplicateVehicleError(f"Vehicle with hexon_nr {values['hexon_nr']} already exists") from e

    await session.refresh(vehicle)
    logger.info(f"Created vehicle {vehicle.id} (hexon_nr {vehicle.hexon_nr})")
    return vehicle


async def update_vehicle(
    session: AsyncSession,
    vehicle_id: int,
    changes: Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> Vehicle:
    """Apply a partial update from admin input."""
    vehicle = await get_vehicle(session, vehicle_id)
    changes = {
        field: value for field, value in changes.items()
        if value is not None or field not in REQUIRED_COLUMNS
    }
    status = changes.pop("status", None)

    new_hexon_nr = changes.get("hexon_nr")
    if new_hexon_nr is not None and new_hexon_nr != vehicle.hexon_nr:
        if await _hexon_nr_taken(session, new_hexon_nr):
            raise DuplicateVehicleError(f"Vehicle with hexon_nr {new_hexon_nr} already exists")

    for field, value in changes.items():
        setattr(vehicle, field, value)
    if status is not None:
        apply_status(vehicle, status, now)

    await session.commit()
    await session.refresh(vehicle)
    return vehicle


async def toggle_archived(session: AsyncSession, vehicle_id: int) -> Vehicle:
    vehicle = await get_vehicle(session, vehicle_id)
    archived = vehicle.status == VehicleStatus.ARCHIVED.value
    apply_status(vehicle, VehicleStatus.ACTIVE if archived else VehicleStatus.ARCHIVED)
    await session.commit()
    await session.refresh(vehicle)
    return vehicle


async def toggle_sold(
    session: AsyncSession,
    vehicle_id: int,
    *,
    now: datetime | None = None,
) -> Vehicle:
    vehicle = await get_vehicle(session, vehicle_id)
    sold = vehicle.status == VehicleStatus.SOLD.value
    apply_status(vehicle, VehicleStatus.ACTIVE if sold else VehicleStatus.SOLD, now)
    await session.commit()
    await session.refresh(vehicle)
    return vehicle


async def reorder_vehicles(session: AsyncSession, ordered_ids: list[int]) -> None:
    """Set ``display_order`` to each vehicle's position in ``ordered_ids``.

    Raises:
        VehicleNotFoundError: If any id is unknown (nothing is changed)
    """
    result = await session.execute(select(Vehicle).where(Vehicle.id.in_(ordered_ids)))
    by_id = {vehicle.id: vehicle for vehicle in result.scalars().all()}

    missing = [vehicle_id for vehicle_id in ordered_ids if vehicle_id not in by_id]
    if missing:
        raise VehicleNotFoundError(f"Unknown vehicle ids: {missing}")

    for position, vehicle_id in enumerate(ordered_ids):
        by_id[vehicle_id].display_order = position

    await session.commit()


async def delete_vehicle(
    session: AsyncSession,
    vehicle_id: int,
    *,
    storage=None,
    uploads_bucket: str = "own-vehicle-uploads",
) -> None:
    """Delete a vehicle and the images uploaded for it through the admin.

    Image removal failures are logged; the row is deleted regardless.
    """
    vehicle = await get_vehicle(session, vehicle_id)

    paths = object_paths(vehicle.image_list, uploads_bucket)
    if paths and storage is not None:
        logger.info(f"Deleting {len(paths)} image(s) of vehicle {vehicle_id} from storage")
        try:
            await storage.remove(uploads_bucket, paths)
        except Exception as e:
            logger.warning(f"Failed to delete images of vehicle {vehicle_id}: {e}")

    await session.delete(vehicle)
    await session.commit()
    logger.info(f"Deleted vehicle {vehicle_id}")
