"""Ingestion primitives for the vehicles table.

Implementations:
- Insert/update vehicles keyed by the dealer inventory number.
- Are reusable from the feed webhook, the cleanup sweep and admin handlers.
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models

UPSERT_KEY = "hexon_nr"


def _insert_for(session: AsyncSession):
    """Pick the dialect-specific INSERT construct supporting ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise ValueError(f"Upsert is not supported on dialect {dialect!r}")


async def upsert_vehicle(session: AsyncSession, record: Mapping[str, Any]) -> int:
    """Insert a vehicle or update the row with the same ``hexon_nr``.

    Only the columns present in ``record`` are written on update, so fields
    the caller did not supply keep their stored values.

    Returns:
        The vehicle's primary key
    """
    if record.get(UPSERT_KEY) is None:
        raise ValueError("Vehicle record is missing hexon_nr")

    values = dict(record)
    insert = _insert_for(session)
    stmt = insert(models.Vehicle).values(**values)
    update_columns = {key: stmt.excluded[key] for key in values if key != UPSERT_KEY}
    stmt = stmt.on_conflict_do_update(
        index_elements=[UPSERT_KEY],
        set_=update_columns,
    ).returning(models.Vehicle.id)

    result = await session.execute(stmt)
    return result.scalar_one()


async def delete_vehicle_by_hexon(session: AsyncSession, hexon_nr: int) -> int:
    """Hard-delete a vehicle by inventory number.

    Returns:
        Number of deleted rows (0 when the vehicle was unknown)
    """
    result = await session.execute(
        delete(models.Vehicle).where(models.Vehicle.hexon_nr == hexon_nr)
    )
    return result.rowcount or 0
