"""Sold vehicle sweep.

Vehicles marked sold stay listed for a retention window so the site can
show them as sold; afterwards the row and its sold-vehicle image are purged.
The sweep is triggered externally (cron hitting the cleanup endpoint).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inventory import models
from inventory.pipelines.ingest import delete_vehicle_by_hexon

logger = logging.getLogger(__name__)


class CleanupError(Exception):
    """Raised when the sweep cannot run."""
    pass


class ObjectStorage(Protocol):
    async def remove(self, bucket: str, paths: list[str]) -> list[dict]: ...


@dataclass
class CleanupResult:
    """Outcome of one sweep."""
    cutoff: datetime
    found: int
    deleted: int
    failed: list[int]


async def find_expired_sold(
    session: AsyncSession,
    cutoff: datetime,
) -> list[int]:
    """Inventory numbers of vehicles sold before ``cutoff``."""
    query = select(models.Vehicle.hexon_nr).where(
        models.Vehicle.status == models.VehicleStatus.SOLD.value,
        models.Vehicle.sold_at < cutoff,
    )
    result = await session.execute(query)
    return list(result.scalars().all())


async def cleanup_sold_vehicles(
    session: AsyncSession,
    storage: ObjectStorage | None,
    *,
    retention_days: int = 7,
    bucket: str = "sold-vehicles",
    now: datetime | None = None,
) -> CleanupResult:
    """Delete sold vehicles older than the retention window.

    Image removal is best effort: the image may never have been uploaded.
    A vehicle whose row delete fails is reported in ``failed`` and the sweep
    moves on to the next one.

    Raises:
        CleanupError: If the expired vehicles cannot be selected
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=retention_days)
    logger.info(f"Cleanup cutoff date: {cutoff.isoformat()}")

    try:
        hexon_numbers = await find_expired_sold(session, cutoff)
    except Exception as e:
        logger.error(f"Fetching sold vehicles failed: {e}", exc_info=True)
        raise CleanupError(f"Fetching sold vehicles failed: {e}") from e

    logger.info(f"Found {len(hexon_numbers)} vehicle(s) to clean up")

    if storage is None and hexon_numbers:
        logger.warning("Storage is not configured; sold vehicle images are left in place")

    deleted = 0
    failed: list[int] = []

    for hexon_nr in hexon_numbers:
        logger.info(f"Cleaning up vehicle {hexon_nr}")

        if storage is not None:
            try:
                await storage.remove(bucket, [f"{hexon_nr}.jpg"])
            except Exception as e:
                logger.warning(f"Storage delete error for {hexon_nr}: {e}")

        try:
            await delete_vehicle_by_hexon(session, hexon_nr)
            await session.commit()
        except Exception as e:
            logger.error(f"Database delete error for {hexon_nr}: {e}")
            await session.rollback()
            failed.append(hexon_nr)
        else:
            deleted += 1

    logger.info(f"Cleanup complete: deleted {deleted} vehicle(s), {len(failed)} failed")

    return CleanupResult(cutoff=cutoff, found=len(hexon_numbers), deleted=deleted, failed=failed)
