"""Hosted object storage client (Supabase Storage REST API)."""
from __future__ import annotations

import logging
from typing import AsyncIterator, Iterable

import httpx
from fastapi import Depends

from .config import Settings, get_settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a storage request fails."""
    pass


def object_paths(urls: Iterable[str], bucket: str) -> list[str]:
    """Return the in-bucket paths of the URLs stored in ``bucket``.

    ``https://x.supabase.co/storage/v1/object/public/own-vehicle-uploads/a/b.jpg``
    yields ``a/b.jpg`` for bucket ``own-vehicle-uploads``. URLs outside the
    bucket are skipped.
    """
    marker = f"/{bucket}/"
    paths = []
    for url in urls:
        if marker not in url:
            continue
        path = url.split(marker, 1)[1].split("?", 1)[0]
        if path:
            paths.append(path)
    return paths


class StorageClient:
    """Thin async wrapper around the storage REST endpoints."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/storage/v1",
            headers={
                "Authorization": f"Bearer {service_key}",
                "apikey": service_key,
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> StorageClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def remove(self, bucket: str, paths: list[str]) -> list[dict]:
        """Delete objects from a bucket.

        Returns:
            The storage API's description of the removed objects

        Raises:
            StorageError: On transport errors or non-2xx responses
        """
        if not paths:
            return []

        try:
            response = await self._client.request(
                "DELETE",
                f"/object/{bucket}",
                json={"prefixes": paths},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StorageError(
                f"Removing {paths} from {bucket} failed with {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise StorageError(f"Removing {paths} from {bucket} failed: {e}") from e

        logger.debug(f"Removed {len(paths)} object(s) from bucket {bucket}")
        return response.json() if response.content else []


async def get_storage(settings: Settings = Depends(get_settings)) -> AsyncIterator[StorageClient | None]:
    """FastAPI dependency yielding a storage client, or None when unconfigured."""
    if not settings.supabase.configured:
        yield None
        return

    async with StorageClient(
        settings.supabase.url,
        settings.supabase.service_key,
        timeout=settings.supabase.timeout,
    ) as client:
        yield client
