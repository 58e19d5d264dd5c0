from __future__ import annotations

import base64
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from inventory.api import app
from inventory.config import (
    AdminSettings,
    CleanupSettings,
    FeedSettings,
    Settings,
    SupabaseSettings,
    get_settings,
)
from inventory.db import get_session
from inventory.models import Base
from inventory.storage import get_storage

FIXTURES = Path(__file__).parent / "fixtures"

FEED_USER = "mobilox"
FEED_PASS = "s3cret"
ADMIN_KEY = "admin-key"
CLEANUP_KEY = "cleanup-key"


def load_fixture(name: str) -> bytes:
    return (FIXTURES / name).read_bytes()


def basic_auth(user: str = FEED_USER, password: str = FEED_PASS) -> dict[str, str]:
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


class FakeStorage:
    """Records removals; optionally fails them."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.removed: list[tuple[str, list[str]]] = []

    async def remove(self, bucket: str, paths: list[str]) -> list[dict]:
        if self.fail:
            raise RuntimeError("storage unavailable")
        self.removed.append((bucket, list(paths)))
        return [{"name": path} for path in paths]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        feed=FeedSettings(user=FEED_USER, password=FEED_PASS),
        cleanup=CleanupSettings(secret_key=None),
        admin=AdminSettings(api_key=ADMIN_KEY),
        supabase=SupabaseSettings(url=None, service_key=None),
    )


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory, settings, storage):
    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_storage] = lambda: storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()
