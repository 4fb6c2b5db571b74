from __future__ import annotations

import os
import tempfile

# Point the engine at a throwaway SQLite file before any polly module builds it.
_DB_DIR = tempfile.mkdtemp(prefix="polly-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'polly.db')}"

import pytest
from httpx import ASGITransport, AsyncClient

from polly.apps.api.main import create_app
from polly.core.config import get_settings
from polly.domain.models import Base
from polly.persistence.db import SessionLocal, engine
from polly.persistence.memory import InMemoryPollStore
from polly.persistence.store import SqlPollStore
from polly.services.registry import build_services
from polly.tests.utils.clock import FakeClock


@pytest.fixture(autouse=True)
def reset_settings_cache() -> None:
    # Settings are cached; clear around each test so monkeypatched env vars apply.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> InMemoryPollStore:
    return InMemoryPollStore()


@pytest.fixture
def services(memory_store: InMemoryPollStore, clock: FakeClock):
    return build_services(get_settings(), store=memory_store, clock=clock)


@pytest.fixture
async def sql_store() -> SqlPollStore:
    # Fresh schema per test; dispose the engine so connections never cross event loops.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlPollStore(SessionLocal)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def api_services(sql_store: SqlPollStore):
    return build_services(get_settings(), store=sql_store)


@pytest.fixture
async def client(api_services):
    app = create_app(services=api_services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
