"""
Pytest fixtures for Luminex Guard backend tests.
"""

import os
import random
from collections.abc import AsyncGenerator, Iterator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("ADMIN_API_SECRET", "test-admin-secret")
os.environ.setdefault("STORAGE_DISABLE_FILE", "true")
os.environ.setdefault("IP_RISK_LOOKUP_ENABLED", "false")

from core.config import Settings  # noqa: E402
from repositories.memory_ledger_repository import MemoryLedgerRepository  # noqa: E402
from services.engine import AntiAbuseEngine, build_engine  # noqa: E402
from services.ip_intelligence import IPIntelligenceService  # noqa: E402
from services.reward_policy import ForcedLossPolicy  # noqa: E402
from services.storage_service import LedgerStore  # noqa: E402

START_MS = 1_700_000_000_000
ADMIN_SECRET = "test-admin-secret"


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with production thresholds and no external services."""
    return Settings(
        _env_file=None,
        STORAGE_DISABLE_FILE=True,
        IP_RISK_LOOKUP_ENABLED=False,
        ADMIN_API_SECRET=ADMIN_SECRET,
    )


@pytest.fixture
def memory_backend() -> MemoryLedgerRepository:
    return MemoryLedgerRepository()


@pytest.fixture
def ledger_store(memory_backend: MemoryLedgerRepository) -> Iterator[LedgerStore]:
    """Synchronous ledger store over an in-memory backend."""
    store = LedgerStore(memory_backend, write_behind=False)
    yield store
    store.close()


@pytest.fixture
def engine(ledger_store: LedgerStore, clock: FakeClock, test_settings: Settings) -> AntiAbuseEngine:
    """Isolated engine on a fake clock with a seeded forced-loss draw."""
    return build_engine(
        ledger_store,
        settings=test_settings,
        clock=clock,
        forced_loss=ForcedLossPolicy(test_settings.FORCED_LOSS_PROBABILITY, rng=random.Random(1234)),
        ip_intelligence=IPIntelligenceService(enabled=False),
    )


@pytest.fixture
async def app(engine: AntiAbuseEngine) -> AsyncGenerator[Any, None]:
    """FastAPI application wired to the isolated test engine."""
    from api.deps import get_anti_abuse_engine
    from main import app as fastapi_app

    fastapi_app.dependency_overrides[get_anti_abuse_engine] = lambda: engine
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    headers = {"Origin": "http://localhost:3000"}
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=headers,
    ) as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Secret": ADMIN_SECRET}
