"""Shared fixtures for auth tests."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from config import Settings
from service import AuthService
from store import CredentialStore


TEST_ITERATIONS = 1_000
VALID_PASSWORD = "secret1"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest_asyncio.fixture
async def store():
    s = CredentialStore(":memory:")
    await s.init()
    yield s
    await s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def service(store: CredentialStore) -> AuthService:
    return AuthService(store, hash_iterations=TEST_ITERATIONS)


@pytest_asyncio.fixture
async def clocked_service(store: CredentialStore, clock: FakeClock) -> AuthService:
    return AuthService(store, hash_iterations=TEST_ITERATIONS, clock=clock)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        db_path=":memory:",
        hash_iterations=TEST_ITERATIONS,
        log_level="WARNING",
    )
