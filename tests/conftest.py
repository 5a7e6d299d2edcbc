"""Pytest fixtures for backend tests."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient


def _set_default_env() -> None:
    os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
    os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key")
    os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
    os.environ.setdefault("VOTER_HASH_SECRET", "test-voter-hash-secret")
    os.environ.setdefault("BCRYPT_ROUNDS", "4")
    os.environ.setdefault("ENABLE_SCHEDULER", "false")


_set_default_env()

from tests.fakes import FakeSupabase  # noqa: E402


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture
def db() -> FakeSupabase:
    """Empty in-memory store."""
    return FakeSupabase()


@pytest.fixture
def clock() -> FrozenClock:
    """Clock pinned to a fixed instant."""
    return FrozenClock(datetime(2026, 3, 15, 12, 0, tzinfo=UTC))


@pytest.fixture(scope="session")
def client() -> TestClient:
    """Create a FastAPI test client."""
    from app.main import app

    return TestClient(app)


@pytest.fixture
def api(client: TestClient, db: FakeSupabase):
    """Test client whose routes read and write the fake store."""
    from app.dependencies import get_db_client, reset_login_rate_limit
    from app.main import app

    app.dependency_overrides[get_db_client] = lambda: db
    reset_login_rate_limit()
    yield client
    app.dependency_overrides.clear()
    reset_login_rate_limit()
