"""Shared test fixtures for meetsync tests.

This module provides common fixtures used across all test modules:
- Database isolation with temporary files
- Registered test users
- A fixed clock
- Fake calendar sources and token refreshers

Usage:
    def test_something(isolated_db, ana):
        # every store call in this test hits a throwaway database
        ...
"""

import asyncio
import os
import sqlite3
import tempfile
from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from meetsync.config_models import get_config
from meetsync.errors import CalendarFetchError
from meetsync.models import Interval


# ─────────────────────────────────────────────────────────────────────────────
# Path Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent

# Monday 2 November 2026. New York is on EST (UTC-5) from 1 November.
MONDAY = datetime(2026, 11, 2, tzinfo=timezone.utc)


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_db() -> Generator[Path, None, None]:
    """Create a temporary database file for testing.

    The database file is automatically deleted after the test completes.

    Yields:
        Path to the temporary database file
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup
    if db_path.exists():
        os.unlink(db_path)


@pytest.fixture
def isolated_db(temp_db: Path) -> Generator[Path, None, None]:
    """Point meetsync.get_connection() at a temporary database."""
    get_config.cache_clear()
    with patch("meetsync.DB_PATH", temp_db):
        from meetsync import get_connection

        # Force table creation
        get_connection().close()

        yield temp_db
    get_config.cache_clear()


@pytest.fixture
def db_connection(isolated_db: Path) -> Generator[sqlite3.Connection, None, None]:
    """Direct connection to the isolated database for assertions."""
    conn = sqlite3.connect(str(isolated_db))
    conn.row_factory = sqlite3.Row

    yield conn

    conn.close()


# ─────────────────────────────────────────────────────────────────────────────
# Clock Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def monday() -> datetime:
    """Midnight UTC, Monday 2 November 2026."""
    return MONDAY


@pytest.fixture
def fixed_now() -> datetime:
    """08:00 UTC on the test Monday."""
    return MONDAY.replace(hour=8)


# ─────────────────────────────────────────────────────────────────────────────
# User Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def make_user(isolated_db):
    """Factory registering users in UTC without default rules unless asked."""
    from meetsync.users import register_user

    def _make(email: str, name: str | None = None, timezone: str = "UTC", rules: bool = False, **kwargs):
        return register_user(
            email,
            name or email.split("@")[0].title(),
            timezone=timezone,
            bootstrap_rules=rules,
            **kwargs,
        )

    return _make


@pytest.fixture
def ana(make_user):
    return make_user("ana@acme.com", "Ana")


@pytest.fixture
def ben(make_user):
    return make_user("ben@acme.com", "Ben")


@pytest.fixture
def cal(make_user):
    return make_user("cal@other.org", "Cal")


# ─────────────────────────────────────────────────────────────────────────────
# Calendar Fakes
# ─────────────────────────────────────────────────────────────────────────────


class FakeCalendarSource:
    """In-memory CalendarSource keyed by access token.

    Events are returned raw (unbuffered) exactly as a provider would.
    """

    provider_name = "fake"

    def __init__(self):
        self.events: dict[str, list[Interval]] = {}
        self.errors: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.calls: list[tuple[str, datetime, datetime]] = []
        self.on_call = None

    def add_event(self, access_token: str, start: datetime, end: datetime, summary: str = "Busy"):
        self.events.setdefault(access_token, []).append(Interval(start, end, summary))

    def fail(self, access_token: str, error: Exception | None = None):
        self.errors[access_token] = error or CalendarFetchError("provider unavailable")

    async def list_busy(self, access_token, time_min, time_max):
        self.calls.append((access_token, time_min, time_max))
        if self.on_call is not None:
            self.on_call(access_token)
        if access_token in self.delays:
            await asyncio.sleep(self.delays[access_token])
        if access_token in self.errors:
            raise self.errors[access_token]
        return sorted(self.events.get(access_token, []))


class FakeRefresher:
    """Async refresh primitive that counts its calls."""

    def __init__(self, response: dict | None = None, error: Exception | None = None):
        self.response = response or {"access_token": "refreshed-token", "expires_in": 3600}
        self.error = error
        self.calls: list[str] = []

    async def __call__(self, refresh_token: str) -> dict:
        self.calls.append(refresh_token)
        # Yield so concurrent callers interleave
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return dict(self.response)


@pytest.fixture
def fake_source() -> FakeCalendarSource:
    return FakeCalendarSource()


@pytest.fixture
def fake_refresher() -> FakeRefresher:
    return FakeRefresher()


@pytest.fixture
def token_manager(fake_refresher):
    from meetsync.calendar.oauth import TokenManager

    return TokenManager(refresher=fake_refresher)


@pytest.fixture
def connect_calendar(isolated_db):
    """Link a calendar credential for a user; the access token is 'token-<email>'."""
    from meetsync.calendar.oauth import save_token

    def _connect(user, **kwargs) -> str:
        access_token = f"token-{user.email}"
        save_token(user.id, access_token, **kwargs)
        return access_token

    return _connect
