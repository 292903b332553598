"""
Integration test fixtures for meetsync.

Provides fixtures specific to integration testing:
- FastAPI test client over an isolated database
- Calendar source and token manager fakes wired into the app
- Header helpers for acting as a given user
"""

from collections.abc import Generator

import pytest


# ─────────────────────────────────────────────────────────────────────────────
# API Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def api_app(isolated_db, fake_source, token_manager):
    """The FastAPI app with calendar access replaced by in-memory fakes."""
    from meetsync.api import deps
    from meetsync.api.main import app

    app.dependency_overrides[deps.calendar_source] = lambda: fake_source
    app.dependency_overrides[deps.tokens] = lambda: token_manager

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def test_client(api_app) -> Generator:
    """Create a test client for the meetsync API."""
    from fastapi.testclient import TestClient

    with TestClient(api_app) as client:
        yield client


@pytest.fixture
def as_user():
    """Headers that authenticate a request as the given user."""

    def _headers(user) -> dict[str, str]:
        return {"X-User-Id": user.id}

    return _headers
