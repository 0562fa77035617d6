"""
tests/conftest.py -- Shared test fixtures for MoeAuth.

This module provides:
  - store: fresh in-memory UserStore per test (unit tests)
  - app_client: module-scoped TestClient over the full ASGI app (API + web)
    wired to an isolated named shared-memory store via a patched lifespan
  - client / user_store: function-scoped views of app_client; client starts
    every test with an empty cookie jar so sign-ins do not leak between tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for app_client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread.

Environment must be set before any app import: get_settings() is cached and
read at module load by auth/tokens.py, api/main.py and the rate limiter.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["*"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")
os.environ.setdefault("LOCALE", "en")

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.store import UserStore


def _patch_lifespan(user_store: UserStore):
    """Return a lifespan that wires the test store and a mocked OAuth registry."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.oauth = MagicMock()
        yield

    return test_lifespan


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture(scope="module")
def app_client() -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, store) sharing one isolated database per test module."""
    db_name = f"test_auth_{uuid.uuid4().hex}"
    user_store = UserStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    app.router.lifespan_context = _patch_lifespan(user_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store

    user_store.close()


@pytest.fixture
def client(app_client: tuple[TestClient, UserStore]) -> TestClient:
    test_client, _store = app_client
    test_client.cookies.clear()
    return test_client


@pytest.fixture
def user_store(app_client: tuple[TestClient, UserStore]) -> UserStore:
    return app_client[1]


def unique_name(prefix: str = "user") -> str:
    """Return a username valid under the credential schema and unique per call."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}"
