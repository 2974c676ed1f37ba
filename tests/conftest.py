"""
tests/conftest.py -- Shared test fixtures for the OASIS bridge.

This module provides:
  - settings / store / http_session / registry_client / decider: unit-level
    collaborators with an in-memory AccountStore and a mocked requests.Session
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: the registry transport is the only thing mocked. RegistryClient,
AccountReconciler, SessionFinalizer and AuthenticationDecider are the real
classes, so tests exercise the actual failure classification and wiring.

Named shared-memory SQLite URIs (not plain :memory:) are used for the API
client because TestClient runs sync route handlers in a thread pool; plain
:memory: DBs are per-connection and would show each worker a blank schema.

Environment variables must be set before any auth/core import because
get_settings() is cached at first call and auth.tokens reads it at import.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: set before any app import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("OASIS_API_USER_ENDPOINT", "https://oasis.test/api/users/")
os.environ.setdefault("OASIS_ADMIN_USER", "svc-bridge")
os.environ.setdefault("OASIS_ADMIN_PASSWORD", "svc-secret")
os.environ.setdefault("OASIS_TOKEN_LOGIN_URL", "https://oasis.test/token-login")
os.environ.setdefault("OASIS_MEMBER_PROFILE_URL_EN", "members/profile")
os.environ.setdefault("OASIS_MEMBER_PROFILE_URL_FR", "membres/profil")
os.environ.setdefault("MEMBER_LOGOUT_REDIRECT", "/node/490")

import pytest
import requests
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.decider import AuthenticationDecider
from auth.reconciler import AccountReconciler
from auth.session import SessionFinalizer
from auth.store import AccountStore
from core.config import Settings, get_settings
from registry.client import RegistryClient

# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def http_session() -> MagicMock:
    """Mocked requests.Session; set .get.return_value or .get.side_effect per test."""
    return MagicMock(spec=requests.Session)


@pytest.fixture
def registry_client(settings: Settings, http_session: MagicMock) -> RegistryClient:
    return RegistryClient(settings, session=http_session)


@pytest.fixture
def decider(store: AccountStore, registry_client: RegistryClient, settings: Settings) -> AuthenticationDecider:
    return AuthenticationDecider(
        store=store,
        client=registry_client,
        reconciler=AccountReconciler(store),
        finalizer=SessionFinalizer(),
        settings=settings,
    )


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore, client: RegistryClient):
    """Return a lifespan that wires test collaborators instead of the real ones."""

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, get_settings(), store, client)
        yield

    return test_lifespan


@pytest.fixture
def api_client(
    http_session: MagicMock,
) -> Generator[tuple[TestClient, AccountStore, MagicMock], None, None]:
    """Yield (client, store, http_session) over the real app.

    follow_redirects=False so tests can assert on logout / profile Location
    headers. Each test gets its own uniquely named in-memory database.
    """
    store = AccountStore(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    client = RegistryClient(get_settings(), session=http_session)
    app.router.lifespan_context = _patch_lifespan(store, client)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as test_client:
        yield test_client, store, http_session

    store.close()
