"""
tests/conftest.py -- Shared test fixtures for Gatehouse.

This module provides:
  - make_service(): builds an AuthService over isolated stores
  - account_store: a fresh AccountStore per test
  - auth_service: a fresh AuthService per test (fast bcrypt, memory counters)
  - api_client: TestClient wired to a fresh AuthService via a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. Each store gets its own uuid-suffixed name so tests never share rows.

Every fixture is function-scoped: the sign-up quota is one attempt per
window, so sharing a limiter across tests would make them order-dependent.

SECRET_KEY and ALLOWED_HOSTS must be set before any api/ import because
api/main.py reads Settings at import time and refuses to start without a key.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: configure the environment before importing api/ or core/.
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.passwords import CredentialVerifier, PasswordHasher
from auth.service import AuthService
from auth.sessions import SessionManager, SigningKey
from auth.store import AccountStore
from throttle.limiter import Purpose, RateLimiter
from throttle.store import CounterStore

TEST_KEY = SigningKey("unit-test-signing-key-0123456789abcdef01")


def shared_memory_url() -> str:
    return f"sqlite:///file:gatehouse_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_service(
    store: AccountStore | None = None,
    sign_in_limit: str = "5/15 minutes",
    sign_up_limit: str = "1/15 minutes",
    rounds: int = 4,
    clock: Callable[[], float] | None = None,
    secure_cookies: bool = False,
) -> AuthService:
    store = store or AccountStore(shared_memory_url())
    limiter = RateLimiter(
        CounterStore("memory://"),
        {Purpose.sign_in: sign_in_limit, Purpose.sign_up: sign_up_limit},
    )
    hasher = PasswordHasher(rounds=rounds)
    session_kwargs = {"clock": clock} if clock is not None else {}
    sessions = SessionManager(TEST_KEY, store, **session_kwargs)
    return AuthService(
        store,
        limiter,
        CredentialVerifier(store, hasher),
        hasher,
        sessions,
        secure_cookies=secure_cookies,
    )


@pytest.fixture
def account_store() -> Generator[AccountStore, None, None]:
    store = AccountStore(shared_memory_url())
    yield store
    store.close()


@pytest.fixture
def service_factory() -> Callable[..., AuthService]:
    """Return make_service() so tests can build services with custom quotas."""
    return make_service


@pytest.fixture
def auth_service(account_store: AccountStore) -> AuthService:
    return make_service(account_store)


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the test AuthService into app.state so routes see isolated stores
    instead of the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = service
        yield

    return test_lifespan


@pytest.fixture
def api_client(auth_service: AuthService) -> Generator[tuple[TestClient, AuthService], None, None]:
    """Yield (client, service) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, middleware and exception handlers.
    """
    app.router.lifespan_context = _patch_lifespan(auth_service)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, auth_service
