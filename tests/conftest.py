"""
tests/conftest.py -- Shared test fixtures for shared-libs tests.

This module provides:
  - clean_env: strips every recognised environment variable and chdirs into a
    temp directory so configuration tests never see the developer's .env
  - default_config: resets the process-wide loader before and after a test
  - app_config: a hand-built AppConfig pointing at a shared in-memory SQLite DB
  - make_token: signs access tokens with the test JWT secret
  - api_client: TestClient around create_app() with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import create_app
from audit.store import AuditStore
from auth.tokens import create_access_token
from core.config import AppConfig, ConfigMode, reset_config

TEST_JWT_SECRET = "test-secret-key-that-is-long-enough-for-hs256"

ENV_KEYS = (
    "MONGO_URI",
    "DB_NAME",
    "JWT_SECRET",
    "NATS_URL",
    "ALLOWED_ORIGINS",
    "APP_ENV",
    "PORT",
    "GOOGLE_CLOUD_PROJECT",
    "USE_SECRET_MANAGER",
    "SENDER_EMAIL",
    "FRONTEND_URL",
    "SENDGRID_API_KEY",
)


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Remove recognised env vars and run the test from an empty directory.

    setenv-then-delenv makes monkeypatch remember each variable's original
    state, so anything python-dotenv writes into os.environ during the test
    is rolled back at teardown too.
    """
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "placeholder")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.fixture
def default_config(clean_env) -> Generator[pytest.MonkeyPatch, None, None]:
    """Give the test a fresh process-wide loader and clear it afterwards."""
    reset_config()
    yield clean_env
    reset_config()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _db_url(suffix: str) -> str:
    return f"sqlite:///file:test_audit_{suffix}?mode=memory&cache=shared&uri=true"


def _build_config(suffix: str) -> AppConfig:
    return AppConfig(
        mode=ConfigMode.basic,
        app_env="test",
        port="8080",
        mongo_uri=_db_url(suffix),
        db_name="test",
        jwt_secret=TEST_JWT_SECRET,
        allowed_origins="http://localhost:5173",
    )


@pytest.fixture
def app_config() -> AppConfig:
    return _build_config("unit")


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Return a helper that signs an access token with the test secret."""

    def _make(role: str = "admin", user_id: str = "admin1", organization_id: str = "org1") -> str:
        return create_access_token(user_id, organization_id, role, secret=TEST_JWT_SECRET)

    return _make


def _patch_lifespan(store: AuditStore):
    """Replace the real lifespan so no connect_db() call is made.

    The test store is created before the client starts so tests can write
    entries directly and read them back over HTTP.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.audit_store = store
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request: pytest.FixtureRequest) -> Generator[tuple[TestClient, AuditStore], None, None]:
    """Yield (client, store) backed by an isolated shared-memory database.

    One client per test module. Each module gets its own database name so
    entries written in one module are invisible to the next.
    """
    config = _build_config(request.module.__name__.rsplit(".", 1)[-1])
    store = AuditStore(db_url=config.mongo_uri)
    app = create_app(config)
    app.router.lifespan_context = _patch_lifespan(store)
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store

    store.close()
