"""
tests/conftest.py -- Shared test fixtures for the credential service.

This module provides:
  - MutableClock / clock: a controllable UTC clock injected into stores and
    the verification manager, so expiry can be tested without sleeping
  - sql_store / memory_store / store: the two CredentialStore implementations;
    `store` is parametrized so contract tests run against both
  - hasher, issuer, notifier, service: the assembled core
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: the SQL store uses a SQLite file under tmp_path rather than a
shared-memory URI. Every test gets a fresh database, and the file DB behaves
like production under BEGIN IMMEDIATE (real lock waits instead of
shared-cache table-lock errors) -- the concurrency tests depend on that.

The DEBUG env var is set before any app import so get_settings() can
auto-generate a signing key if anything reaches for it.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any core import so get_settings() can
# auto-generate the signing key in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.accounts import AccountService
from auth.memory_store import InMemoryCredentialStore
from auth.passwords import PasswordHasher
from auth.store import SqlCredentialStore
from auth.sweeper import CleanupSweeper
from auth.tokens import TokenIssuer
from auth.verification import VerificationTokenManager

TEST_SIGNING_KEY = "test-signing-key-0123456789abcdef-0123456789"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class MutableClock:
    """Callable UTC clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@dataclass
class SentLink:
    email: str
    account_uuid: str
    raw_token: str
    expires_at: datetime


@dataclass
class RecordingNotifier:
    """Captures dispatched raw tokens in place of an e-mail transport."""

    sent: list[SentLink] = field(default_factory=list)
    fail: bool = False

    def send_verification(self, email: str, account_uuid: str, raw_token: str, expires_at: datetime) -> None:
        if self.fail:
            raise ConnectionError("mail relay unreachable")
        self.sent.append(SentLink(email, account_uuid, raw_token, expires_at))

    @property
    def last(self) -> SentLink:
        return self.sent[-1]


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def sql_store(tmp_path, clock) -> Generator[SqlCredentialStore, None, None]:
    s = SqlCredentialStore(f"sqlite:///{tmp_path / 'auth.db'}", timeout=5.0, clock=clock)
    yield s
    s.close()


@pytest.fixture
def memory_store(clock) -> InMemoryCredentialStore:
    return InMemoryCredentialStore(clock=clock)


@pytest.fixture(params=["sql", "memory"])
def store(request):
    """Both CredentialStore implementations; contract tests run once per store."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher()


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(TEST_SIGNING_KEY)


@pytest.fixture
def manager(store, clock) -> VerificationTokenManager:
    return VerificationTokenManager(store, clock=clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(store, hasher, issuer, notifier, manager) -> AccountService:
    return AccountService(store, hasher, issuer, notifier, manager=manager)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(store: SqlCredentialStore, notifier: RecordingNotifier, issuer: TokenIssuer, hasher: PasswordHasher):
    """Return an async context manager that replaces the real lifespan.

    Wires a test store and a recording notifier into app.state so routes hit
    an isolated database and tests can read the dispatched raw tokens.

    The sweep_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.token_issuer = issuer
        app.state.store = store
        app.state.accounts = AccountService(store, hasher, issuer, notifier)
        app.state.sweeper = CleanupSweeper(store)
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()

    return test_lifespan


@pytest.fixture
def api_client(tmp_path, hasher) -> Generator[tuple[TestClient, RecordingNotifier, SqlCredentialStore], None, None]:
    """Yield (client, notifier, store) for API integration tests.

    The store runs on the real clock: tokens issued over HTTP are validated
    by python-jose against wall-clock time.
    """
    store = SqlCredentialStore(f"sqlite:///{tmp_path / 'api_auth.db'}", timeout=5.0)
    notifier = RecordingNotifier()
    issuer = TokenIssuer(TEST_SIGNING_KEY)

    app.router.lifespan_context = _patch_lifespan(store, notifier, issuer, hasher)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, notifier, store

    store.close()
