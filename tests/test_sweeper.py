"""Tests for auth/sweeper.py -- CleanupSweeper.

Runs against both CredentialStore implementations.

Covers:
- nothing is removed or rewritten while tokens are still valid
- unverified accounts with an expired token are removed, token first
- verified accounts are never removed, however old
- a reissued token keeps its account alive past its first expiry
- a swept email can register again
- repeated sweeps are idempotent
"""

from datetime import timedelta

from sqlalchemy import select

from auth.memory_store import InMemoryCredentialStore
from auth.store import _tokens
from auth.sweeper import CleanupSweeper
from auth.verification import VERIFICATION_TOKEN_TTL, hash_token

ALG = "PBKDF2-SHA256-100000"
PAST_EXPIRY = VERIFICATION_TOKEN_TTL + timedelta(minutes=1)


def _register(manager, email):
    return manager.create_account_with_token(email, b"h" * 32, b"s" * 16, ALG)


def _stored_token(store, account_id):
    if isinstance(store, InMemoryCredentialStore):
        token = store.token_for(account_id)
        return (token.token_hash, token.expires_at) if token else None
    with store.engine.connect() as conn:
        row = conn.execute(
            select(_tokens.c.token_hash, _tokens.c.expires_at).where(_tokens.c.account_id == account_id)
        ).first()
    return tuple(row) if row else None


def test_nothing_removed_before_expiry(manager, store, clock):
    registration = _register(manager, "alice@example.com")
    clock.advance(timedelta(hours=23))
    before = _stored_token(store, registration.account.id)
    assert CleanupSweeper(store).run() == 0
    assert store.get_account_by_uuid(registration.account.uuid) is not None
    assert _stored_token(store, registration.account.id) == before
    assert before[0] == hash_token(registration.raw_token)
    assert store.get_account_by_uuid(registration.account.uuid).verified_email is False


def test_expired_unverified_account_is_removed(manager, store, clock):
    registration = _register(manager, "alice@example.com")
    clock.advance(PAST_EXPIRY)
    assert CleanupSweeper(store).run() == 1
    assert store.get_account_by_uuid(registration.account.uuid) is None
    assert store.email_exists("alice@example.com") is False
    assert store.get_pending_token_for_resend("alice@example.com") is None


def test_verified_account_survives(manager, store, clock):
    registration = _register(manager, "alice@example.com")
    assert manager.consume(registration.account.uuid, registration.raw_token).ok
    clock.advance(timedelta(days=30))
    assert CleanupSweeper(store).run() == 0
    assert store.get_account_by_uuid(registration.account.uuid).verified_email is True


def test_only_stale_accounts_are_removed(manager, store, clock):
    stale = _register(manager, "stale@example.com")
    clock.advance(timedelta(hours=12))
    fresh = _register(manager, "fresh@example.com")
    done = _register(manager, "done@example.com")
    manager.consume(done.account.uuid, done.raw_token)
    clock.advance(timedelta(hours=13))

    assert CleanupSweeper(store).run() == 1
    assert store.get_account_by_uuid(stale.account.uuid) is None
    assert store.get_account_by_uuid(fresh.account.uuid) is not None
    assert store.get_account_by_uuid(done.account.uuid) is not None


def test_reissue_extends_lifetime(manager, store, clock):
    registration = _register(manager, "alice@example.com")
    clock.advance(timedelta(hours=20))
    reissue = manager.reissue("alice@example.com")
    clock.advance(timedelta(hours=10))
    assert CleanupSweeper(store).run() == 0
    assert manager.consume(registration.account.uuid, reissue.raw_token).ok


def test_swept_email_can_register_again(manager, store, clock):
    first = _register(manager, "alice@example.com")
    clock.advance(PAST_EXPIRY)
    CleanupSweeper(store).run()
    second = _register(manager, "alice@example.com")
    assert second.ok
    assert second.account.uuid != first.account.uuid


def test_sweep_is_idempotent(manager, store, clock):
    _register(manager, "alice@example.com")
    _register(manager, "bob@example.com")
    clock.advance(PAST_EXPIRY)
    sweeper = CleanupSweeper(store)
    assert sweeper.run() == 2
    assert sweeper.run() == 0
