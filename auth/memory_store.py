"""
auth/memory_store.py -- In-memory CredentialStore test double.

Implements the same contract as SqlCredentialStore. A single lock serializes
every operation, which makes each call trivially atomic and the whole store
serializable -- the strongest isolation the SQL store promises. Email
uniqueness is enforced by keying the index dict on the normalized email.

Not for production: state lives only as long as the process.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from auth.models import Account, PendingToken, VerificationToken


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryCredentialStore:
    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._accounts: dict[int, Account] = {}
        self._by_email: dict[str, int] = {}
        self._tokens: dict[int, VerificationToken] = {}
        self._next_id = 1

    # ------------------------------------------------------------------
    # Inspection helpers (tests only)
    # ------------------------------------------------------------------

    def token_for(self, account_id: int) -> VerificationToken | None:
        with self._lock:
            return self._tokens.get(account_id)

    def account_count(self) -> int:
        with self._lock:
            return len(self._accounts)

    # ------------------------------------------------------------------
    # CredentialStore
    # ------------------------------------------------------------------

    def email_exists(self, email: str) -> bool:
        with self._lock:
            return email in self._by_email

    def create_account_with_verification_token(
        self,
        email: str,
        password_hash: bytes,
        password_salt: bytes,
        algorithm_id: str,
        token_hash: str,
        expires_at: datetime,
    ) -> Account | None:
        with self._lock:
            if email in self._by_email:
                return None
            account = Account(
                id=self._next_id,
                uuid=str(uuid.uuid4()),
                email=email,
                password_hash=password_hash,
                password_salt=password_salt,
                password_algorithm=algorithm_id,
                created_at=self._clock(),
            )
            self._next_id += 1
            self._accounts[account.id] = account
            self._by_email[email] = account.id
            self._tokens[account.id] = VerificationToken(account.id, token_hash, expires_at)
            return replace(account)

    def get_credentials_by_email(self, email: str) -> Account | None:
        with self._lock:
            account_id = self._by_email.get(email)
            return replace(self._accounts[account_id]) if account_id is not None else None

    def get_account_by_uuid(self, account_uuid: str) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if account.uuid == account_uuid:
                    return replace(account)
            return None

    def consume_verification_token(self, account_uuid: str, token_hash: str) -> bool:
        with self._lock:
            account = next((a for a in self._accounts.values() if a.uuid == account_uuid), None)
            if account is None:
                return False
            token = self._tokens.get(account.id)
            if token is None or token.token_hash != token_hash or token.expires_at <= self._clock():
                return False
            account.verified_email = True
            del self._tokens[account.id]
            return True

    def get_pending_token_for_resend(self, email: str) -> PendingToken | None:
        with self._lock:
            account_id = self._by_email.get(email)
            if account_id is None:
                return None
            account = self._accounts[account_id]
            token = self._tokens.get(account_id)
            if account.verified_email or token is None:
                return None
            return PendingToken(account.id, account.uuid, account.email, token.expires_at)

    def replace_verification_token(self, email: str, token_hash: str, expires_at: datetime) -> bool:
        with self._lock:
            account_id = self._by_email.get(email)
            if account_id is None or self._accounts[account_id].verified_email:
                return False
            self._tokens[account_id] = VerificationToken(account_id, token_hash, expires_at)
            return True

    def sweep_expired_unverified(self) -> int:
        with self._lock:
            now = self._clock()
            stale = [
                account_id
                for account_id, token in self._tokens.items()
                if token.expires_at < now and not self._accounts[account_id].verified_email
            ]
            for account_id in stale:
                account = self._accounts.pop(account_id)
                del self._by_email[account.email]
                del self._tokens[account_id]
            return len(stale)

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass
