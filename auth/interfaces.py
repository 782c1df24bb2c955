"""
auth/interfaces.py -- CredentialStore capability interface.

The verification manager, the sweeper and the account service depend on this
Protocol, never on a concrete store. Two implementations ship:

  SqlCredentialStore (auth/store.py)          -- production, SQLAlchemy Core
  InMemoryCredentialStore (auth/memory_store.py) -- test double

Transaction contract: every method that performs more than one read or write
runs as ONE atomic unit. Either all of its effects commit or none do, and no
caller ever observes a partially-applied effect of another call. A store that
times out raises TransientStorageError after rolling back.

Emails passed in are already normalized (auth.verification.normalize_email).
The account reference used by consume_verification_token() is the public
account uuid.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from auth.models import Account, PendingToken


class CredentialStore(Protocol):
    def email_exists(self, email: str) -> bool:
        ...

    def create_account_with_verification_token(
        self,
        email: str,
        password_hash: bytes,
        password_salt: bytes,
        algorithm_id: str,
        token_hash: str,
        expires_at: datetime,
    ) -> Account | None:
        """Insert an unverified account and its token atomically.

        Returns None when the email is already registered (including the case
        where a concurrent registration wins the uniqueness constraint). In
        that case nothing was written.
        """
        ...

    def get_credentials_by_email(self, email: str) -> Account | None:
        ...

    def get_account_by_uuid(self, account_uuid: str) -> Account | None:
        ...

    def consume_verification_token(self, account_uuid: str, token_hash: str) -> bool:
        """Mark the account verified and delete its token, if the token matches and is unexpired.

        Returns False (and changes nothing) for a wrong, already-used or
        expired token.
        """
        ...

    def get_pending_token_for_resend(self, email: str) -> PendingToken | None:
        """Return the account's current token metadata if the account exists and is unverified."""
        ...

    def replace_verification_token(self, email: str, token_hash: str, expires_at: datetime) -> bool:
        """Upsert the token of an unverified account.

        Returns False when no unverified account has this email (it was
        verified or swept in the meantime).
        """
        ...

    def sweep_expired_unverified(self) -> int:
        """Delete unverified accounts whose token has expired, with their tokens."""
        ...

    def ping(self) -> bool:
        ...

    def close(self) -> None:
        ...
