"""
auth/verification.py -- Single-use email-verification tokens.

Security design decisions:
  Raw token: secrets.token_urlsafe(32) -- 256 bits from the OS CSPRNG,
       URL-safe base64 without padding. It is returned ONCE to the caller for
       dispatch and never persisted or logged.

  Stored form: sha256(raw).hexdigest(). A plain (unkeyed) hash is enough
       because the input already carries 256 bits of entropy; a leaked
       table cannot be brute-forced back into usable links.

  Lifetime: 24 hours from creation or from the latest reissue.

  Single use: consume() deletes the token row in the same transaction that
       flips verified_email, so a replay finds nothing to match.

  Enumeration: reissue() returns None both for an unknown email and for an
       already-verified account. Callers render one response for both.

State machine (account verification sub-state):
  PendingVerification --consume ok--> Verified (terminal)
  PendingVerification --sweep after expiry--> Deleted (terminal)
  PendingVerification --reissue--> PendingVerification (token replaced)
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import ErrorKind, InvalidInput
from auth.interfaces import CredentialStore
from auth.models import Registration, Reissue, Verification

logger = logging.getLogger("agbilling.auth.verification")

VERIFICATION_TOKEN_TTL = timedelta(hours=24)
_TOKEN_BYTES = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str | None) -> str:
    """Strip and case-fold an email address. Raises InvalidInput when it cannot be one."""
    normalized = (email or "").strip().casefold()
    if not normalized or "@" not in normalized:
        raise InvalidInput("A valid email address is required.")
    return normalized


def generate_raw() -> str:
    return secrets.token_urlsafe(_TOKEN_BYTES)


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class VerificationTokenManager:
    """Couples token generation/hashing with the store's transactional workflow.

    Holds no mutable state of its own: everything that must survive between
    calls lives in the CredentialStore.
    """

    def __init__(self, store: CredentialStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = store
        self._clock = clock

    def create_account_with_token(
        self,
        email: str,
        password_hash: bytes,
        password_salt: bytes,
        algorithm_id: str,
    ) -> Registration:
        """Insert an unverified account plus a fresh token in one transaction.

        Returns Registration(error=EMAIL_ALREADY_EXISTS) when the email is
        taken -- including when a concurrent registration won the race.
        """
        normalized = normalize_email(email)
        raw_token = generate_raw()
        expires_at = self._clock() + VERIFICATION_TOKEN_TTL
        account = self._store.create_account_with_verification_token(
            normalized,
            password_hash,
            password_salt,
            algorithm_id,
            hash_token(raw_token),
            expires_at,
        )
        if account is None:
            logger.info("Registration refused: email already exists")
            return Registration(error=ErrorKind.EMAIL_ALREADY_EXISTS)
        logger.info("Account %s created pending verification for %s", account.uuid, normalized)
        return Registration(account=account, raw_token=raw_token, expires_at=expires_at)

    def consume(self, account_uuid: str, raw_token: str) -> Verification:
        """Verify the account if raw_token matches its unexpired token.

        Wrong, already-consumed and expired tokens all produce the same
        INVALID_OR_EXPIRED_TOKEN result.
        """
        if not account_uuid or not raw_token:
            return Verification(account_uuid=account_uuid or "", error=ErrorKind.INVALID_OR_EXPIRED_TOKEN)
        if self._store.consume_verification_token(account_uuid, hash_token(raw_token)):
            logger.info("Email verified for account %s", account_uuid)
            return Verification(account_uuid=account_uuid)
        logger.info("Verification rejected for account %s", account_uuid)
        return Verification(account_uuid=account_uuid, error=ErrorKind.INVALID_OR_EXPIRED_TOKEN)

    def reissue(self, email: str) -> Reissue | None:
        """Replace the pending account's token; None is the no-op outcome.

        The lookup and the upsert are separate transactions. If the account
        is verified or swept between them, replace_verification_token()
        refuses and this still collapses into the no-op.
        """
        normalized = normalize_email(email)
        pending = self._store.get_pending_token_for_resend(normalized)
        if pending is None:
            logger.info("Resend requested for unknown or verified email; no-op")
            return None
        raw_token = generate_raw()
        expires_at = self._clock() + VERIFICATION_TOKEN_TTL
        if not self._store.replace_verification_token(normalized, hash_token(raw_token), expires_at):
            logger.info("Account %s left pending state during resend; no-op", pending.account_uuid)
            return None
        logger.info("Verification token reissued for account %s", pending.account_uuid)
        return Reissue(
            account_uuid=pending.account_uuid,
            email=pending.email,
            raw_token=raw_token,
            expires_at=expires_at,
        )
