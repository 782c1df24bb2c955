"""
auth/models.py -- Domain dataclasses for credential entities and results.

Pattern: Data class (pure data container, zero logic beyond trivial
properties). Stores map rows into these; the verification manager and the
account service return the result types to their callers.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from auth.errors import ErrorKind


@dataclass
class Account:
    """A registered identity.

    id is the store-owned numeric key and never leaves the service except as
    the "uid" claim of a bearer token. uuid is the public reference used in
    verification links and API responses.

    password_hash / password_salt are raw bytes; password_algorithm is the
    descriptor produced by PasswordHasher.hash() at registration time.
    """

    email: str  # normalized (stripped, case-folded)
    password_hash: bytes
    password_salt: bytes
    password_algorithm: str
    id: int | None = None
    uuid: str | None = None
    verified_email: bool = False
    active: bool = True
    created_at: datetime | None = None


@dataclass
class VerificationToken:
    """Stored form of an email-verification token. Only the hash is kept."""

    account_id: int
    token_hash: str  # sha256 hex of the raw token
    expires_at: datetime


@dataclass(frozen=True)
class PendingToken:
    """What a resend needs to know about an unverified account."""

    account_id: int
    account_uuid: str
    email: str
    expires_at: datetime  # expiry of the token being superseded


@dataclass(frozen=True)
class PasswordHash:
    hash: bytes
    salt: bytes
    algorithm_id: str


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    token_type: str = "Bearer"


@dataclass(frozen=True)
class TokenClaims:
    subject: str  # account uuid
    email: str
    account_id: int
    issued_at: datetime
    expires_at: datetime
    issuer: str | None = None
    audience: str | None = None


# ---------------------------------------------------------------------------
# Operation results
#
# Expected business outcomes come back as values. error is None on success.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Registration:
    account: Account | None = None
    raw_token: str | None = None
    expires_at: datetime | None = None
    error: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Verification:
    account_uuid: str
    error: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Reissue:
    account_uuid: str
    email: str
    raw_token: str
    expires_at: datetime
