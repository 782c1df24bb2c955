"""
auth/tokens.py -- Bearer token issuance and validation.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (account uuid), email, uid
       (numeric account id), iat, nbf and exp. Lifetime is fixed at one hour.
       There is no server-side revocation list; validity derives solely from
       signature + expiry.

  Secret: at least 32 bytes. A shorter or missing key raises
       ConfigurationError at construction time -- the service never starts
       with a weak key and never silently skips signing [M6].

  Issuer / audience: optional. The claims are written and checked only when
       configured. Once configured they are mandatory: a token without them
       is rejected even if the signature matches.

  Skew: exp and nbf are checked with a two-minute leeway.

  Failures: validate() raises TokenExpired for an exceeded lifetime and
       TokenInvalid for everything else. Callers treat both as an
       authentication failure and never retry.

Layer rule: no imports from api/. Settings is imported for typing only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import ConfigurationError, InvalidInput, TokenExpired, TokenInvalid
from auth.models import Account, IssuedToken, TokenClaims

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("agbilling.auth.tokens")

ALGORITHM = "HS256"
TOKEN_LIFETIME = timedelta(hours=1)
CLOCK_SKEW = timedelta(minutes=2)
MIN_SECRET_BYTES = 32

_REQUIRED_CLAIMS = ("sub", "email", "uid", "iat", "exp")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Sign and validate bearer tokens with a symmetric key.

    Usage:
        issuer = TokenIssuer.from_settings(get_settings())
        issued = issuer.issue(account)
        claims = issuer.validate(issued.token)
    """

    def __init__(
        self,
        secret: str,
        issuer: str | None = None,
        audience: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret or len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ConfigurationError(f"Token signing key must be at least {MIN_SECRET_BYTES} bytes.")
        self._secret = secret
        self.issuer = issuer or None
        self.audience = audience or None
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenIssuer:
        return cls(
            settings.auth_token_signing_key,
            issuer=settings.auth_token_issuer,
            audience=settings.auth_token_audience,
        )

    def issue(self, account: Account) -> IssuedToken:
        """Sign a one-hour token for a persisted account."""
        if account.id is None or not account.uuid:
            raise InvalidInput("Cannot issue a token for an account that has not been stored.")
        now = self._clock()
        expires_at = now + TOKEN_LIFETIME
        payload: dict = {
            "sub": account.uuid,
            "email": account.email,
            "uid": account.id,
            "iat": now,
            "nbf": now,
            "exp": expires_at,
        }
        if self.issuer:
            payload["iss"] = self.issuer
        if self.audience:
            payload["aud"] = self.audience
        token = jwt.encode(payload, self._secret, algorithm=ALGORITHM)
        return IssuedToken(token=token, expires_at=expires_at)

    def validate(self, token: str) -> TokenClaims:
        """Verify signature, expiry and configured issuer/audience; return the claims."""
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "leeway": int(CLOCK_SKEW.total_seconds()),
                    # jose skips the aud/iss check when the claim is absent
                    "require_aud": self.audience is not None,
                    "require_iss": self.issuer is not None,
                },
            )
        except ExpiredSignatureError as exc:
            raise TokenExpired("Token has expired.") from exc
        except JWTError as exc:
            raise TokenInvalid("Token could not be validated.") from exc

        missing = [c for c in _REQUIRED_CLAIMS if c not in payload]
        if missing:
            logger.info("Rejected token missing claims: %s", ", ".join(missing))
            raise TokenInvalid("Token is missing required claims.")
        try:
            account_id = int(payload["uid"])
        except (TypeError, ValueError) as exc:
            raise TokenInvalid("Token carries a malformed account id.") from exc

        return TokenClaims(
            subject=str(payload["sub"]),
            email=str(payload["email"]),
            account_id=account_id,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            issuer=payload.get("iss"),
            audience=payload.get("aud"),
        )
