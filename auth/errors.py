"""
auth/errors.py -- Error taxonomy for the credential core.

Two families live here:

  ErrorKind values for expected business outcomes. EMAIL_ALREADY_EXISTS and
      INVALID_OR_EXPIRED_TOKEN are returned inside result dataclasses
      (auth/models.py), never raised. Callers branch on them directly.

  AuthError subclasses for hard failures. Each carries its ErrorKind so the
      request layer can map every failure to a response code from one table.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    EMAIL_ALREADY_EXISTS = "email_already_exists"
    INVALID_OR_EXPIRED_TOKEN = "invalid_or_expired_token"
    UNSUPPORTED_ALGORITHM = "unsupported_algorithm"
    CONFIGURATION_ERROR = "configuration_error"
    AUTHENTICATION_FAILURE = "authentication_failure"
    TRANSIENT_STORAGE_ERROR = "transient_storage_error"
    TOKEN_INVALID = "token_invalid"
    TOKEN_EXPIRED = "token_expired"


class AuthError(Exception):
    """Base class for hard failures raised by the credential core."""

    kind: ErrorKind


class InvalidInput(AuthError, ValueError):
    """Malformed or missing caller data (empty password, blank email)."""

    kind = ErrorKind.INVALID_INPUT


class UnsupportedAlgorithm(AuthError):
    """A stored password hash names a descriptor this build cannot evaluate.

    Distinct from a wrong password: the caller cannot decide anything about
    the credentials and must surface a server-side error.
    """

    kind = ErrorKind.UNSUPPORTED_ALGORITHM

    def __init__(self, algorithm_id: str) -> None:
        super().__init__(f"Unsupported password hash algorithm {algorithm_id!r}.")
        self.algorithm_id = algorithm_id


class ConfigurationError(AuthError):
    """Missing or weak signing secret, unknown configured algorithm."""

    kind = ErrorKind.CONFIGURATION_ERROR


class AuthenticationFailure(AuthError):
    """Login refused.

    Raised for an unknown email, a wrong password, an unverified account and
    an inactive account alike. The message is fixed so nothing about the
    reason leaks to the caller.
    """

    kind = ErrorKind.AUTHENTICATION_FAILURE

    def __init__(self) -> None:
        super().__init__("Invalid email or password.")


class TransientStorageError(AuthError):
    """The store timed out or was unreachable. The transaction was rolled back."""

    kind = ErrorKind.TRANSIENT_STORAGE_ERROR


class TokenInvalid(AuthError):
    """Bearer token has a bad signature, bad shape, or unexpected claims."""

    kind = ErrorKind.TOKEN_INVALID


class TokenExpired(TokenInvalid):
    """Bearer token lifetime exceeded (beyond the clock-skew allowance)."""

    kind = ErrorKind.TOKEN_EXPIRED
