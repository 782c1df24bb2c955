"""
auth/passwords.py -- One-way password hashing with versioned descriptors.

Security design decisions:
  Default scheme: PBKDF2-HMAC-SHA256, 100,000 iterations, 16-byte random
       salt, 32-byte derived key. Descriptor "PBKDF2-SHA256-100000". The
       derivation is deliberately slow and is never cached.

  Descriptors: every stored hash carries the descriptor it was made with.
       verify() dispatches on it, so a new default can be introduced without
       invalidating existing rows. An unknown descriptor raises
       UnsupportedAlgorithm rather than returning False -- "wrong password"
       and "cannot evaluate this hash" must stay distinguishable.

  bcrypt: kept as a second known scheme ("BCRYPT-12") for deployments that
       prefer it. The salt column holds bcrypt's own salt string; the hash
       column holds the full bcrypt output. Passwords longer than 72 bytes are
       truncated explicitly, which is what bcrypt always did implicitly.

  Comparison: hmac.compare_digest for PBKDF2, bcrypt.checkpw for bcrypt.
       Both run in time independent of where the inputs differ.

  Timing equalization: dummy_verify() runs a full verification against a
       throwaway hash so a login for an unknown email costs the same as one
       for a known email [C1].

Rehash-on-login is NOT implemented. needs_rehash() reports whether a stored
descriptor differs from the configured default so a later migration can act
on it.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from functools import cached_property

import bcrypt

from auth.errors import ConfigurationError, InvalidInput, UnsupportedAlgorithm
from auth.models import PasswordHash

PBKDF2_SHA256 = "PBKDF2-SHA256-100000"
BCRYPT_12 = "BCRYPT-12"

_SALT_SIZE = 16
_HASH_SIZE = 32
_ITERATIONS = 100_000
_BCRYPT_ROUNDS = 12
_BCRYPT_MAX_BYTES = 72

KNOWN_ALGORITHMS = frozenset({PBKDF2_SHA256, BCRYPT_12})


def _pbkdf2(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _ITERATIONS, dklen=_HASH_SIZE)


def _bcrypt_input(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def _canonical(algorithm_id: str) -> str | None:
    for known in KNOWN_ALGORITHMS:
        if algorithm_id.upper() == known:
            return known
    return None


class PasswordHasher:
    """Hash and verify passwords.

    Usage:
        hasher = PasswordHasher()
        result = hasher.hash("Secret123!")
        hasher.verify("Secret123!", result.hash, result.salt, result.algorithm_id)  # True
    """

    def __init__(self, algorithm_id: str = PBKDF2_SHA256) -> None:
        canonical = _canonical(algorithm_id)
        if canonical is None:
            raise ConfigurationError(f"Unknown password algorithm {algorithm_id!r}.")
        self.algorithm_id = canonical

    def hash(self, password: str) -> PasswordHash:
        """Hash password with a fresh random salt under the default descriptor.

        Raises InvalidInput if password is empty. Length policy lives in the
        caller (AccountService.register).
        """
        if not password:
            raise InvalidInput("Password cannot be empty.")
        if self.algorithm_id == BCRYPT_12:
            salt = bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)
            return PasswordHash(hash=bcrypt.hashpw(_bcrypt_input(password), salt), salt=salt, algorithm_id=BCRYPT_12)
        salt = secrets.token_bytes(_SALT_SIZE)
        return PasswordHash(hash=_pbkdf2(password, salt), salt=salt, algorithm_id=PBKDF2_SHA256)

    def verify(self, password: str, expected_hash: bytes, salt: bytes, algorithm_id: str) -> bool:
        """Return True if password matches the stored hash.

        Raises UnsupportedAlgorithm for an unknown descriptor. The descriptor
        check runs before the empty-password shortcut so a bad row is reported
        no matter what the caller typed.
        """
        canonical = _canonical(algorithm_id or "")
        if canonical is None:
            raise UnsupportedAlgorithm(algorithm_id)
        if not password:
            return False
        if canonical == BCRYPT_12:
            try:
                return bcrypt.checkpw(_bcrypt_input(password), bytes(expected_hash))
            except ValueError:
                # Malformed stored hash -- cannot match anything.
                return False
        computed = _pbkdf2(password, bytes(salt))
        return hmac.compare_digest(computed, bytes(expected_hash))

    def needs_rehash(self, algorithm_id: str) -> bool:
        return _canonical(algorithm_id or "") != self.algorithm_id

    @cached_property
    def _dummies(self) -> dict[str, PasswordHash]:
        return {}

    def _dummy(self, algorithm_id: str) -> PasswordHash:
        if algorithm_id not in self._dummies:
            self._dummies[algorithm_id] = PasswordHasher(algorithm_id).hash(secrets.token_urlsafe(16))
        return self._dummies[algorithm_id]

    def dummy_verify(self, password: str, algorithm_id: str | None = None) -> None:
        """Burn one verification's worth of work. Result is discarded.

        The throwaway hash uses the configured scheme unless algorithm_id names
        another one. Rows stored under an older scheme cost what that scheme
        costs, so an unknown-email login only matches known-email logins whose
        row shares the dummy's scheme. Raises UnsupportedAlgorithm for an
        unknown descriptor.
        """
        canonical = _canonical(algorithm_id or self.algorithm_id)
        if canonical is None:
            raise UnsupportedAlgorithm(algorithm_id)
        dummy = self._dummy(canonical)
        self.verify(password or "x", dummy.hash, dummy.salt, dummy.algorithm_id)
