"""Unit tests for auth/passwords.py -- PasswordHasher.

Covers:
- hash() then verify() with the same password succeeds
- two hashes of the same password differ (fresh salt each time)
- a different password fails verification
- unknown descriptors raise UnsupportedAlgorithm, even for an empty password
- descriptor matching is case-insensitive
- empty password: hash() raises InvalidInput, verify() returns False
- bcrypt descriptor round-trips and rejects malformed stored hashes
- needs_rehash() and dummy_verify(), one cached dummy per scheme
"""

import hashlib

import pytest

from auth.errors import ConfigurationError, ErrorKind, InvalidInput, UnsupportedAlgorithm
from auth.passwords import BCRYPT_12, PBKDF2_SHA256, PasswordHasher


class TestPbkdf2:
    def test_hash_then_verify_succeeds(self, hasher):
        result = hasher.hash("Secret123!")
        assert result.algorithm_id == PBKDF2_SHA256
        assert hasher.verify("Secret123!", result.hash, result.salt, result.algorithm_id) is True

    def test_same_password_hashes_differently(self, hasher):
        first = hasher.hash("Secret123!")
        second = hasher.hash("Secret123!")
        assert first.salt != second.salt
        assert first.hash != second.hash

    def test_wrong_password_fails(self, hasher):
        result = hasher.hash("Secret123!")
        assert hasher.verify("Secret123?", result.hash, result.salt, result.algorithm_id) is False

    def test_salt_and_hash_sizes(self, hasher):
        result = hasher.hash("Secret123!")
        assert len(result.salt) == 16
        assert len(result.hash) == 32

    def test_derivation_matches_pbkdf2_hmac_sha256(self, hasher):
        """Stored hashes stay readable by any PBKDF2-HMAC-SHA256 implementation."""
        result = hasher.hash("Secret123!")
        expected = hashlib.pbkdf2_hmac("sha256", b"Secret123!", result.salt, 100_000, dklen=32)
        assert result.hash == expected

    def test_descriptor_is_case_insensitive(self, hasher):
        result = hasher.hash("Secret123!")
        assert hasher.verify("Secret123!", result.hash, result.salt, "pbkdf2-sha256-100000") is True


class TestInvalidInput:
    def test_empty_password_cannot_be_hashed(self, hasher):
        with pytest.raises(InvalidInput) as exc_info:
            hasher.hash("")
        assert exc_info.value.kind is ErrorKind.INVALID_INPUT

    def test_empty_password_never_verifies(self, hasher):
        result = hasher.hash("Secret123!")
        assert hasher.verify("", result.hash, result.salt, result.algorithm_id) is False

    def test_unknown_descriptor_raises(self, hasher):
        result = hasher.hash("Secret123!")
        with pytest.raises(UnsupportedAlgorithm) as exc_info:
            hasher.verify("Secret123!", result.hash, result.salt, "MD5")
        assert exc_info.value.algorithm_id == "MD5"
        assert exc_info.value.kind is ErrorKind.UNSUPPORTED_ALGORITHM

    def test_unknown_descriptor_raises_before_empty_password_check(self, hasher):
        with pytest.raises(UnsupportedAlgorithm):
            hasher.verify("", b"x" * 32, b"y" * 16, "SHA1-PLAIN")

    def test_unknown_default_algorithm_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            PasswordHasher("ARGON2-ID")


class TestBcrypt:
    @pytest.fixture(scope="class")
    def bcrypt_hasher(self):
        return PasswordHasher(BCRYPT_12)

    def test_round_trip(self, bcrypt_hasher):
        result = bcrypt_hasher.hash("Secret123!")
        assert result.algorithm_id == BCRYPT_12
        assert bcrypt_hasher.verify("Secret123!", result.hash, result.salt, BCRYPT_12) is True
        assert bcrypt_hasher.verify("wrong-password", result.hash, result.salt, BCRYPT_12) is False

    def test_pbkdf2_hasher_still_reads_bcrypt_rows(self, hasher, bcrypt_hasher):
        result = bcrypt_hasher.hash("Secret123!")
        assert hasher.verify("Secret123!", result.hash, result.salt, result.algorithm_id) is True

    def test_malformed_stored_hash_is_a_mismatch(self, bcrypt_hasher):
        assert bcrypt_hasher.verify("Secret123!", b"not-a-bcrypt-hash", b"", BCRYPT_12) is False


class TestRehashAndDummy:
    def test_needs_rehash(self, hasher):
        assert hasher.needs_rehash(PBKDF2_SHA256) is False
        assert hasher.needs_rehash(BCRYPT_12) is True
        assert hasher.needs_rehash("MD5") is True

    def test_dummy_verify_returns_nothing(self, hasher):
        assert hasher.dummy_verify("anything") is None
        assert hasher.dummy_verify("") is None

    def test_dummy_uses_configured_scheme(self, hasher):
        assert PasswordHasher(BCRYPT_12)._dummy(BCRYPT_12).algorithm_id == BCRYPT_12
        hasher.dummy_verify("anything")
        assert list(hasher._dummies) == [PBKDF2_SHA256]

    def test_dummy_verify_can_match_another_scheme(self):
        bcrypt_default = PasswordHasher(BCRYPT_12)
        bcrypt_default.dummy_verify("anything", PBKDF2_SHA256.lower())
        assert list(bcrypt_default._dummies) == [PBKDF2_SHA256]
        assert bcrypt_default._dummies[PBKDF2_SHA256].algorithm_id == PBKDF2_SHA256

    def test_dummy_is_built_once_per_scheme(self, hasher):
        hasher.dummy_verify("first")
        dummy = hasher._dummies[PBKDF2_SHA256]
        hasher.dummy_verify("second")
        assert hasher._dummies[PBKDF2_SHA256] is dummy

    def test_dummy_verify_rejects_unknown_scheme(self, hasher):
        with pytest.raises(UnsupportedAlgorithm):
            hasher.dummy_verify("anything", "MD5")
