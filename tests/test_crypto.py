"""
Tests for password-based archive encryption.

Uses Python's unittest module. A low PBKDF2 iteration count keeps the
tests fast; the production count is checked separately.
"""

from __future__ import annotations

import unittest

from stockly.backup.crypto import (
    KEY_LENGTH,
    NONCE_LENGTH,
    PBKDF2_ITERATIONS,
    SALT_LENGTH,
    TAG_LENGTH,
    CryptoEngine,
)
from stockly.backup.errors import AuthenticationFailedError, PasswordRequiredError

TEST_ITERATIONS = 1000


class TestCryptoEngine(unittest.TestCase):
    """Tests for CryptoEngine."""

    def setUp(self) -> None:
        self.crypto = CryptoEngine(iterations=TEST_ITERATIONS)
        self.salt = self.crypto.new_salt()
        self.nonce = self.crypto.new_nonce()

    def test_default_parameters(self) -> None:
        """Test the security parameters."""
        self.assertEqual(CryptoEngine().iterations, PBKDF2_ITERATIONS)
        self.assertGreaterEqual(PBKDF2_ITERATIONS, 600_000)
        self.assertEqual(len(self.salt), SALT_LENGTH)
        self.assertEqual(len(self.nonce), NONCE_LENGTH)

    def test_invalid_iterations(self) -> None:
        """Test that non-positive iteration counts are rejected."""
        with self.assertRaises(ValueError):
            CryptoEngine(iterations=0)

    def test_salts_are_random(self) -> None:
        """Test that each salt and nonce is fresh."""
        self.assertNotEqual(self.crypto.new_salt(), self.crypto.new_salt())
        self.assertNotEqual(self.crypto.new_nonce(), self.crypto.new_nonce())

    def test_derive_key(self) -> None:
        """Test key derivation is deterministic per password and salt."""
        key = self.crypto.derive_key("secret", self.salt)

        self.assertEqual(len(key), KEY_LENGTH)
        self.assertEqual(key, self.crypto.derive_key("secret", self.salt))
        self.assertNotEqual(key, self.crypto.derive_key("Secret", self.salt))
        self.assertNotEqual(key, self.crypto.derive_key("secret", self.crypto.new_salt()))

    def test_encrypt_decrypt(self) -> None:
        """Test a round trip with the right password."""
        plaintext = b'{"clients":[]}'

        ciphertext = self.crypto.encrypt(plaintext, "secret", self.salt, self.nonce)

        self.assertEqual(len(ciphertext), len(plaintext) + TAG_LENGTH)
        self.assertNotIn(plaintext, ciphertext)
        self.assertEqual(
            self.crypto.decrypt(ciphertext, "secret", self.salt, self.nonce), plaintext
        )

    def test_wrong_password(self) -> None:
        """Test that a wrong password fails authentication."""
        ciphertext = self.crypto.encrypt(b"data", "secret", self.salt, self.nonce)

        with self.assertRaises(AuthenticationFailedError):
            self.crypto.decrypt(ciphertext, "wrong", self.salt, self.nonce)

    def test_tampered_ciphertext(self) -> None:
        """Test that a flipped ciphertext bit fails authentication."""
        ciphertext = bytearray(
            self.crypto.encrypt(b"data", "secret", self.salt, self.nonce)
        )
        ciphertext[0] ^= 0x01

        with self.assertRaises(AuthenticationFailedError):
            self.crypto.decrypt(bytes(ciphertext), "secret", self.salt, self.nonce)

    def test_associated_data_is_authenticated(self) -> None:
        """Test that changed associated data fails authentication."""
        ciphertext = self.crypto.encrypt(
            b"data", "secret", self.salt, self.nonce, aad=b"header-v1"
        )

        with self.assertRaises(AuthenticationFailedError):
            self.crypto.decrypt(ciphertext, "secret", self.salt, self.nonce, aad=b"header-v2")

    def test_missing_password(self) -> None:
        """Test that empty passwords are refused both ways."""
        with self.assertRaises(PasswordRequiredError):
            self.crypto.encrypt(b"data", "", self.salt, self.nonce)

        ciphertext = self.crypto.encrypt(b"data", "secret", self.salt, self.nonce)
        with self.assertRaises(PasswordRequiredError):
            self.crypto.decrypt(ciphertext, None, self.salt, self.nonce)

    def test_password_required_is_auth_failure(self) -> None:
        """Test the error hierarchy callers rely on."""
        self.assertTrue(issubclass(PasswordRequiredError, AuthenticationFailedError))


if __name__ == "__main__":
    unittest.main()
