"""
Password-based encryption for backup archives.

Security Design:
    - Key derived from the user's password using PBKDF2-HMAC-SHA256
      (600,000 iterations, 256-bit key)
    - Random 128-bit salt generated per backup
    - Random 96-bit nonce generated per encryption
    - Payload sealed with AES-256-GCM; the archive header is bound as
      associated data so header edits fail authentication too
    - Salt and nonce are stored in the clear in the archive header
    - The password is never stored anywhere

Threat Model:
    - Protects against: reading a stolen or misplaced backup file, silent
      modification of the ciphertext or header
    - Does NOT protect against: weak passwords, memory inspection, or
      compromise of the running process
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from stockly.backup.errors import AuthenticationFailedError, PasswordRequiredError

# Security parameters - do not reduce these values
# OWASP 2023 recommends 600,000 iterations for PBKDF2-SHA256
PBKDF2_ITERATIONS = 600_000
KEY_LENGTH = 32  # 256 bits
SALT_LENGTH = 16  # 128 bits
NONCE_LENGTH = 12  # 96 bits, the GCM standard nonce size
TAG_LENGTH = 16  # 128-bit GCM authentication tag


class CryptoEngine:
    """
    Derives keys from passwords and seals/opens archive payloads.

    Usage:
        crypto = CryptoEngine()
        salt, nonce = crypto.new_salt(), crypto.new_nonce()
        ciphertext = crypto.encrypt(payload, "password", salt, nonce, aad=header)
        payload = crypto.decrypt(ciphertext, "password", salt, nonce, aad=header)

    Attributes:
        iterations: PBKDF2 iteration count. Archives written with a different
                    count cannot be opened, so only tests should change it.
    """

    def __init__(self, iterations: int = PBKDF2_ITERATIONS) -> None:
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self.iterations = iterations

    @staticmethod
    def new_salt() -> bytes:
        return os.urandom(SALT_LENGTH)

    @staticmethod
    def new_nonce() -> bytes:
        return os.urandom(NONCE_LENGTH)

    def derive_key(self, password: str, salt: bytes) -> bytes:
        """
        Derive an AES-256 key from a password using PBKDF2.

        Args:
            password: User password.
            salt: Per-archive random salt.

        Returns:
            32-byte key.
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self.iterations,
        )
        return kdf.derive(password.encode("utf-8"))

    def encrypt(
        self,
        plaintext: bytes,
        password: str,
        salt: bytes,
        nonce: bytes,
        aad: bytes | None = None,
    ) -> bytes:
        """Seal plaintext with AES-256-GCM. The result includes the 16-byte tag."""
        if not password:
            raise PasswordRequiredError("A password is required to encrypt a backup")
        key = self.derive_key(password, salt)
        return AESGCM(key).encrypt(nonce, plaintext, aad)

    def decrypt(
        self,
        ciphertext: bytes,
        password: str | None,
        salt: bytes,
        nonce: bytes,
        aad: bytes | None = None,
    ) -> bytes:
        """
        Open an AES-256-GCM sealed payload.

        Raises:
            PasswordRequiredError: If no password was given.
            AuthenticationFailedError: If the password is wrong or the
                ciphertext, tag or associated data were modified.
        """
        if not password:
            raise PasswordRequiredError("This backup is encrypted; a password is required")
        if len(nonce) != NONCE_LENGTH:
            raise AuthenticationFailedError(f"Invalid nonce length: {len(nonce)}")

        key = self.derive_key(password, salt)
        try:
            return AESGCM(key).decrypt(nonce, ciphertext, aad)
        except InvalidTag as e:
            raise AuthenticationFailedError(
                "Authentication failed: wrong password or the backup was modified"
            ) from e
