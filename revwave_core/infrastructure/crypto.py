"""Encryption utilities for secret storage.

Uses AES-256-GCM (authenticated encryption) with a fresh 96-bit nonce per
message. Suitable for storing OAuth access and refresh tokens.

Ciphertext format (each part base64 encoded):

    nonce:tag:ciphertext

Usage:
    key = CryptoService.generate_key()  # Store this securely in env
    crypto = CryptoService(key)

    encrypted = crypto.encrypt("my secret")
    decrypted = crypto.decrypt(encrypted)
"""

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16


class VaultError(Exception):
    """Base class for credential vault errors."""

    kind = "vault_error"


class InvalidKeyError(VaultError):
    """Raised when the master key is missing or does not decode to 32 bytes."""

    kind = "invalid_key"


class DecryptionFailed(VaultError):
    """Raised when ciphertext is malformed, tampered with, or from another key."""

    kind = "decryption_failed"


class EmptyInput(VaultError):
    """Raised when asked to encrypt or decrypt an empty string."""

    kind = "empty_input"


def _decode_key(key: str) -> bytes:
    """Decode a master key from base64, falling back to hex.

    Raises:
        InvalidKeyError: If neither encoding yields exactly 32 bytes.
    """
    try:
        decoded = base64.b64decode(key, validate=True)
        if len(decoded) == KEY_LENGTH:
            logger.info("Encryption key loaded (base64)")
            return decoded
    except (binascii.Error, ValueError):
        pass

    try:
        decoded = bytes.fromhex(key)
        if len(decoded) == KEY_LENGTH:
            logger.info("Encryption key loaded (hex)")
            return decoded
    except ValueError:
        pass

    raise InvalidKeyError(
        f"Encryption key must decode (base64 or hex) to exactly {KEY_LENGTH} bytes"
    )


class CryptoService:
    """Encryption service using AES-256-GCM.

    Every call to encrypt() draws a new random nonce, so encrypting the same
    plaintext twice yields different ciphertexts. The GCM tag authenticates
    the ciphertext: tampering or a wrong key is detected on decrypt().
    """

    def __init__(self, key: str):
        """Initialize with a master key.

        Args:
            key: A 32-byte key, base64 or hex encoded.

        Raises:
            InvalidKeyError: If the key is empty or invalid.
        """
        if not key:
            raise InvalidKeyError("Encryption key cannot be empty")

        self._aesgcm = AESGCM(_decode_key(key.strip()))

    @staticmethod
    def generate_key() -> str:
        """Generate a new master key.

        Returns:
            A base64-encoded 32-byte key.
        """
        return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext string.

        Args:
            plaintext: The string to encrypt.

        Returns:
            "nonce:tag:ciphertext", each part base64 encoded.

        Raises:
            EmptyInput: If plaintext is empty.
        """
        if not plaintext:
            raise EmptyInput("Cannot encrypt empty string")

        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

        return ":".join(
            base64.b64encode(part).decode("ascii") for part in (nonce, tag, ciphertext)
        )

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt ciphertext string.

        Args:
            ciphertext: String produced by encrypt().

        Returns:
            Decrypted plaintext string.

        Raises:
            EmptyInput: If ciphertext is empty.
            DecryptionFailed: If the input is malformed or fails authentication.
        """
        if not ciphertext:
            raise EmptyInput("Cannot decrypt empty string")

        parts = ciphertext.split(":")
        if len(parts) != 3:
            raise DecryptionFailed("Invalid ciphertext format, expected nonce:tag:ciphertext")

        try:
            nonce, tag, body = (base64.b64decode(part, validate=True) for part in parts)
        except (binascii.Error, ValueError):
            raise DecryptionFailed("Invalid ciphertext encoding")

        if len(nonce) != NONCE_LENGTH:
            raise DecryptionFailed(f"Invalid nonce length: {len(nonce)} bytes (expected {NONCE_LENGTH})")
        if len(tag) != TAG_LENGTH:
            raise DecryptionFailed(f"Invalid tag length: {len(tag)} bytes (expected {TAG_LENGTH})")

        try:
            plaintext = self._aesgcm.decrypt(nonce, body + tag, None)
        except InvalidTag:
            logger.error("Decryption failed: authentication tag mismatch")
            raise DecryptionFailed("Authentication failed (tampered data or wrong key)")

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionFailed("Decrypted payload is not valid UTF-8")

    def test_roundtrip(self, sample: str = "test-encryption-roundtrip") -> bool:
        """Check that this key can encrypt and decrypt a sample value."""
        try:
            return self.decrypt(self.encrypt(sample)) == sample
        except VaultError:
            logger.error("Encryption roundtrip test failed")
            return False
