"""Infrastructure services (encryption)."""

from revwave_core.infrastructure.crypto import (
    CryptoService,
    DecryptionFailed,
    EmptyInput,
    InvalidKeyError,
    VaultError,
)

__all__ = [
    "CryptoService",
    "DecryptionFailed",
    "EmptyInput",
    "InvalidKeyError",
    "VaultError",
]
