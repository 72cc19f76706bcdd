"""
Crypto backends -- who can read a secret.

mock: fake keyring for tests.
xc:   X25519 + HKDF + Fernet over a local keyring directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .base import CryptoBackend
from .mock import MockCrypto
from .xc import XCCrypto


def create_crypto(name: str, keyring_dir: Optional[Path] = None) -> CryptoBackend:
    """Factory function to create the configured crypto backend.

    Args:
        name: Backend name from config ("xc" or "mock").
        keyring_dir: Keyring directory for file-backed backends.

    Returns:
        Instantiated CryptoBackend.

    Raises:
        ValueError: If the backend name is not supported.
    """
    if name == "xc":
        if keyring_dir is None:
            raise ValueError("The xc backend needs a keyring directory")
        return XCCrypto(keyring_dir)
    if name == "mock":
        return MockCrypto()
    raise ValueError(f"Unsupported crypto backend: {name}")


__all__ = ["CryptoBackend", "MockCrypto", "XCCrypto", "create_crypto"]
