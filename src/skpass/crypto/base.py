"""
Crypto backend contract -- what the store needs from a keyring.

The store never looks inside ciphertext. It asks the backend to
encrypt to a recipient set, decrypt, list keys, and report which
recipients a blob was encrypted to.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable


class CryptoBackend(ABC):
    """Abstract encryption backend."""

    @abstractmethod
    def encrypt(self, plaintext: bytes, recipients: Iterable[str]) -> bytes:
        """Encrypt plaintext so every recipient can decrypt it.

        Args:
            plaintext: Bytes to protect.
            recipients: Key IDs to encrypt to.

        Returns:
            Opaque ciphertext.

        Raises:
            InvalidRecipientsError: If recipients is empty or unknown.
        """

    @abstractmethod
    def decrypt(self, ciphertext: bytes) -> bytes:
        """Decrypt with any available private key.

        Raises:
            AccessDeniedError: If no private key matches.
        """

    @abstractmethod
    def recipient_ids(self, ciphertext: bytes) -> set[str]:
        """Key IDs a ciphertext was encrypted to, without decrypting it."""

    @abstractmethod
    def list_private_keys(self) -> list[str]:
        """Key IDs whose private half is available."""

    @abstractmethod
    def list_public_keys(self) -> list[str]:
        """Key IDs that can be encrypted to."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name as used in config."""

    @property
    @abstractmethod
    def ext(self) -> str:
        """File extension for encrypted artifacts (without the dot)."""

    @abstractmethod
    def export_public_key(self, key_id: str) -> bytes:
        """Serialized public key, as stored in a mount's key directory.

        Raises:
            NotFoundError: If the key is not in the keyring.
        """

    @abstractmethod
    def import_public_key(self, public_raw: bytes, name: str = "") -> str:
        """Add an exported public key to the keyring and return its ID."""
