"""
Mock crypto backend -- a fake keyring for tests and dry runs.

Ciphertext is a JSON envelope naming its recipients with the payload
base64-encoded. Nothing here is secret. Decryption still enforces the
keyring: a caller without a matching private key is denied.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Iterable, Optional

from ..errors import AccessDeniedError, InvalidRecipientsError, NotFoundError
from .base import CryptoBackend

_MAGIC = "skpass-mock-v1"


class MockCrypto(CryptoBackend):
    """In-process keyring with configurable public and private keys.

    Args:
        private_keys: Key IDs this caller can decrypt with.
        public_keys: Extra key IDs that can be encrypted to.
            Private keys are always public keys too.
    """

    def __init__(
        self,
        private_keys: Optional[Iterable[str]] = None,
        public_keys: Optional[Iterable[str]] = None,
    ):
        self.private_keys = set(private_keys or [])
        self.public_keys = set(public_keys or []) | self.private_keys

    @property
    def name(self) -> str:
        return "mock"

    @property
    def ext(self) -> str:
        return "gpg"

    def encrypt(self, plaintext: bytes, recipients: Iterable[str]) -> bytes:
        rcpts = sorted(set(recipients))
        if not rcpts:
            raise InvalidRecipientsError("Cannot encrypt to an empty recipient set")
        unknown = [r for r in rcpts if r not in self.public_keys]
        if unknown:
            raise InvalidRecipientsError(f"Unknown recipients: {', '.join(unknown)}")
        envelope = {
            "magic": _MAGIC,
            "recipients": rcpts,
            "payload": base64.b64encode(plaintext).decode("ascii"),
        }
        return json.dumps(envelope, indent=2).encode("utf-8")

    def decrypt(self, ciphertext: bytes) -> bytes:
        envelope = self._load(ciphertext)
        if not self.private_keys & set(envelope["recipients"]):
            raise AccessDeniedError(
                "No private key available for recipients "
                + ", ".join(envelope["recipients"])
            )
        try:
            return base64.b64decode(envelope["payload"], validate=True)
        except binascii.Error as exc:
            raise AccessDeniedError(f"Corrupt mock payload: {exc}") from exc

    def recipient_ids(self, ciphertext: bytes) -> set[str]:
        return set(self._load(ciphertext)["recipients"])

    def list_private_keys(self) -> list[str]:
        return sorted(self.private_keys)

    def list_public_keys(self) -> list[str]:
        return sorted(self.public_keys)

    def export_public_key(self, key_id: str) -> bytes:
        if key_id not in self.public_keys:
            raise NotFoundError(f"Public key {key_id} not in keyring")
        return key_id.encode("utf-8")

    def import_public_key(self, public_raw: bytes, name: str = "") -> str:
        key_id = public_raw.decode("utf-8").strip()
        if not key_id:
            raise InvalidRecipientsError("Empty mock public key")
        self.public_keys.add(key_id)
        return key_id

    @staticmethod
    def _load(ciphertext: bytes) -> dict:
        try:
            envelope = json.loads(ciphertext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise AccessDeniedError(f"Not a mock ciphertext: {exc}") from exc
        if not isinstance(envelope, dict) or envelope.get("magic") != _MAGIC:
            raise AccessDeniedError("Not a mock ciphertext")
        recipients = envelope.get("recipients")
        if (
            not isinstance(recipients, list)
            or not all(isinstance(r, str) for r in recipients)
            or not isinstance(envelope.get("payload"), str)
        ):
            raise AccessDeniedError("Malformed mock ciphertext")
        return envelope
