"""
XC crypto backend -- X25519 hybrid encryption over a local keyring.

Each secret gets a fresh Fernet data key. The data key is wrapped once
per recipient: an ephemeral X25519 exchange with the recipient's public
key, HKDF-SHA256 to derive a wrapping key, Fernet to seal the data key.

Keyring layout:
    <keyring>/
    ├── <key_id>.pub     # JSON: name + base64 raw public key
    └── <key_id>.key     # base64 raw private key (mode 0600)

Ciphertext layout (JSON):
    {"version": 1,
     "recipients": [{"id": ..., "epk": ..., "wrapped": ...}, ...],
     "body": <Fernet token>}
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..errors import AccessDeniedError, InvalidRecipientsError, NotFoundError
from .base import CryptoBackend

logger = logging.getLogger("skpass.crypto.xc")

_VERSION = 1
_INFO = b"skpass:xc:v1:wrap"


def _raw_public(key: X25519PublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _raw_private(key: X25519PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def key_id_for(public_raw: bytes) -> str:
    """Fingerprint-style key ID: upper-case SHA-256 prefix of the public key."""
    return hashlib.sha256(public_raw).hexdigest()[:40].upper()


def _wrap_key(shared: bytes, epk: bytes, recipient_pub: bytes) -> Fernet:
    """Derive the Fernet key that wraps a data key for one recipient."""
    hkdf = HKDF(
        algorithm=SHA256(),
        length=32,
        salt=None,
        info=_INFO + epk + recipient_pub,
    )
    return Fernet(base64.urlsafe_b64encode(hkdf.derive(shared)))


class XCCrypto(CryptoBackend):
    """X25519 keyring backed by a directory of key files.

    Args:
        keyring_dir: Directory holding ``.pub`` and ``.key`` files.
    """

    def __init__(self, keyring_dir: Path):
        self.keyring_dir = keyring_dir.expanduser()
        self.keyring_dir.mkdir(parents=True, exist_ok=True)

    @property
    def name(self) -> str:
        return "xc"

    @property
    def ext(self) -> str:
        return "xc"

    # ------------------------------------------------------------------
    # Keyring
    # ------------------------------------------------------------------

    def generate_key(self, name: str = "") -> str:
        """Create a new keypair in the keyring.

        Args:
            name: Human-readable label stored with the public key.

        Returns:
            The new key ID.
        """
        private = X25519PrivateKey.generate()
        public_raw = _raw_public(private.public_key())
        kid = key_id_for(public_raw)

        self.import_public_key(public_raw, name=name)
        key_file = self.keyring_dir / f"{kid}.key"
        key_file.write_text(
            base64.b64encode(_raw_private(private)).decode("ascii") + "\n",
            encoding="utf-8",
        )
        os.chmod(key_file, 0o600)

        logger.info("Generated key %s (%s)", kid, name or "unnamed")
        return kid

    def import_public_key(self, public_raw: bytes, name: str = "") -> str:
        """Add someone's public key so secrets can be encrypted to them."""
        if len(public_raw) != 32:
            raise InvalidRecipientsError("X25519 public keys are 32 bytes")
        kid = key_id_for(public_raw)
        (self.keyring_dir / f"{kid}.pub").write_text(
            json.dumps({
                "name": name,
                "public_key": base64.b64encode(public_raw).decode("ascii"),
            }, indent=2),
            encoding="utf-8",
        )
        return kid

    def export_public_key(self, key_id: str) -> bytes:
        return self._public_raw(key_id)

    def key_name(self, key_id: str) -> str:
        pub_file = self.keyring_dir / f"{key_id}.pub"
        if not pub_file.exists():
            return ""
        return json.loads(pub_file.read_text(encoding="utf-8")).get("name", "")

    def list_public_keys(self) -> list[str]:
        return sorted(p.stem for p in self.keyring_dir.glob("*.pub"))

    def list_private_keys(self) -> list[str]:
        return sorted(p.stem for p in self.keyring_dir.glob("*.key"))

    def _public_raw(self, key_id: str) -> bytes:
        pub_file = self.keyring_dir / f"{key_id}.pub"
        if not pub_file.exists():
            raise NotFoundError(f"Public key {key_id} not in keyring")
        data = json.loads(pub_file.read_text(encoding="utf-8"))
        return base64.b64decode(data["public_key"])

    def _private(self, key_id: str) -> Optional[X25519PrivateKey]:
        key_file = self.keyring_dir / f"{key_id}.key"
        if not key_file.exists():
            return None
        raw = base64.b64decode(key_file.read_text(encoding="utf-8").strip())
        return X25519PrivateKey.from_private_bytes(raw)

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: bytes, recipients: Iterable[str]) -> bytes:
        rcpts = sorted(set(recipients))
        if not rcpts:
            raise InvalidRecipientsError("Cannot encrypt to an empty recipient set")

        data_key = Fernet.generate_key()
        wrapped = []
        for kid in rcpts:
            try:
                recipient_pub = self._public_raw(kid)
            except NotFoundError as exc:
                raise InvalidRecipientsError(str(exc)) from exc

            ephemeral = X25519PrivateKey.generate()
            epk = _raw_public(ephemeral.public_key())
            shared = ephemeral.exchange(X25519PublicKey.from_public_bytes(recipient_pub))
            wrapped.append({
                "id": kid,
                "epk": base64.b64encode(epk).decode("ascii"),
                "wrapped": _wrap_key(shared, epk, recipient_pub)
                .encrypt(data_key)
                .decode("ascii"),
            })

        envelope = {
            "version": _VERSION,
            "recipients": wrapped,
            "body": Fernet(data_key).encrypt(plaintext).decode("ascii"),
        }
        return json.dumps(envelope, indent=2).encode("utf-8")

    def decrypt(self, ciphertext: bytes) -> bytes:
        envelope = self._load(ciphertext)
        for entry in envelope["recipients"]:
            private = self._private(entry["id"])
            if private is None:
                continue
            try:
                epk = base64.b64decode(entry["epk"], validate=True)
                peer = X25519PublicKey.from_public_bytes(epk)
            except ValueError as exc:
                raise AccessDeniedError(
                    f"Corrupt key slot for {entry['id']}: {exc}"
                ) from exc
            recipient_pub = _raw_public(private.public_key())
            shared = private.exchange(peer)
            try:
                data_key = _wrap_key(shared, epk, recipient_pub).decrypt(
                    entry["wrapped"].encode("ascii")
                )
                return Fernet(data_key).decrypt(envelope["body"].encode("ascii"))
            except InvalidToken:
                logger.warning("Key %s failed to unwrap its slot", entry["id"])
                continue

        raise AccessDeniedError(
            "None of the recipients ("
            + ", ".join(e["id"] for e in envelope["recipients"])
            + ") has a private key in "
            + str(self.keyring_dir)
        )

    def recipient_ids(self, ciphertext: bytes) -> set[str]:
        return {e["id"] for e in self._load(ciphertext)["recipients"]}

    @staticmethod
    def _load(ciphertext: bytes) -> dict:
        try:
            envelope = json.loads(ciphertext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise AccessDeniedError(f"Malformed xc ciphertext: {exc}") from exc
        if not isinstance(envelope, dict) or envelope.get("version") != _VERSION:
            raise AccessDeniedError("Unsupported xc ciphertext version")
        slots = envelope.get("recipients")
        if not isinstance(slots, list) or not isinstance(envelope.get("body"), str):
            raise AccessDeniedError("Malformed xc ciphertext")
        for slot in slots:
            if not isinstance(slot, dict) or not all(
                isinstance(slot.get(field), str) for field in ("id", "epk", "wrapped")
            ):
                raise AccessDeniedError("Malformed xc key slot")
        return envelope
