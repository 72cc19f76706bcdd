"""
Recipient sets -- who each mount's secrets are encrypted to.

Each mount keeps its recipients as plain key IDs, one per line:

    <mount>/.recipients           # committed set
    <mount>/.recipients.pending   # desired set awaiting re-encryption
    <mount>/.public-keys/<id>     # exported public key of each recipient

A pending file means the mount is dirty: some entries may still be
readable by a removed recipient. New writes already use the desired
set; a re-encryption pass brings old entries in line and promotes the
pending set once every entry succeeded.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .crypto.base import CryptoBackend
from .errors import InvalidRecipientsError, NotFoundError, SkpassError
from .fsutil import atomic_write, read_id_file, write_id_file
from .models import RecipientDiff, ReencryptReport
from .mounts import Mount, MountResolver, join_path

logger = logging.getLogger("skpass.recipients")

RECIPIENTS_FILE = ".recipients"
PENDING_FILE = ".recipients.pending"
KEYS_DIR = ".public-keys"


def _validate(recipients: Iterable[str]) -> set[str]:
    ids = {r.strip() for r in recipients}
    if not ids:
        raise InvalidRecipientsError("Recipient set must not be empty")
    bad = [r for r in ids if not r or any(c.isspace() for c in r) or "#" in r or "/" in r]
    if bad:
        raise InvalidRecipientsError(f"Malformed recipient IDs: {bad}")
    return ids


class RecipientManager:
    """Tracks and enforces per-mount recipient sets.

    Args:
        crypto: Backend that reads and rewrites entry ciphertext.
        resolver: Mount table. Entries that live inside a mount's
            directory but belong to a nested mount are left alone.
    """

    def __init__(self, crypto: CryptoBackend, resolver: Optional[MountResolver] = None):
        self.crypto = crypto
        self.resolver = resolver

    def owned_entries(self, mount: Mount, under: str = "") -> list[str]:
        """Entry names of ``mount`` that no nested mount shadows."""
        names = mount.entries(self.crypto.ext, under=under)
        if self.resolver is None:
            return names
        nested = [m.prefix for m in self.resolver.children_of(mount.prefix)]
        if not nested:
            return names
        return [
            n for n in names
            if not any(join_path(mount.prefix, n).startswith(p + "/") for p in nested)
        ]

    def current_recipients(self, mount: Mount) -> set[str]:
        """The last committed recipient set."""
        return read_id_file(mount.path / RECIPIENTS_FILE)

    def desired_recipients(self, mount: Mount) -> set[str]:
        """The set new ciphertext must be encrypted to."""
        pending = mount.path / PENDING_FILE
        if pending.exists():
            return read_id_file(pending)
        return self.current_recipients(mount)

    def is_dirty(self, mount: Mount) -> bool:
        return (mount.path / PENDING_FILE).exists()

    def export_public_keys(self, mount: Mount, recipients: Iterable[str]) -> list[str]:
        """Ship the public key of every known recipient inside the mount.

        Keys missing from the local keyring are skipped. Returns the
        paths (relative to the mount) to stage.
        """
        staged = []
        for key_id in sorted(set(recipients)):
            try:
                data = self.crypto.export_public_key(key_id)
            except NotFoundError:
                logger.debug("No public key for %s to export into %s", key_id, mount.name)
                continue
            target = mount.path / KEYS_DIR / key_id
            if target.exists() and target.read_bytes() == data:
                continue
            atomic_write(target, data)
            staged.append(f"{KEYS_DIR}/{key_id}")
        return staged

    def shipped_key(self, mount: Mount, key_id: str) -> Optional[bytes]:
        """Public key for ``key_id`` exported into the mount, if any."""
        path = mount.path / KEYS_DIR / key_id
        if "/" in key_id or not path.is_file():
            return None
        return path.read_bytes()

    def initialize(self, mount: Mount, recipients: Iterable[str]) -> list[str]:
        """Write the first recipient list for a new mount.

        Returns:
            Paths (relative to the mount) to stage.
        """
        ids = _validate(recipients)
        with mount.lock:
            write_id_file(mount.path / RECIPIENTS_FILE, ids)
            (mount.path / PENDING_FILE).unlink(missing_ok=True)
        logger.info("Initialized recipients for %s: %s", mount.name, sorted(ids))
        return [RECIPIENTS_FILE, PENDING_FILE]

    def set_recipients(self, mount: Mount, desired: Iterable[str]) -> RecipientDiff:
        """Record a new desired recipient set. Does not re-encrypt.

        Args:
            mount: Target mount.
            desired: The complete new set.

        Returns:
            Keys added and removed relative to the committed set.

        Raises:
            InvalidRecipientsError: If the set is empty or malformed.
        """
        ids = _validate(desired)
        with mount.lock:
            current = self.current_recipients(mount)
            diff = RecipientDiff(added=ids - current, removed=current - ids)
            pending = mount.path / PENDING_FILE
            if diff.changed:
                write_id_file(pending, ids)
                logger.info(
                    "Recipients for %s pending: +%s -%s",
                    mount.name, sorted(diff.added), sorted(diff.removed),
                )
            else:
                pending.unlink(missing_ok=True)
        return diff

    def recipients_out_of_sync(self, mount: Mount, entry: str) -> bool:
        """True if an entry's ciphertext recipients differ from the desired set.

        Raises:
            NotFoundError: If the entry does not exist.
        """
        path = mount.entry_file(entry, self.crypto.ext)
        if not path.exists():
            raise NotFoundError(f"Entry '{entry}' not found in mount '{mount.name}'")
        actual = self.crypto.recipient_ids(path.read_bytes())
        return actual != self.desired_recipients(mount)

    def reencrypt_all(self, mount: Mount) -> ReencryptReport:
        """Re-encrypt every out-of-sync entry to the desired set and stage it.

        One bad entry never stops the pass. Each entry is replaced
        atomically, so an interrupted pass leaves either the old or the
        new ciphertext on disk. The pending set is promoted only when
        every entry succeeded.

        Returns:
            ReencryptReport with updated names and per-entry failures.
        """
        report = ReencryptReport()
        ext = self.crypto.ext
        with mount.lock:
            desired = _validate(self.desired_recipients(mount))
            staged: list[str] = []

            for name in self.owned_entries(mount):
                path = mount.entry_file(name, ext)
                try:
                    ciphertext = path.read_bytes()
                    if self.crypto.recipient_ids(ciphertext) == desired:
                        continue
                    plaintext = self.crypto.decrypt(ciphertext)
                    atomic_write(path, self.crypto.encrypt(plaintext, desired))
                except (SkpassError, OSError, ValueError) as exc:
                    logger.warning("Re-encryption of %s in %s failed: %s", name, mount.name, exc)
                    report.failed[name] = str(exc)
                    continue
                logger.debug("Re-encrypted %s in %s", name, mount.name)
                report.updated.append(name)
                staged.append(path.relative_to(mount.path).as_posix())

            if not report.failed and self.is_dirty(mount):
                write_id_file(mount.path / RECIPIENTS_FILE, desired)
                (mount.path / PENDING_FILE).unlink()
                staged.extend([RECIPIENTS_FILE, PENDING_FILE])
                logger.info("Recipients for %s committed: %s", mount.name, sorted(desired))

            if staged:
                mount.sync.stage(staged)

        logger.info(
            "Re-encryption of %s: %d updated, %d failed",
            mount.name, len(report.updated), len(report.failed),
        )
        return report
