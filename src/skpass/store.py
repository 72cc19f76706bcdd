"""
The Store -- reads, writes and moves secrets across mounts.

This is the command center. Every operation follows the same path:

    resolve mount -> load recipients -> decrypt | encrypt + write
                  -> stage -> commit -> (autosync) push

Working-copy changes on a mount run under that mount's lock, so two
writers never interleave commits. Different mounts never share a lock.
Aggregate operations (sync_all, fsck, status) run every mount on its
own and report a result per mount instead of stopping at the first
failure.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from .config import default_home, load_config, save_config
from .context import OperationContext
from .crypto import CryptoBackend, create_crypto
from .errors import (
    ConflictError,
    InvalidPathError,
    InvalidRecipientsError,
    MountConflictError,
    NotFoundError,
    OperationAbortedError,
    OperationCancelledError,
    PartialMoveError,
    SkpassError,
    SyncTransportError,
)
from .fsutil import atomic_write, prune_empty_dirs
from .models import (
    MountConfig,
    MountResult,
    OperationResult,
    RecipientUpdate,
    ReencryptReport,
    ResultStatus,
    StoreConfig,
)
from .mounts import Mount, MountResolver, join_path, normalize_path, split_path
from .prompt import Prompter
from .recipients import PENDING_FILE, RECIPIENTS_FILE, RecipientManager
from .secret import Secret
from .sync.backends import GitBackend, SyncBackend, create_backend
from .sync.models import MergeOutcome, MountStatus, SyncBackendType, SyncDirection

logger = logging.getLogger("skpass.store")

SyncFactory = Callable[[SyncBackendType, Path], SyncBackend]
Content = Union[bytes, str, Secret]


def _to_bytes(content: Content) -> bytes:
    if isinstance(content, Secret):
        return content.to_bytes()
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


class Store:
    """A tree of encrypted secrets split across independently synced mounts.

    Args:
        config: Store configuration (root path, backends, mounts).
        crypto: Crypto backend. Built from config when omitted.
        prompter: Operator input layer.
        sync_factory: Builds a sync backend for a mount directory.
        home: Where config.yaml lives. Mount changes are saved there
            when set.
    """

    def __init__(
        self,
        config: StoreConfig,
        crypto: Optional[CryptoBackend] = None,
        prompter: Optional[Prompter] = None,
        sync_factory: Optional[SyncFactory] = None,
        home: Optional[Path] = None,
    ):
        self.config = config
        self.home = home
        self.crypto = crypto or create_crypto(config.crypto, config.keyring)
        self.prompter = prompter or Prompter()
        self._sync_factory = sync_factory or create_backend

        root_path = Path(config.path).expanduser()
        root = Mount("", root_path, self._sync_factory(config.sync, root_path))
        self.resolver = MountResolver(root)
        for prefix, mount_config in sorted(config.mounts.items()):
            self.resolver.register(prefix, self._make_mount(prefix, mount_config))
        self.recipient_manager = RecipientManager(self.crypto, self.resolver)

    @classmethod
    def open(cls, home: Optional[Path] = None, **kwargs) -> "Store":
        """Open the store configured under ``home`` (default ~/.skpass)."""
        home = (home or default_home()).expanduser()
        return cls(load_config(home), home=home, **kwargs)

    def _make_mount(self, prefix: str, mount_config: MountConfig) -> Mount:
        path = Path(mount_config.path).expanduser()
        return Mount(prefix, path, self._sync_factory(mount_config.sync, path))

    def _save_config(self) -> None:
        if self.home is not None:
            save_config(self.config, self.home)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _ensure_writable(self, mount: Mount) -> None:
        """Refuse to touch a mount with unresolved sync conflicts."""
        if mount.state == MountStatus.CONFLICTED or mount.sync.status() == MountStatus.CONFLICTED:
            mount.state = MountStatus.CONFLICTED
            raise MountConflictError(mount.prefix)

    def _write_recipients(self, mount: Mount) -> set[str]:
        recipients = self.recipient_manager.desired_recipients(mount)
        if not recipients:
            raise InvalidRecipientsError(
                f"Mount '{mount.name}' has no recipients. Initialize it first."
            )
        return recipients

    def _import_shipped(self, ctx: OperationContext, mount: Mount, recipients: Iterable[str]) -> set[str]:
        """Offer to import keys the mount ships for unknown recipients.

        Returns:
            Recipients that are still not in the keyring.
        """
        known = set(self.crypto.list_public_keys())
        missing = set()
        for rcpt in sorted(set(recipients) - known):
            shipped = self.recipient_manager.shipped_key(mount, rcpt)
            if shipped is None or not self.prompter.ask_key_import(ctx, rcpt, mount.name):
                missing.add(rcpt)
                continue
            imported = self.crypto.import_public_key(shipped)
            if imported != rcpt:
                raise InvalidRecipientsError(
                    f"Key shipped as {rcpt} in '{mount.name}' is really {imported}"
                )
            logger.info("Imported public key %s from %s", rcpt, mount.name)
        return missing

    def _check_known(self, ctx: OperationContext, mount: Mount, recipients: Iterable[str]) -> None:
        for rcpt in sorted(self._import_shipped(ctx, mount, recipients)):
            ok = self.prompter.ask_bool(
                ctx,
                f"Recipient {rcpt} is not in the keyring. Use it anyway?",
                default=False,
            )
            if not ok:
                raise InvalidRecipientsError(f"Unknown recipient: {rcpt}")

    def _commit(self, ctx: OperationContext, mount: Mount, paths: list[str], message: str) -> Optional[str]:
        """Stage and commit on ``mount``; caller holds the mount lock."""
        try:
            mount.sync.stage(paths)
            revision = mount.sync.commit(message)
        except SkpassError:
            mount.state = MountStatus.DIRTY
            raise
        mount.state = MountStatus.CLEAN
        if ctx.autosync:
            self._push(ctx, mount, revision)
        return revision

    def _push(self, ctx: OperationContext, mount: Mount, revision: Optional[str] = None) -> None:
        try:
            mount.sync.push(ctx.cancel)
        except OperationCancelledError:
            mount.state = MountStatus.DIRTY
            raise
        except SyncTransportError as exc:
            raise SyncTransportError(str(exc), revision_id=revision) from exc

    def _rel_file(self, mount: Mount, relative: str) -> str:
        return mount.entry_file(relative, self.crypto.ext).relative_to(mount.path).as_posix()

    def _resolve_entry(self, path: str) -> tuple[Mount, str]:
        mount, relative = self.resolver.resolve(path)
        if not relative:
            raise InvalidPathError(f"'{path}' names a mount, not a secret")
        return mount, relative

    # ------------------------------------------------------------------
    # Store and mount setup
    # ------------------------------------------------------------------

    def init(
        self,
        ctx: OperationContext,
        recipients: Iterable[str],
        prefix: str = "",
        remote: Optional[str] = None,
    ) -> OperationResult:
        """Initialize a mount directory: VCS, recipients, first commit.

        Args:
            ctx: Operation context.
            recipients: Initial recipient key IDs.
            prefix: Mount to initialize ("" for the root).
            remote: Optional remote URL for git-backed mounts.
        """
        mount = self.resolver.get(prefix)
        ids = set(recipients)
        if not ids:
            raise InvalidRecipientsError("A store needs at least one recipient")
        self._check_known(ctx, mount, ids)

        with mount.lock:
            mount.sync.init(self.config.git_user_name, self.config.git_user_email)
            if remote and hasattr(mount.sync, "add_remote"):
                mount.sync.add_remote(remote)
            paths = self.recipient_manager.initialize(mount, ids)
            paths += self.recipient_manager.export_public_keys(mount, ids)
            revision = self._commit(
                ctx, mount, paths, f"Initialized store for {', '.join(sorted(ids))}"
            )
        logger.info("Initialized mount %s at %s", mount.name, mount.path)
        return OperationResult(revision_id=revision, mount=mount.prefix)

    def is_initialized(self, prefix: str = "") -> bool:
        mount = self.resolver.get(prefix)
        return bool(self.recipient_manager.current_recipients(mount))

    def add_mount(
        self,
        ctx: OperationContext,
        prefix: str,
        path: Path,
        sync: Optional[SyncBackendType] = None,
        recipients: Optional[Iterable[str]] = None,
    ) -> Mount:
        """Mount a sub-store at ``prefix``.

        An uninitialized directory needs ``recipients``; an existing
        store is mounted as it is.

        Raises:
            ConflictError: If something is already mounted there.
            InvalidRecipientsError: If the directory is not a store and
                no recipients were given.
        """
        key = normalize_path(prefix)
        if not key:
            raise ConflictError("The root mount is configured, not mounted")
        if key in self.resolver:
            raise ConflictError(f"A mount is already registered at '{key}'")

        mount_config = MountConfig(path=Path(path), sync=sync or self.config.sync)
        mount = self._make_mount(key, mount_config)
        initialized = bool(self.recipient_manager.current_recipients(mount))
        if not initialized and not recipients:
            raise InvalidRecipientsError(
                f"{mount.path} is not an initialized store; recipients are required"
            )

        self.resolver.register(key, mount)
        if not initialized:
            try:
                self.init(ctx, recipients or [], prefix=key)
            except SkpassError:
                self.resolver.unregister(key)
                raise

        self.config.mounts[key] = mount_config
        self._save_config()
        return mount

    def remove_mount(self, prefix: str) -> Mount:
        """Unmount ``prefix``. Its files stay on disk."""
        mount = self.resolver.unregister(prefix)
        self.config.mounts.pop(mount.prefix, None)
        self._save_config()
        return mount

    def clone(
        self,
        ctx: OperationContext,
        url: str,
        prefix: str = "",
        path: Optional[Path] = None,
    ) -> Mount:
        """Clone an existing store from a git remote.

        With no ``prefix`` the clone becomes the root store. Otherwise it
        is cloned to ``path`` and mounted at ``prefix``. Public keys the
        store ships for unknown recipients are offered for import.

        Raises:
            ConflictError: If the target directory is not empty.
            InvalidPathError: If a mount clone has no target directory.
            SyncTransportError: If the remote cannot be cloned.
        """
        key = normalize_path(prefix)
        if key:
            if path is None:
                raise InvalidPathError(f"Cloning into mount '{key}' needs a directory")
            target = Path(path).expanduser()
        else:
            target = self.resolver.root.path
        if target.exists() and any(target.iterdir()):
            raise ConflictError(f"{target} is not empty")

        GitBackend.clone(url, target, self.config.git_user_name, self.config.git_user_email)
        if key:
            mount = self.add_mount(ctx, key, target, sync=SyncBackendType.GIT)
        else:
            mount = self.resolver.root
            self.config.sync = SyncBackendType.GIT
            mount.sync = self._sync_factory(SyncBackendType.GIT, target)
            self._save_config()

        recipients = self.recipient_manager.current_recipients(mount)
        if not recipients:
            logger.warning("Clone of %s into %s has no recipients", url, target)
        missing = self._import_shipped(ctx, mount, recipients)
        if missing:
            logger.warning(
                "No public key for %s; run 'skpass keys import' before writing to %s",
                ", ".join(sorted(missing)), mount.name,
            )
        logger.info("Cloned %s into mount %s", url, mount.name)
        return mount

    def mounts(self) -> list[Mount]:
        return self.resolver.mounts()

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def exists(self, path: str) -> bool:
        try:
            mount, relative = self._resolve_entry(path)
        except InvalidPathError:
            return False
        return mount.entry_file(relative, self.crypto.ext).exists()

    def read(self, ctx: OperationContext, path: str) -> bytes:
        """Decrypt the secret at ``path``.

        Raises:
            NotFoundError: If there is no secret at ``path``.
            AccessDeniedError: If no available key can decrypt it.
        """
        mount, relative = self._resolve_entry(path)
        entry = mount.entry_file(relative, self.crypto.ext)
        if not entry.exists():
            raise NotFoundError(f"Secret '{path}' not found")
        return self.crypto.decrypt(entry.read_bytes())

    def show(self, ctx: OperationContext, path: str) -> Secret:
        return Secret.parse(self.read(ctx, path))

    def write(self, ctx: OperationContext, path: str, content: Content) -> OperationResult:
        """Encrypt ``content`` to the owning mount's recipients and commit it.

        Raises:
            MountConflictError: If the mount has unresolved conflicts.
            InvalidRecipientsError: If the mount has no recipients.
        """
        mount, relative = self._resolve_entry(path)
        data = _to_bytes(content)
        with mount.lock:
            self._ensure_writable(mount)
            recipients = self._write_recipients(mount)
            ciphertext = self.crypto.encrypt(data, recipients)
            atomic_write(mount.entry_file(relative, self.crypto.ext), ciphertext)
            revision = self._commit(
                ctx, mount, [self._rel_file(mount, relative)], f"Save secret to {path}"
            )
        logger.info("Wrote %s (mount %s)", path, mount.name)
        return OperationResult(revision_id=revision, mount=mount.prefix)

    def delete(self, ctx: OperationContext, path: str, recursive: bool = False) -> OperationResult:
        """Remove a secret, or with ``recursive`` every secret below ``path``.

        Recursive deletes ask for confirmation. Secrets in nested mounts
        below ``path`` are left alone.
        """
        mount, relative = self.resolver.resolve(path)
        ext = self.crypto.ext
        with mount.lock:
            self._ensure_writable(mount)
            if recursive:
                names = self.recipient_manager.owned_entries(mount, under=relative)
                if not names:
                    raise NotFoundError(f"No secrets below '{path}'")
                if not self.prompter.confirm(ctx, f"Delete {len(names)} secrets below '{path}'?"):
                    raise OperationAbortedError(f"Recursive delete of '{path}' declined")
            else:
                if not relative:
                    raise InvalidPathError(f"'{path}' names a mount, not a secret")
                if not mount.entry_file(relative, ext).exists():
                    raise NotFoundError(f"Secret '{path}' not found")
                names = [relative]

            staged = []
            for name in names:
                entry = mount.entry_file(name, ext)
                entry.unlink()
                prune_empty_dirs(entry.parent, mount.path)
                staged.append(self._rel_file(mount, name))
            revision = self._commit(ctx, mount, staged, f"Remove {path} from store")
        logger.info("Removed %d secret(s) at %s (mount %s)", len(names), path, mount.name)
        return OperationResult(revision_id=revision, mount=mount.prefix)

    def _confirm_overwrite(self, ctx: OperationContext, dst: str, force: bool) -> None:
        if force or not self.exists(dst):
            return
        if not self.prompter.confirm(ctx, f"'{dst}' already exists. Overwrite it?"):
            raise OperationAbortedError(f"Not overwriting '{dst}'")

    def copy(self, ctx: OperationContext, src: str, dst: str, force: bool = False) -> OperationResult:
        """Copy a secret, re-encrypting it for the destination mount."""
        if normalize_path(src) == normalize_path(dst):
            raise InvalidPathError("Source and destination are the same")
        plaintext = self.read(ctx, src)
        self._confirm_overwrite(ctx, dst, force)
        return self.write(ctx, dst, plaintext)

    def move(self, ctx: OperationContext, src: str, dst: str, force: bool = False) -> OperationResult:
        """Move a secret, within a mount or across mounts.

        Within one mount the rename lands in a single commit or not at
        all. Across mounts the destination is written and committed
        first, then the source is removed.

        Raises:
            NotFoundError: If ``src`` does not exist.
            PartialMoveError: If the destination was written but the
                source could not be removed.
        """
        if normalize_path(src) == normalize_path(dst):
            raise InvalidPathError("Source and destination are the same")
        src_mount, src_rel = self._resolve_entry(src)
        dst_mount, dst_rel = self._resolve_entry(dst)
        ext = self.crypto.ext
        if not src_mount.entry_file(src_rel, ext).exists():
            raise NotFoundError(f"Secret '{src}' not found")

        if src_mount is not dst_mount:
            return self._move_across(ctx, src, dst, force, src_mount, dst_mount)

        mount = src_mount
        self._confirm_overwrite(ctx, dst, force)
        with mount.lock:
            self._ensure_writable(mount)
            src_file = mount.entry_file(src_rel, ext)
            dst_file = mount.entry_file(dst_rel, ext)
            previous = dst_file.read_bytes() if dst_file.exists() else None

            dst_file.parent.mkdir(parents=True, exist_ok=True)
            os.replace(src_file, dst_file)
            staged = [self._rel_file(mount, src_rel), self._rel_file(mount, dst_rel)]
            try:
                mount.sync.stage(staged)
                revision = mount.sync.commit(f"Move from {src} to {dst}")
            except SkpassError:
                self._rollback_move(mount, src_file, dst_file, previous, staged)
                raise
            mount.state = MountStatus.CLEAN
            prune_empty_dirs(src_file.parent, mount.path)
            if ctx.autosync:
                self._push(ctx, mount, revision)
        logger.info("Moved %s to %s (mount %s)", src, dst, mount.name)
        return OperationResult(revision_id=revision, mount=mount.prefix)

    def _rollback_move(
        self,
        mount: Mount,
        src_file: Path,
        dst_file: Path,
        previous: Optional[bytes],
        staged: list[str],
    ) -> None:
        os.replace(dst_file, src_file)
        if previous is not None:
            atomic_write(dst_file, previous)
        try:
            mount.sync.stage(staged)
        except SkpassError as exc:
            logger.error("Could not restage after failed move in %s: %s", mount.name, exc)
            mount.state = MountStatus.DIRTY
        logger.warning("Rolled back move %s -> %s in %s", src_file, dst_file, mount.name)

    def _move_across(
        self,
        ctx: OperationContext,
        src: str,
        dst: str,
        force: bool,
        src_mount: Mount,
        dst_mount: Mount,
    ) -> OperationResult:
        plaintext = self.read(ctx, src)
        self._confirm_overwrite(ctx, dst, force)
        # pushes wait until both sides are committed locally
        local = ctx.with_autosync(False)
        result = self.write(local, dst, plaintext)
        try:
            removed = self.delete(local, src)
        except (SkpassError, OSError) as exc:
            logger.error("Move %s -> %s left the source in place: %s", src, dst, exc)
            raise PartialMoveError(src, dst, exc) from exc
        logger.info("Moved %s to %s across mounts", src, dst)

        if ctx.autosync:
            failures = []
            for mount, revision in ((dst_mount, result.revision_id), (src_mount, removed.revision_id)):
                with mount.lock:
                    try:
                        self._push(ctx, mount, revision)
                    except SyncTransportError as exc:
                        logger.error("Push of %s after move failed: %s", mount.name, exc)
                        failures.append(exc)
            if failures:
                raise failures[0]
        return result

    def list(self, prefix: str = "") -> list[str]:
        """Every secret path in the tree, optionally below ``prefix``."""
        wanted = split_path(prefix)
        names = []
        for mount in self.resolver.mounts():
            for name in self.recipient_manager.owned_entries(mount):
                full = join_path(mount.prefix, name)
                if full in self.resolver:
                    continue  # a mount prefix, not a secret
                if split_path(full)[: len(wanted)] == wanted:
                    names.append(full)
        return sorted(names)

    # ------------------------------------------------------------------
    # Recipients
    # ------------------------------------------------------------------

    def recipients(self, prefix: str = "") -> list[str]:
        """Committed recipients of a mount."""
        mount = self.resolver.get(prefix)
        return sorted(self.recipient_manager.current_recipients(mount))

    def pending_recipients(self, prefix: str = "") -> Optional[list[str]]:
        """Desired recipients awaiting re-encryption, or None."""
        mount = self.resolver.get(prefix)
        if not self.recipient_manager.is_dirty(mount):
            return None
        return sorted(self.recipient_manager.desired_recipients(mount))

    def set_recipients(
        self,
        ctx: OperationContext,
        prefix: str,
        desired: Iterable[str],
        reencrypt: bool = True,
    ) -> RecipientUpdate:
        """Replace a mount's recipient set.

        Changes touching more than ``confirm_threshold`` entries are
        confirmed first. With ``reencrypt`` the mount is re-encrypted in
        the same commit; otherwise the change stays pending.
        """
        mount = self.resolver.get(prefix)
        ids = set(desired)
        if not ids:
            raise InvalidRecipientsError("Recipient set must not be empty")

        with mount.lock:
            self._ensure_writable(mount)
            current = self.recipient_manager.current_recipients(mount)
            target = self.recipient_manager.desired_recipients(mount)
            if ids != current or ids != target:
                self._check_known(ctx, mount, ids - current)
                count = len(self.recipient_manager.owned_entries(mount))
                if count > self.config.confirm_threshold:
                    self.prompter.confirm_recipients(ctx, mount.prefix, sorted(ids))

            diff = self.recipient_manager.set_recipients(mount, ids)
            staged = [RECIPIENTS_FILE, PENDING_FILE]
            staged += self.recipient_manager.export_public_keys(mount, ids)
            update = RecipientUpdate(diff=diff)
            message = (
                f"Change recipients for {mount.name}: "
                f"+{','.join(sorted(diff.added)) or '-'} "
                f"-{','.join(sorted(diff.removed)) or '-'}"
            )
            if reencrypt:
                update.report = self.recipient_manager.reencrypt_all(mount)
                update.revision_id = self._commit(
                    ctx, mount, staged, message
                )
            else:
                update.revision_id = self._commit(
                    ctx, mount, staged, f"{message} (pending)"
                )
        return update

    def add_recipient(
        self, ctx: OperationContext, prefix: str, key_id: str, reencrypt: bool = True
    ) -> RecipientUpdate:
        mount = self.resolver.get(prefix)
        desired = self.recipient_manager.desired_recipients(mount)
        return self.set_recipients(ctx, prefix, desired | {key_id}, reencrypt=reencrypt)

    def remove_recipient(
        self, ctx: OperationContext, prefix: str, key_id: str, reencrypt: bool = True
    ) -> RecipientUpdate:
        mount = self.resolver.get(prefix)
        desired = self.recipient_manager.desired_recipients(mount)
        if key_id not in desired:
            raise NotFoundError(f"{key_id} is not a recipient of '{mount.name}'")
        return self.set_recipients(ctx, prefix, desired - {key_id}, reencrypt=reencrypt)

    def reencrypt(self, ctx: OperationContext, prefix: str = "") -> ReencryptReport:
        """Re-encrypt out-of-sync entries of a mount and commit the result."""
        mount = self.resolver.get(prefix)
        with mount.lock:
            self._ensure_writable(mount)
            self._import_shipped(ctx, mount, self.recipient_manager.desired_recipients(mount))
            report = self.recipient_manager.reencrypt_all(mount)
            self._commit(
                ctx, mount, [RECIPIENTS_FILE, PENDING_FILE],
                f"Re-encrypted {len(report.updated)} secrets in {mount.name}",
            )
        return report

    def recipients_out_of_sync(self, path: str) -> bool:
        mount, relative = self._resolve_entry(path)
        return self.recipient_manager.recipients_out_of_sync(mount, relative)

    def fsck(self, ctx: OperationContext) -> dict[str, MountResult]:
        """Re-encrypt every mount; one result per mount."""
        results = {}
        for mount in self.resolver.mounts():
            try:
                report = self.reencrypt(ctx, mount.prefix)
            except (SkpassError, OSError) as exc:
                logger.error("fsck of %s failed: %s", mount.name, exc)
                results[mount.prefix] = MountResult(
                    status=ResultStatus.FAILED, detail=str(exc), state=mount.state
                )
                continue
            if report.ok:
                results[mount.prefix] = MountResult(
                    status=ResultStatus.OK,
                    detail=f"{len(report.updated)} re-encrypted",
                    state=mount.state,
                )
            else:
                results[mount.prefix] = MountResult(
                    status=ResultStatus.FAILED,
                    detail="could not re-encrypt: " + ", ".join(sorted(report.failed)),
                    state=mount.state,
                )
        return results

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def mount_sync(
        self,
        ctx: OperationContext,
        prefix: str = "",
        direction: SyncDirection = SyncDirection.BOTH,
    ) -> OperationResult:
        """Pull and/or push one mount.

        A pull conflict leaves the mount conflicted and skips the push.

        Raises:
            MountConflictError: On a pull conflict or an already
                conflicted mount.
            SyncTransportError: If the remote is unreachable.
            OperationCancelledError: If ``ctx.cancel`` fired; the mount
                is left dirty.
        """
        mount = self.resolver.get(prefix)
        direction = SyncDirection(direction)
        with mount.lock:
            self._ensure_writable(mount)
            if direction in (SyncDirection.PULL, SyncDirection.BOTH):
                try:
                    outcome = mount.sync.pull(ctx.cancel)
                except OperationCancelledError:
                    mount.state = MountStatus.DIRTY
                    raise
                if outcome == MergeOutcome.CONFLICT:
                    mount.state = MountStatus.CONFLICTED
                    logger.warning("Pull of %s conflicted; push skipped", mount.name)
                    raise MountConflictError(mount.prefix)
            if direction in (SyncDirection.PUSH, SyncDirection.BOTH):
                self._push(ctx, mount)
            mount.state = mount.sync.status()
            revision = mount.sync.head()
        logger.info("Synced %s (%s)", mount.name, direction.value)
        return OperationResult(revision_id=revision, status="synced", mount=mount.prefix)

    def _sync_one(self, ctx: OperationContext, mount: Mount, direction: SyncDirection) -> MountResult:
        try:
            result = self.mount_sync(ctx, mount.prefix, direction)
        except MountConflictError as exc:
            return MountResult(
                status=ResultStatus.FAILED, detail=str(exc), state=MountStatus.CONFLICTED
            )
        except (SkpassError, OSError) as exc:
            logger.error("Sync of %s failed: %s", mount.name, exc)
            return MountResult(status=ResultStatus.FAILED, detail=str(exc), state=mount.state)
        return MountResult(
            status=ResultStatus.OK, detail=result.revision_id or "", state=mount.state
        )

    def sync_all(
        self,
        ctx: OperationContext,
        direction: SyncDirection = SyncDirection.BOTH,
        workers: int = 4,
    ) -> dict[str, MountResult]:
        """Sync every mount independently.

        Returns:
            Mount prefix -> MountResult. A failed mount never stops the
            others.
        """
        mounts = self.resolver.mounts()
        with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
            futures = {
                m.prefix: pool.submit(self._sync_one, ctx, m, direction) for m in mounts
            }
            return {prefix: futures[prefix].result() for prefix in sorted(futures)}

    def mount_status(self, prefix: str = "") -> MountStatus:
        mount = self.resolver.get(prefix)
        backend_state = mount.sync.status()
        if MountStatus.CONFLICTED in (mount.state, backend_state):
            return MountStatus.CONFLICTED
        if MountStatus.DIRTY in (mount.state, backend_state):
            return MountStatus.DIRTY
        return MountStatus.CLEAN

    def status(self) -> dict[str, MountResult]:
        """Working-copy state of every mount."""
        results = {}
        for mount in self.resolver.mounts():
            try:
                state = self.mount_status(mount.prefix)
            except (SkpassError, OSError) as exc:
                results[mount.prefix] = MountResult(status=ResultStatus.FAILED, detail=str(exc))
                continue
            detail = "recipients pending" if self.recipient_manager.is_dirty(mount) else ""
            results[mount.prefix] = MountResult(status=ResultStatus.OK, detail=detail, state=state)
        return results

    def resolve_conflict(self, prefix: str = "") -> MountStatus:
        """Clear the conflicted flag once the working copy is merged.

        Raises:
            MountConflictError: If the backend still reports conflicts.
        """
        mount = self.resolver.get(prefix)
        with mount.lock:
            state = mount.sync.status()
            if state == MountStatus.CONFLICTED:
                raise MountConflictError(mount.prefix)
            mount.state = state
        logger.info("Conflict on %s resolved", mount.name)
        return state
