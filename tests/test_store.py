"""Tests for the Store -- secrets across mounts.

Covers:
- Write/read/show/list/delete
- NotFound vs AccessDenied
- Same-mount and cross-mount move, copy
- PartialMoveError when the source cannot be removed
- Cross-mount move pushes only after both commits
- Shipped public keys offered for import
- Conflicted mounts refuse writes
- Non-interactive guard on recipient changes
- Mount add/remove and config persistence
"""

from __future__ import annotations

from pathlib import Path

import pytest

from skpass.context import OperationContext
from skpass.crypto import MockCrypto
from skpass.errors import (
    AccessDeniedError,
    ConflictError,
    InvalidPathError,
    InvalidRecipientsError,
    MountConflictError,
    NonInteractiveInputRequiredError,
    NotFoundError,
    OperationAbortedError,
    PartialMoveError,
    SyncLocalError,
    SyncTransportError,
)
from skpass.prompt import Prompter
from skpass.recipients import KEYS_DIR
from skpass.secret import Secret
from skpass.store import Store
from skpass.sync.models import MountStatus


class TestInit:
    """Store initialization."""

    def test_init_commits_recipients(self, store):
        root = store.resolver.root
        assert store.is_initialized()
        message, staged = root.sync.commits[0]
        assert message == "Initialized store for K1, K2"
        assert ".recipients" in staged

    def test_init_needs_recipients(self, make_store, yes_ctx):
        with pytest.raises(InvalidRecipientsError):
            make_store().init(yes_ctx, [])

    def test_unknown_recipient_declined_by_default(self, make_store):
        """Non-interactive: the unknown-recipient question defaults to no."""
        with pytest.raises(InvalidRecipientsError, match="K9"):
            make_store().init(OperationContext(), ["K1", "K9"])

    def test_write_before_init(self, make_store, yes_ctx):
        with pytest.raises(InvalidRecipientsError):
            make_store().write(yes_ctx, "a", "b")


class TestReadWrite:
    """Basic secret IO."""

    def test_round_trip(self, store, yes_ctx):
        result = store.write(yes_ctx, "db/password", "s3cr3t")
        assert result.revision_id == "r2"
        assert result.mount == ""
        assert store.read(yes_ctx, "db/password") == b"s3cr3t"

    def test_commit_message(self, store, yes_ctx):
        store.write(yes_ctx, "db/password", "s3cr3t")
        message, staged = store.resolver.root.sync.commits[-1]
        assert message == "Save secret to db/password"
        assert staged == ["db/password.gpg"]

    def test_show_parses_body(self, store, yes_ctx):
        store.write(yes_ctx, "web", Secret("pw", "user: alice\n"))
        secret = store.show(yes_ctx, "web")
        assert secret.password == "pw"
        assert secret.get("user") == "alice"

    def test_missing_is_not_found(self, store, yes_ctx):
        with pytest.raises(NotFoundError):
            store.read(yes_ctx, "nope")

    def test_undecryptable_is_access_denied(self, store, yes_ctx):
        """A decrypt failure is never reported as a missing entry."""
        store.write(yes_ctx, "db/password", "s3cr3t")
        stranger = Store(store.config, crypto=MockCrypto(private_keys={"K3"}, public_keys={"K1", "K2"}),
                         sync_factory=lambda t, p: store.resolver.root.sync)
        with pytest.raises(AccessDeniedError):
            stranger.read(yes_ctx, "db/password")

    def test_invalid_path(self, store, yes_ctx):
        with pytest.raises(InvalidPathError):
            store.write(yes_ctx, "a/../b", "x")

    @pytest.mark.parametrize("path", ["team/.hidden", ".git/config", ".recipients"])
    def test_hidden_names_rejected(self, store, yes_ctx, path):
        """Dot names are store metadata and never secrets."""
        with pytest.raises(InvalidPathError):
            store.write(yes_ctx, path, "x")
        assert store.list() == []

    def test_mount_prefix_is_not_a_secret(self, store, yes_ctx, tmp_path):
        store.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K1"])
        with pytest.raises(InvalidPathError):
            store.write(yes_ctx, "work", "x")

    def test_exists(self, store, yes_ctx):
        store.write(yes_ctx, "a", "1")
        assert store.exists("a")
        assert not store.exists("b")
        assert not store.exists("../x")

    def test_autosync_pushes(self, store, yes_ctx):
        store.write(yes_ctx.with_autosync(), "a", "1")
        assert store.resolver.root.sync.pushes == 1

    def test_push_failure_carries_revision(self, store, yes_ctx):
        store.resolver.root.sync.push_error = SyncTransportError("unreachable")
        with pytest.raises(SyncTransportError) as exc_info:
            store.write(yes_ctx.with_autosync(), "a", "1")
        assert exc_info.value.revision_id == "r2"
        assert store.read(yes_ctx, "a") == b"1"


class TestListDelete:
    """Listing and removal."""

    def test_list_across_mounts(self, store, yes_ctx, tmp_path):
        store.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K1"])
        store.write(yes_ctx, "misc/a", "1")
        store.write(yes_ctx, "work/db", "2")
        assert store.list() == ["misc/a", "work/db"]
        assert store.list("work") == ["work/db"]

    def test_list_hides_shadowed_root_entries(self, store, yes_ctx, tmp_path):
        store.write(yes_ctx, "work/old", "1")
        store.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K1"])
        assert store.list() == []

    def test_delete(self, store, yes_ctx):
        store.write(yes_ctx, "db/password", "1")
        store.delete(yes_ctx, "db/password")
        assert not store.exists("db/password")
        assert not (store.resolver.root.path / "db").exists()
        assert store.resolver.root.sync.commits[-1][0] == "Remove db/password from store"

    def test_delete_missing(self, store, yes_ctx):
        with pytest.raises(NotFoundError):
            store.delete(yes_ctx, "nope")

    def test_recursive_delete_confirms(self, store, yes_ctx):
        store.write(yes_ctx, "team/a", "1")
        store.write(yes_ctx, "team/b", "2")
        with pytest.raises(NonInteractiveInputRequiredError):
            store.delete(OperationContext(), "team", recursive=True)
        store.delete(yes_ctx, "team", recursive=True)
        assert store.list() == []

    def test_recursive_delete_declined(self, make_store, yes_ctx):
        from skpass.prompt import Prompter

        s = make_store()
        s.prompter = Prompter(confirm_fn=lambda *a, **kw: False)
        s.init(yes_ctx, ["K1"])
        s.write(yes_ctx, "team/a", "1")
        with pytest.raises(OperationAbortedError):
            s.delete(OperationContext(interactive=True), "team", recursive=True)
        assert s.exists("team/a")


class TestMoveCopy:
    """Move and copy, within and across mounts."""

    def test_move_same_mount(self, store, yes_ctx):
        store.write(yes_ctx, "old/name", "v")
        result = store.move(yes_ctx, "old/name", "new/name")
        assert store.read(yes_ctx, "new/name") == b"v"
        assert not store.exists("old/name")
        message, staged = store.resolver.root.sync.commits[-1]
        assert message == "Move from old/name to new/name"
        assert sorted(staged) == ["new/name.gpg", "old/name.gpg"]
        assert result.revision_id == store.resolver.root.sync.head()

    def test_move_missing_source(self, store, yes_ctx):
        with pytest.raises(NotFoundError):
            store.move(yes_ctx, "nope", "dst")

    def test_move_rolls_back_on_commit_failure(self, store, yes_ctx):
        store.write(yes_ctx, "a", "1")
        store.write(yes_ctx, "b", "2")
        store.resolver.root.sync.commit_error = SyncLocalError("index locked")
        with pytest.raises(SyncLocalError):
            store.move(yes_ctx, "a", "b", force=True)
        store.resolver.root.sync.commit_error = None
        assert store.read(yes_ctx, "a") == b"1"
        assert store.read(yes_ctx, "b") == b"2"

    def test_move_overwrite_needs_confirmation(self, store, yes_ctx):
        store.write(yes_ctx, "a", "1")
        store.write(yes_ctx, "b", "2")
        with pytest.raises(NonInteractiveInputRequiredError):
            store.move(OperationContext(), "a", "b")
        store.move(yes_ctx, "a", "b")
        assert store.read(yes_ctx, "b") == b"1"

    def test_move_across_mounts_reencrypts(self, store, yes_ctx, tmp_path):
        store.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K1"])
        store.write(yes_ctx, "db", "v")
        store.move(yes_ctx, "db", "work/db")
        assert not store.exists("db")
        ct = (tmp_path / "work" / "db.gpg").read_bytes()
        assert store.crypto.recipient_ids(ct) == {"K1"}
        assert store.read(yes_ctx, "work/db") == b"v"

    def test_partial_move(self, store, yes_ctx, tmp_path):
        store.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K1"])
        store.write(yes_ctx, "db", "v")
        store.resolver.root.sync.conflicted = True

        with pytest.raises(PartialMoveError) as exc_info:
            store.move(yes_ctx, "db", "work/db")

        assert isinstance(exc_info.value.cause, MountConflictError)
        assert store.read(yes_ctx, "db") == b"v"
        assert store.read(yes_ctx, "work/db") == b"v"

    def test_move_across_push_failure(self, store, yes_ctx, tmp_path):
        """Both sides are committed before anything is pushed."""
        work = store.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K1"])
        store.write(yes_ctx, "db", "v")
        work.sync.push_error = SyncTransportError("unreachable")

        with pytest.raises(SyncTransportError) as exc_info:
            store.move(yes_ctx.with_autosync(), "db", "work/db")

        assert exc_info.value.revision_id == work.sync.head()
        assert not store.exists("db")
        assert store.read(yes_ctx, "work/db") == b"v"
        assert store.resolver.root.sync.pushes == 1
        assert store.resolver.root.sync.commits[-1][0] == "Remove db from store"

    def test_move_across_unlink_failure(self, store, yes_ctx, tmp_path, monkeypatch):
        store.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K1"])
        store.write(yes_ctx, "db", "v")
        source = store.resolver.root.entry_file("db", "gpg")
        real_unlink = Path.unlink

        def unlink(self, *args, **kwargs):
            if self == source:
                raise PermissionError(13, "Permission denied", str(self))
            return real_unlink(self, *args, **kwargs)

        monkeypatch.setattr(Path, "unlink", unlink)
        with pytest.raises(PartialMoveError) as exc_info:
            store.move(yes_ctx.with_autosync(), "db", "work/db")
        monkeypatch.undo()

        assert isinstance(exc_info.value.cause, PermissionError)
        assert store.read(yes_ctx, "db") == b"v"
        assert store.read(yes_ctx, "work/db") == b"v"

    def test_copy_across_mounts(self, store, yes_ctx, tmp_path):
        store.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K2"])
        store.write(yes_ctx, "db", "v")
        store.copy(yes_ctx, "db", "work/db")
        assert store.read(yes_ctx, "db") == b"v"
        ct = (tmp_path / "work" / "db.gpg").read_bytes()
        assert store.crypto.recipient_ids(ct) == {"K2"}

    def test_copy_onto_itself(self, store, yes_ctx):
        store.write(yes_ctx, "a", "1")
        with pytest.raises(InvalidPathError):
            store.copy(yes_ctx, "a", "/a/")


class TestConflictedMount:
    """A conflicted mount refuses changes until resolved."""

    def test_write_blocked(self, store, yes_ctx):
        store.resolver.root.sync.conflicted = True
        with pytest.raises(MountConflictError):
            store.write(yes_ctx, "a", "1")
        assert store.mount_status("") == MountStatus.CONFLICTED

    def test_resolve_conflict(self, store, yes_ctx):
        root = store.resolver.root
        root.sync.conflicted = True
        with pytest.raises(MountConflictError):
            store.resolve_conflict("")
        root.sync.conflicted = False
        assert store.resolve_conflict("") == MountStatus.CLEAN
        store.write(yes_ctx, "a", "1")

    def test_other_mount_still_writable(self, store, yes_ctx, tmp_path):
        store.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K1"])
        store.resolver.root.sync.conflicted = True
        store.write(yes_ctx, "work/db", "1")
        assert store.read(yes_ctx, "work/db") == b"1"


class TestRecipientChanges:
    """Recipient changes through the store."""

    def test_non_interactive_guard(self, store, yes_ctx):
        store.write(yes_ctx, "a", "1")
        with pytest.raises(NonInteractiveInputRequiredError):
            store.set_recipients(OperationContext(), "", ["K1"])
        assert store.pending_recipients("") is None

    def test_threshold_skips_confirmation(self, make_store, yes_ctx):
        s = make_store(confirm_threshold=5)
        s.init(yes_ctx, ["K1", "K2"])
        s.write(yes_ctx, "a", "1")
        update = s.set_recipients(OperationContext(), "", ["K1"])
        assert update.diff.removed == {"K2"}
        assert update.report.ok

    def test_declined_confirmation_aborts(self, make_store, yes_ctx):
        from skpass.prompt import Prompter

        s = make_store()
        s.prompter = Prompter(confirm_fn=lambda *a, **kw: False)
        s.init(yes_ctx, ["K1", "K2"])
        s.write(yes_ctx, "a", "1")
        with pytest.raises(OperationAbortedError):
            s.set_recipients(OperationContext(interactive=True), "", ["K1"])
        assert s.pending_recipients("") is None

    def test_add_recipient(self, store, yes_ctx):
        store.write(yes_ctx, "a", "1")
        update = store.add_recipient(yes_ctx, "", "K3")
        assert update.diff.added == {"K3"}
        assert store.recipients("") == ["K1", "K2", "K3"]

    def test_add_unknown_recipient_needs_answer(self, store, yes_ctx):
        with pytest.raises(InvalidRecipientsError):
            store.add_recipient(yes_ctx, "", "K9")

    def test_shipped_key_imported_with_yes(self, store, yes_ctx):
        """A recipient missing locally is imported from the mount's key directory."""
        (store.resolver.root.path / KEYS_DIR / "K7").write_bytes(b"K7")
        store.add_recipient(yes_ctx, "", "K7")
        assert "K7" in store.crypto.list_public_keys()
        assert store.recipients("") == ["K1", "K2", "K7"]

    def test_shipped_key_not_imported_non_interactively(self, store, yes_ctx):
        (store.resolver.root.path / KEYS_DIR / "K7").write_bytes(b"K7")
        with pytest.raises(InvalidRecipientsError):
            store.add_recipient(OperationContext(), "", "K7")
        assert "K7" not in store.crypto.list_public_keys()

    def test_shipped_key_declined_interactively(self, store):
        (store.resolver.root.path / KEYS_DIR / "K7").write_bytes(b"K7")
        answers = []

        def confirm(prompt, default=None, err=False):
            answers.append(prompt)
            return False

        store.prompter = Prompter(confirm_fn=confirm)
        with pytest.raises(InvalidRecipientsError):
            store.add_recipient(OperationContext(interactive=True), "", "K7")
        assert "Import public key K7" in answers[0]
        assert "not in the keyring" in answers[1]

    def test_mismatched_shipped_key(self, store, yes_ctx):
        (store.resolver.root.path / KEYS_DIR / "K7").write_bytes(b"K8")
        with pytest.raises(InvalidRecipientsError, match="really K8"):
            store.add_recipient(yes_ctx, "", "K7")

    def test_reencrypt_imports_shipped_keys(self, store, yes_ctx):
        """A pending recipient shipped by another machine becomes encryptable."""
        root = store.resolver.root
        store.write(yes_ctx, "a", "1")
        (root.path / KEYS_DIR / "K7").write_bytes(b"K7")
        store.recipient_manager.set_recipients(root, ["K1", "K7"])

        report = store.reencrypt(yes_ctx, "")

        assert report.ok
        assert store.crypto.recipient_ids(root.entry_file("a", "gpg").read_bytes()) == {"K1", "K7"}

    def test_remove_recipient_not_present(self, store, yes_ctx):
        with pytest.raises(NotFoundError):
            store.remove_recipient(yes_ctx, "", "K3")

    def test_pending_without_reencrypt(self, store, yes_ctx):
        store.write(yes_ctx, "a", "1")
        store.remove_recipient(yes_ctx, "", "K2", reencrypt=False)
        assert store.pending_recipients("") == ["K1"]
        assert store.recipients("") == ["K1", "K2"]
        assert store.status()[""].detail == "recipients pending"

    def test_fsck(self, store, yes_ctx):
        store.write(yes_ctx, "a", "1")
        store.remove_recipient(yes_ctx, "", "K2", reencrypt=False)
        results = store.fsck(yes_ctx)
        assert results[""].status.value == "ok"
        assert results[""].detail == "1 re-encrypted"
        assert store.pending_recipients("") is None


class TestMountManagement:
    """Adding and removing mounts."""

    def test_add_mount_twice(self, store, yes_ctx, tmp_path):
        store.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K1"])
        with pytest.raises(ConflictError):
            store.add_mount(yes_ctx, "work/", tmp_path / "other", recipients=["K1"])

    def test_add_mount_needs_recipients(self, store, yes_ctx, tmp_path):
        with pytest.raises(InvalidRecipientsError):
            store.add_mount(yes_ctx, "work", tmp_path / "work")
        assert "work" not in store.resolver

    def test_remount_existing_store(self, store, yes_ctx, tmp_path):
        store.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K2"])
        store.write(yes_ctx, "work/db", "1")
        store.remove_mount("work")
        assert (tmp_path / "work" / "db.gpg").exists()
        store.add_mount(yes_ctx, "team", tmp_path / "work")
        assert store.recipients("team") == ["K2"]
        assert store.read(yes_ctx, "team/db") == b"1"

    def test_root_cannot_be_added_or_removed(self, store, yes_ctx, tmp_path):
        with pytest.raises(ConflictError):
            store.add_mount(yes_ctx, "", tmp_path / "x", recipients=["K1"])
        with pytest.raises(ConflictError):
            store.remove_mount("")

    def test_mounts_saved_to_config(self, tmp_home: Path, crypto, yes_ctx, tmp_path):
        from conftest import memory_sync_factory
        from skpass.config import default_config, load_config

        s = Store(default_config(tmp_home), crypto=crypto,
                  sync_factory=memory_sync_factory, home=tmp_home)
        s.init(yes_ctx, ["K1"])
        s.add_mount(yes_ctx, "work", tmp_path / "work", recipients=["K1"])

        reopened = Store.open(tmp_home, crypto=crypto, sync_factory=memory_sync_factory)
        assert [m.prefix for m in reopened.mounts()] == ["", "work"]
        assert load_config(tmp_home).mounts["work"].path == tmp_path / "work"
