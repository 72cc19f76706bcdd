"""Shared test fixtures for skpass."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Optional, Sequence

import pytest

from skpass.context import OperationContext
from skpass.crypto import MockCrypto
from skpass.errors import OperationCancelledError
from skpass.models import StoreConfig
from skpass.store import Store
from skpass.sync.backends import SyncBackend
from skpass.sync.models import MergeOutcome, MountStatus


class MemorySyncBackend(SyncBackend):
    """Scripted sync backend: counts revisions, fails on request.

    Set ``pull_outcome``, ``push_error``, ``pull_error`` or
    ``commit_error`` to steer the next call. With ``wait_for_cancel``
    push and pull block until the caller's cancel event fires. With
    ``push_gate`` set, push signals ``push_started`` and waits for the
    gate. ``stage_delay`` widens the window between stage and commit.
    """

    def __init__(self, path: Path):
        super().__init__(path)
        self.revision = 0
        self.staged: list[str] = []
        self.commits: list[tuple[str, list[str]]] = []
        self.pushes = 0
        self.pulls = 0
        self.conflicted = False
        self.pull_outcome = MergeOutcome.CLEAN
        self.push_error: Optional[Exception] = None
        self.pull_error: Optional[Exception] = None
        self.commit_error: Optional[Exception] = None
        self.wait_for_cancel = False
        self.stage_delay = 0.0
        self.push_gate: Optional[threading.Event] = None
        self.push_started = threading.Event()

    @property
    def name(self) -> str:
        return "memory"

    def init(self, user_name: str = "", user_email: str = "") -> None:
        self.path.mkdir(parents=True, exist_ok=True)

    def stage(self, paths: Sequence[str]) -> None:
        self.staged.extend(paths)
        if self.stage_delay:
            time.sleep(self.stage_delay)

    def commit(self, message: str) -> Optional[str]:
        if self.commit_error is not None:
            raise self.commit_error
        self.revision += 1
        self.commits.append((message, list(self.staged)))
        self.staged = []
        return self.head()

    def _block(self, cancel: Optional[threading.Event], what: str) -> None:
        if not self.wait_for_cancel:
            return
        if cancel is not None and cancel.wait(timeout=5):
            raise OperationCancelledError(f"{what} cancelled")

    def push(self, cancel: Optional[threading.Event] = None) -> None:
        self._block(cancel, "push")
        if self.push_gate is not None:
            self.push_started.set()
            self.push_gate.wait(timeout=5)
        if self.push_error is not None:
            raise self.push_error
        self.pushes += 1

    def pull(self, cancel: Optional[threading.Event] = None) -> MergeOutcome:
        self._block(cancel, "pull")
        if self.pull_error is not None:
            raise self.pull_error
        self.pulls += 1
        if self.pull_outcome == MergeOutcome.CONFLICT:
            self.conflicted = True
        return self.pull_outcome

    def head(self) -> Optional[str]:
        return f"r{self.revision}" if self.revision else None

    def status(self) -> MountStatus:
        if self.conflicted:
            return MountStatus.CONFLICTED
        return MountStatus.DIRTY if self.staged else MountStatus.CLEAN

    def available(self) -> bool:
        return True


def memory_sync_factory(backend_type, path: Path) -> MemorySyncBackend:
    return MemorySyncBackend(path)


@pytest.fixture
def tmp_home(tmp_path: Path) -> Path:
    """Provide a temporary skpass home directory."""
    home = tmp_path / ".skpass"
    home.mkdir()
    return home


@pytest.fixture
def crypto() -> MockCrypto:
    """Keyring holding private K1 and K2, public-only K3."""
    return MockCrypto(private_keys={"K1", "K2"}, public_keys={"K3"})


@pytest.fixture
def yes_ctx() -> OperationContext:
    return OperationContext(always_yes=True)


@pytest.fixture
def make_store(tmp_path: Path, crypto: MockCrypto):
    """Build an uninitialized store over the in-memory sync backend."""

    def _make(**overrides) -> Store:
        config = StoreConfig(path=tmp_path / "store", crypto="mock", **overrides)
        return Store(config, crypto=crypto, sync_factory=memory_sync_factory)

    return _make


@pytest.fixture
def store(make_store, yes_ctx: OperationContext) -> Store:
    """A root store initialized for K1 and K2."""
    s = make_store()
    s.init(yes_ctx, ["K1", "K2"])
    return s
