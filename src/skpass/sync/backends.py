"""
Sync backends -- how a mount's encrypted files travel.

Each backend owns one working directory and knows how to stage,
commit, push, pull and report status for it. The store picks the
backend per mount from config.

Git:  The working directory is a git repository. Push/pull ride on
      whatever transport the remote URL uses.
Noop: Files stay local. Nothing is versioned or shared.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence

from ..errors import OperationCancelledError, SyncLocalError, SyncTransportError
from .models import MergeOutcome, MountStatus, SyncBackendType

logger = logging.getLogger("skpass.sync.backends")

DEFAULT_BRANCH = "main"
_CONFLICT_CODES = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}
_POLL_SECONDS = 0.1


class SyncBackend(ABC):
    """Abstract version-control backend for one mount."""

    def __init__(self, path: Path):
        self.path = path

    @abstractmethod
    def init(self, user_name: str = "", user_email: str = "") -> None:
        """Prepare the working directory for versioning."""

    @abstractmethod
    def stage(self, paths: Sequence[str]) -> None:
        """Stage added, changed or removed paths (relative to the mount).

        Raises:
            SyncLocalError: If the working copy rejects the change.
        """

    @abstractmethod
    def commit(self, message: str) -> Optional[str]:
        """Commit staged changes.

        Returns:
            The new revision ID, the current one if nothing was staged,
            or None for unversioned backends.
        """

    @abstractmethod
    def push(self, cancel: Optional[threading.Event] = None) -> None:
        """Publish local commits.

        Raises:
            SyncTransportError: If the remote could not be reached.
            OperationCancelledError: If ``cancel`` was set mid-flight.
        """

    @abstractmethod
    def pull(self, cancel: Optional[threading.Event] = None) -> MergeOutcome:
        """Fetch and merge remote commits.

        Raises:
            SyncTransportError: If the remote could not be reached.
            OperationCancelledError: If ``cancel`` was set mid-flight.
        """

    @abstractmethod
    def head(self) -> Optional[str]:
        """Current revision ID, or None before the first commit."""

    @abstractmethod
    def status(self) -> MountStatus:
        """Report the working copy state."""

    @abstractmethod
    def available(self) -> bool:
        """Check if this backend is currently usable."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""


class GitBackend(SyncBackend):
    """Git working copy driven through the git CLI."""

    @property
    def name(self) -> str:
        return "git"

    def _env(self) -> dict:
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env["LC_ALL"] = "C"
        return env

    def _git(self, *args: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["git", *args],
            capture_output=True, text=True, check=False,
            cwd=str(self.path), env=self._env(),
        )

    def _git_cancellable(
        self, args: Sequence[str], cancel: Optional[threading.Event]
    ) -> subprocess.CompletedProcess:
        """Run a network git command, killing it if ``cancel`` gets set."""
        cmd = ["git", *args]
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True,
            cwd=str(self.path), env=self._env(),
        )
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=_POLL_SECONDS)
                return subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    proc.kill()
                    proc.communicate()
                    logger.warning("Cancelled: %s (in %s)", " ".join(cmd), self.path)
                    raise OperationCancelledError(f"git {args[0]} cancelled")

    def _check_local(self, result: subprocess.CompletedProcess, what: str) -> str:
        if result.returncode != 0:
            raise SyncLocalError(f"git {what} failed in {self.path}: {result.stderr.strip()}")
        return result.stdout

    def init(self, user_name: str = "", user_email: str = "") -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        if not (self.path / ".git").exists():
            self._check_local(self._git("init", "-q"), "init")
            self._check_local(
                self._git("symbolic-ref", "HEAD", f"refs/heads/{DEFAULT_BRANCH}"),
                "symbolic-ref",
            )
            logger.info("Initialized git repository in %s", self.path)
        self._configure(user_name, user_email)

    def _configure(self, user_name: str, user_email: str) -> None:
        if user_name:
            self._check_local(self._git("config", "user.name", user_name), "config")
        if user_email:
            self._check_local(self._git("config", "user.email", user_email), "config")
        self._check_local(self._git("config", "commit.gpgsign", "false"), "config")

    @classmethod
    def clone(
        cls, url: str, path: Path, user_name: str = "", user_email: str = ""
    ) -> "GitBackend":
        """Clone an existing store from a remote.

        Args:
            url: Remote repository URL.
            path: Target working directory (must not exist or be empty).

        Returns:
            A GitBackend for the new working copy.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        result = subprocess.run(
            ["git", "clone", "-q", url, str(path)],
            capture_output=True, text=True, check=False,
            env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
        )
        if result.returncode != 0:
            raise SyncTransportError(f"git clone {url} failed: {result.stderr.strip()}")
        backend = cls(path)
        backend._configure(user_name, user_email)
        logger.info("Cloned %s into %s", url, path)
        return backend

    def add_remote(self, url: str, remote: str = "origin") -> None:
        self._check_local(self._git("remote", "add", remote, url), "remote add")

    def has_remote(self) -> bool:
        result = self._git("remote")
        return result.returncode == 0 and bool(result.stdout.strip())

    def head(self) -> Optional[str]:
        result = self._git("rev-parse", "HEAD")
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def branch(self) -> str:
        result = self._git("symbolic-ref", "--short", "HEAD")
        if result.returncode != 0:
            return DEFAULT_BRANCH
        return result.stdout.strip()

    def stage(self, paths: Sequence[str]) -> None:
        present = [p for p in paths if (self.path / p).exists()]
        missing = [p for p in paths if not (self.path / p).exists()]
        if present:
            self._check_local(self._git("add", "-A", "--", *present), "add")
        if missing:
            self._check_local(
                self._git("rm", "-q", "-r", "--cached", "--ignore-unmatch", "--", *missing),
                "rm",
            )

    def commit(self, message: str) -> Optional[str]:
        staged = self._git("diff", "--cached", "--quiet")
        if staged.returncode == 0 and self.head() is not None:
            logger.debug("Nothing staged in %s", self.path)
            return self.head()
        self._check_local(self._git("commit", "-q", "--allow-empty", "-m", message), "commit")
        revision = self.head()
        logger.info("Committed %s in %s: %s", (revision or "")[:10], self.path, message)
        return revision

    def push(self, cancel: Optional[threading.Event] = None) -> None:
        if not self.has_remote():
            logger.info("No remote configured for %s, skipping push", self.path)
            return
        result = self._git_cancellable(["push", "-q", "origin", f"HEAD:{self.branch()}"], cancel)
        if result.returncode != 0:
            raise SyncTransportError(f"git push failed for {self.path}: {result.stderr.strip()}")
        logger.info("Pushed %s", self.path)

    def pull(self, cancel: Optional[threading.Event] = None) -> MergeOutcome:
        if not self.has_remote():
            logger.info("No remote configured for %s, skipping pull", self.path)
            return MergeOutcome.CLEAN

        branch = self.branch()
        heads = self._git_cancellable(["ls-remote", "--heads", "origin", branch], cancel)
        if heads.returncode != 0:
            raise SyncTransportError(f"git ls-remote failed for {self.path}: {heads.stderr.strip()}")
        if not heads.stdout.strip():
            logger.info("Remote has no branch %s yet, nothing to pull", branch)
            return MergeOutcome.CLEAN

        result = self._git_cancellable(
            ["pull", "-q", "--no-rebase", "--no-edit", "origin", branch], cancel
        )
        if result.returncode == 0:
            logger.info("Pulled %s", self.path)
            return MergeOutcome.CLEAN
        if self._unmerged_paths():
            logger.warning("Pull left conflicts in %s", self.path)
            return MergeOutcome.CONFLICT
        raise SyncTransportError(f"git pull failed for {self.path}: {result.stderr.strip()}")

    def _unmerged_paths(self) -> list[str]:
        result = self._git("diff", "--name-only", "--diff-filter=U")
        return [line for line in result.stdout.splitlines() if line.strip()]

    def status(self) -> MountStatus:
        out = self._check_local(self._git("status", "--porcelain"), "status")
        lines = [line for line in out.splitlines() if line.strip()]
        if (self.path / ".git" / "MERGE_HEAD").exists() or any(
            line[:2] in _CONFLICT_CODES for line in lines
        ):
            return MountStatus.CONFLICTED
        if lines:
            return MountStatus.DIRTY
        return MountStatus.CLEAN

    def available(self) -> bool:
        return shutil.which("git") is not None and (self.path / ".git").exists()


class NoopBackend(SyncBackend):
    """Unversioned backend: files are written and that's it."""

    @property
    def name(self) -> str:
        return "noop"

    def init(self, user_name: str = "", user_email: str = "") -> None:
        self.path.mkdir(parents=True, exist_ok=True)

    def stage(self, paths: Sequence[str]) -> None:
        return None

    def commit(self, message: str) -> Optional[str]:
        return None

    def push(self, cancel: Optional[threading.Event] = None) -> None:
        return None

    def pull(self, cancel: Optional[threading.Event] = None) -> MergeOutcome:
        return MergeOutcome.CLEAN

    def head(self) -> Optional[str]:
        return None

    def status(self) -> MountStatus:
        return MountStatus.CLEAN

    def available(self) -> bool:
        return self.path.exists()


def create_backend(backend_type: SyncBackendType, path: Path) -> SyncBackend:
    """Factory function to create the appropriate backend.

    Args:
        backend_type: Configured backend type.
        path: The mount's working directory.

    Returns:
        Instantiated SyncBackend.

    Raises:
        ValueError: If backend type is not supported.
    """
    factories = {
        SyncBackendType.GIT: GitBackend,
        SyncBackendType.NOOP: NoopBackend,
    }
    factory = factories.get(SyncBackendType(backend_type))
    if not factory:
        raise ValueError(f"Unsupported backend: {backend_type}")
    return factory(path)
