"""
Mounts -- which store owns a secret path.

The store tree is a flat table of prefix -> Mount plus a component
trie for lookups. Resolution walks one trie node per path component,
so it costs the path depth no matter how many mounts exist.

    ""            -> ~/.skpass/store         (root)
    "work"        -> ~/src/work-secrets
    "work/infra"  -> ~/src/infra-secrets

    resolve("work/infra/db")  -> (work/infra, "db")
    resolve("work/other")     -> (work, "other")
    resolve("misc")           -> (root, "misc")
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from .errors import ConflictError, InvalidPathError, NotFoundError
from .sync.backends import SyncBackend
from .sync.models import MountStatus

logger = logging.getLogger("skpass.mounts")

ROOT_PREFIX = ""


def split_path(path: str) -> list[str]:
    """Split a logical path into components.

    Leading and trailing slashes are ignored. Empty components and
    components starting with a dot are rejected: dot files hold store
    metadata and are never entries.

    Raises:
        InvalidPathError: On a malformed path.
    """
    stripped = path.strip("/")
    if not stripped:
        return []
    parts = stripped.split("/")
    for part in parts:
        if not part or part.startswith("."):
            raise InvalidPathError(f"Invalid secret path: {path!r}")
    return parts


def normalize_path(path: str) -> str:
    return "/".join(split_path(path))


def join_path(prefix: str, relative: str) -> str:
    if not prefix:
        return relative
    if not relative:
        return prefix
    return f"{prefix}/{relative}"


class Mount:
    """A sub-tree of the store with its own directory, recipients and sync.

    Attributes:
        prefix: Normalized logical prefix ("" for the root).
        path: Directory holding the encrypted files.
        sync: The mount's version-control backend.
        lock: Serializes working-copy changes on this mount.
        state: Last state the store observed for this mount.
    """

    def __init__(self, prefix: str, path: Path, sync: SyncBackend):
        self.prefix = normalize_path(prefix)
        self.path = path
        self.sync = sync
        self.lock = threading.RLock()
        self.state = MountStatus.CLEAN

    @property
    def name(self) -> str:
        return self.prefix or "<root>"

    @property
    def is_root(self) -> bool:
        return self.prefix == ROOT_PREFIX

    def entry_file(self, relative: str, ext: str) -> Path:
        """On-disk artifact for a relative entry name."""
        parts = split_path(relative)
        if not parts:
            raise InvalidPathError(f"Empty entry name in mount '{self.name}'")
        return self.path.joinpath(*parts[:-1], f"{parts[-1]}.{ext}")

    def entries(self, ext: str, under: str = "") -> list[str]:
        """Relative names of every entry in this mount, sorted.

        Hidden files (recipient lists, temp files) and VCS metadata
        are skipped.
        """
        base = self.path.joinpath(*split_path(under))
        if not base.is_dir():
            return []
        suffix = f".{ext}"
        names = []
        for f in base.rglob(f"*{suffix}"):
            rel = f.relative_to(self.path)
            if any(part.startswith(".") for part in rel.parts) or not f.is_file():
                continue
            names.append(rel.as_posix()[: -len(suffix)])
        return sorted(names)

    def __repr__(self) -> str:
        return f"Mount({self.name!r}, path={str(self.path)!r}, sync={self.sync.name})"


class _Node:
    __slots__ = ("children", "mount")

    def __init__(self) -> None:
        self.children: dict[str, _Node] = {}
        self.mount: Optional[Mount] = None


class MountResolver:
    """Longest-prefix resolution of secret paths to mounts.

    Args:
        root: The root mount, always present.
    """

    def __init__(self, root: Mount):
        if not root.is_root:
            raise ValueError("The root mount must have an empty prefix")
        self._trie = _Node()
        self._trie.mount = root
        self._table: dict[str, Mount] = {ROOT_PREFIX: root}
        self._lock = threading.Lock()

    @property
    def root(self) -> Mount:
        return self._table[ROOT_PREFIX]

    def resolve(self, path: str) -> tuple[Mount, str]:
        """Find the mount owning ``path`` and the path relative to it.

        Args:
            path: Logical secret path.

        Returns:
            (mount, relative_path). The root mount with the full path
            when no registered prefix matches.
        """
        parts = split_path(path)
        node = self._trie
        best = node.mount
        depth = 0
        for idx, part in enumerate(parts):
            node = node.children.get(part)
            if node is None:
                break
            if node.mount is not None:
                best = node.mount
                depth = idx + 1
        return best, "/".join(parts[depth:])

    def register(self, prefix: str, mount: Mount) -> None:
        """Add a mount at ``prefix``.

        Raises:
            ConflictError: If the exact prefix is already registered.
        """
        key = normalize_path(prefix)
        with self._lock:
            if key in self._table:
                raise ConflictError(f"A mount is already registered at '{key or '<root>'}'")
            node = self._trie
            for part in split_path(key):
                node = node.children.setdefault(part, _Node())
            node.mount = mount
            self._table[key] = mount
        logger.info("Registered mount %s at %s", key, mount.path)

    def unregister(self, prefix: str) -> Mount:
        """Remove the mount at ``prefix`` and return it.

        Raises:
            NotFoundError: If nothing is mounted there.
            ConflictError: When asked to remove the root mount.
        """
        key = normalize_path(prefix)
        if key == ROOT_PREFIX:
            raise ConflictError("The root mount cannot be removed")
        with self._lock:
            mount = self._table.pop(key, None)
            if mount is None:
                raise NotFoundError(f"No mount registered at '{key}'")
            trail = [self._trie]
            for part in split_path(key):
                trail.append(trail[-1].children[part])
            trail[-1].mount = None
            # Drop trie nodes that no longer lead to a mount
            parts = split_path(key)
            for depth in range(len(parts), 0, -1):
                node = trail[depth]
                if node.mount is None and not node.children:
                    del trail[depth - 1].children[parts[depth - 1]]
                else:
                    break
        logger.info("Unregistered mount %s", key)
        return mount

    def get(self, prefix: str) -> Mount:
        key = normalize_path(prefix)
        try:
            return self._table[key]
        except KeyError:
            raise NotFoundError(f"No mount registered at '{key}'") from None

    def mounts(self) -> list[Mount]:
        """All mounts, root first, sorted by prefix."""
        return [self._table[k] for k in sorted(self._table)]

    def children_of(self, prefix: str) -> list[Mount]:
        """Mounts strictly below ``prefix``."""
        key = normalize_path(prefix)
        return [
            m for k, m in sorted(self._table.items())
            if k != key and (not key or k.startswith(key + "/"))
        ]

    def __contains__(self, prefix: str) -> bool:
        return normalize_path(prefix) in self._table

    def __len__(self) -> int:
        return len(self._table)
