"""
Filesystem helpers -- atomic writes and recipient list files.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable


def atomic_write(path: Path, data: bytes) -> Path:
    """Write bytes to ``path`` so readers see the old or the new content.

    Atomic write using tmp + rename pattern. The temp file lives next
    to the target so the rename never crosses filesystems.

    Args:
        path: Final location.
        data: Bytes to write.

    Returns:
        The final path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return path


def read_id_file(path: Path) -> set[str]:
    """Read a one-ID-per-line file, ignoring blanks and # comments."""
    if not path.exists():
        return set()
    ids = set()
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            ids.add(line)
    return ids


def write_id_file(path: Path, ids: Iterable[str]) -> Path:
    """Atomically write a sorted one-ID-per-line file."""
    content = "".join(f"{i}\n" for i in sorted(set(ids)))
    return atomic_write(path, content.encode("utf-8"))


def prune_empty_dirs(start: Path, stop: Path) -> None:
    """Remove empty directories from ``start`` upwards, never past ``stop``."""
    current = start
    while current != stop and stop in current.parents:
        try:
            current.rmdir()
        except OSError:
            return
        current = current.parent
