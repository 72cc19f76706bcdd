"""
Sync data models -- backend types and working-copy states.
"""

from __future__ import annotations

from enum import Enum


class SyncBackendType(str, Enum):
    """Supported version-control backends."""

    GIT = "git"
    NOOP = "noop"


class SyncDirection(str, Enum):
    """Which way a mount sync moves changes."""

    PULL = "pull"
    PUSH = "push"
    BOTH = "both"


class MountStatus(str, Enum):
    """State of a mount's working copy."""

    CLEAN = "clean"
    DIRTY = "dirty"
    CONFLICTED = "conflicted"


class MergeOutcome(str, Enum):
    """Result of pulling remote changes into a working copy."""

    CLEAN = "clean"
    CONFLICT = "conflict"
