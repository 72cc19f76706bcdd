"""
Pydantic data models for skpass.

Configuration, operation results, and recipient bookkeeping.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .sync.models import MountStatus, SyncBackendType


class ResultStatus(str, Enum):
    """Outcome of an operation against a single mount."""

    OK = "ok"
    FAILED = "failed"


class MountConfig(BaseModel):
    """Configuration for a mounted sub-store."""

    path: Path
    sync: SyncBackendType = SyncBackendType.GIT


class StoreConfig(BaseModel):
    """Complete store configuration, persisted as config.yaml."""

    path: Path = Path("~/.skpass/store")
    crypto: str = "xc"
    keyring: Optional[Path] = None
    sync: SyncBackendType = SyncBackendType.GIT
    autosync: bool = False
    confirm_threshold: int = Field(
        default=0,
        ge=0,
        description="Recipient changes touching more entries than this need confirmation",
    )
    git_user_name: str = "skpass"
    git_user_email: str = "skpass@localhost"
    mounts: dict[str, MountConfig] = Field(default_factory=dict)


class OperationResult(BaseModel):
    """Result of a committed single-mount operation."""

    revision_id: Optional[str] = None
    status: str = "committed"
    mount: str = ""


class MountResult(BaseModel):
    """Per-mount entry in the result of an aggregate operation."""

    status: ResultStatus
    detail: str = ""
    state: Optional[MountStatus] = None


class RecipientDiff(BaseModel):
    """Difference between a mount's old and new recipient sets."""

    added: set[str] = Field(default_factory=set)
    removed: set[str] = Field(default_factory=set)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class ReencryptReport(BaseModel):
    """What a re-encryption pass touched.

    ``failed`` maps the relative entry name to the error message.
    """

    updated: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class RecipientUpdate(BaseModel):
    """Result of changing a mount's recipients through the store."""

    diff: RecipientDiff = Field(default_factory=RecipientDiff)
    report: Optional[ReencryptReport] = None
    revision_id: Optional[str] = None
