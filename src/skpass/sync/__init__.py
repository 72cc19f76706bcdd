"""
Store sync -- versioning and sharing a mount's encrypted files.

Every mount is its own working copy. Secrets stay encrypted in
transit and at rest; the backend only ever sees ciphertext.
"""

from .backends import GitBackend, NoopBackend, SyncBackend, create_backend
from .models import MergeOutcome, MountStatus, SyncBackendType, SyncDirection

__all__ = [
    "GitBackend",
    "MergeOutcome",
    "MountStatus",
    "NoopBackend",
    "SyncBackend",
    "SyncBackendType",
    "SyncDirection",
    "create_backend",
]
