"""
Error types raised by the store, its backends, and the prompt layer.

Everything derives from SkpassError so callers can catch the whole
family. Batch operations record these per item instead of raising.
"""

from __future__ import annotations

from typing import Optional


class SkpassError(Exception):
    """Base class for all skpass errors."""


class NotFoundError(SkpassError, KeyError):
    """No mount or entry exists at the requested path."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class ConflictError(SkpassError):
    """A mount is already registered at that prefix."""


class InvalidPathError(SkpassError, ValueError):
    """A logical path contains empty, '.' or '..' components."""


class AccessDeniedError(SkpassError):
    """Ciphertext is not decryptable with any available private key."""


class InvalidRecipientsError(SkpassError, ValueError):
    """A recipient set is empty or contains unusable key IDs."""


class MountConflictError(SkpassError):
    """The sync backend reports an unresolved merge conflict."""

    def __init__(self, mount: str, message: str = ""):
        self.mount = mount
        super().__init__(
            message or f"Mount '{mount or '<root>'}' has unresolved sync conflicts"
        )


class PartialMoveError(SkpassError):
    """A cross-mount move wrote the destination but kept the source.

    The secret now exists twice. Nothing was lost.
    """

    def __init__(self, src: str, dst: str, cause: BaseException):
        self.src = src
        self.dst = dst
        self.cause = cause
        super().__init__(
            f"Moved {src} to {dst} but failed to remove the source: {cause}"
        )


class NonInteractiveInputRequiredError(SkpassError):
    """A prompt needs an answer but there is nobody to ask."""

    def __init__(self, prompt: str):
        self.prompt = prompt
        super().__init__(f"Input required but running non-interactively: {prompt}")


class SyncTransportError(SkpassError):
    """Push or pull failed talking to the remote."""

    def __init__(self, message: str, revision_id: Optional[str] = None):
        self.revision_id = revision_id
        super().__init__(message)


class SyncLocalError(SkpassError):
    """A local git operation on the working copy failed."""


class OperationCancelledError(SkpassError):
    """A long-running push or pull was cancelled by the caller."""


class OperationAbortedError(SkpassError):
    """The operator declined a confirmation prompt."""
