"""
Operation context -- the flags every store entry point receives.

Passed explicitly instead of living in globals, so two concurrent
operations with different flags never see each other's settings.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class OperationContext:
    """Per-call settings for store operations.

    Attributes:
        always_yes: Accept every confirmation and default without asking.
        interactive: A human can answer prompts.
        terminal: Output is attached to a terminal.
        autosync: Push right after each commit.
        cancel: Set to abort a running push or pull.
    """

    always_yes: bool = False
    interactive: bool = False
    terminal: bool = False
    autosync: bool = False
    cancel: Optional[threading.Event] = None

    def with_always_yes(self, value: bool = True) -> "OperationContext":
        return replace(self, always_yes=value)

    def with_interactive(self, value: bool = True) -> "OperationContext":
        return replace(self, interactive=value)

    def with_terminal(self, value: bool = True) -> "OperationContext":
        return replace(self, terminal=value)

    def with_autosync(self, value: bool = True) -> "OperationContext":
        return replace(self, autosync=value)

    def with_cancel(self, event: threading.Event) -> "OperationContext":
        return replace(self, cancel=event)

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()
