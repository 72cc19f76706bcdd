"""Shared utilities for all CLI command modules.

Provides the Rich console instance, the --home/--yes options,
and helpers to open the store and build an operation context.
"""

from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path

import click
from rich.console import Console

from .. import SKPASS_HOME
from ..context import OperationContext
from ..errors import SkpassError
from ..models import ResultStatus
from ..store import Store
from ..sync.models import MountStatus

console = Console()
logger = logging.getLogger("skpass.cli")

home_option = click.option(
    "--home", default=SKPASS_HOME, type=click.Path(), help="skpass home directory."
)
yes_option = click.option(
    "--yes", "-y", "always_yes", is_flag=True, help="Answer yes to every prompt."
)


def open_store(home: str) -> Store:
    return Store.open(Path(home).expanduser())


def make_context(always_yes: bool = False, autosync: bool = False) -> OperationContext:
    """Build the operation context for this CLI invocation."""
    return OperationContext(
        always_yes=always_yes,
        interactive=sys.stdin.isatty(),
        terminal=sys.stdout.isatty(),
        autosync=autosync,
    )


def handle_errors(func):
    """Turn store errors into a red message and exit code 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SkpassError as exc:
            logger.debug("Command failed", exc_info=True)
            console.print(f"\n  [red]Error:[/] {exc}\n")
            sys.exit(1)

    return wrapper


def mount_label(prefix: str) -> str:
    return prefix or "<root>"


def result_icon(status: ResultStatus) -> str:
    return {
        ResultStatus.OK: "[bold green]OK[/]",
        ResultStatus.FAILED: "[bold red]FAILED[/]",
    }.get(status, "[dim]UNKNOWN[/]")


def state_icon(state) -> str:
    return {
        MountStatus.CLEAN: "[green]clean[/]",
        MountStatus.DIRTY: "[yellow]dirty[/]",
        MountStatus.CONFLICTED: "[bold red]conflicted[/]",
    }.get(state, "[dim]-[/]")
