"""Sync commands: sync, status, fsck, resolve."""

from __future__ import annotations

import sys

import click
from rich.table import Table

from ..models import ResultStatus
from ..sync.models import SyncDirection
from ._common import (
    console,
    handle_errors,
    home_option,
    make_context,
    mount_label,
    open_store,
    result_icon,
    state_icon,
)


def _print_results(title: str, results: dict) -> bool:
    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2), title=title)
    table.add_column("Mount", style="cyan", no_wrap=True)
    table.add_column("Result")
    table.add_column("State")
    table.add_column("Detail", style="dim")
    ok = True
    for prefix, res in results.items():
        ok = ok and res.status == ResultStatus.OK
        table.add_row(mount_label(prefix), result_icon(res.status), state_icon(res.state), res.detail)
    console.print()
    console.print(table)
    console.print()
    return ok


def register_sync_commands(main: click.Group) -> None:
    """Register the sync and mount-state commands."""

    @main.command("sync")
    @click.option("--mount", "prefix", default=None, help="Only sync this mount.")
    @click.option(
        "--direction", default=SyncDirection.BOTH.value,
        type=click.Choice([d.value for d in SyncDirection]), show_default=True,
    )
    @home_option
    @handle_errors
    def sync(prefix, direction, home):
        """Pull and push every mount (or one)."""
        store = open_store(home)
        ctx = make_context()
        if prefix is not None:
            result = store.mount_sync(ctx, prefix, SyncDirection(direction))
            console.print(f"[green]Synced[/] [cyan]{mount_label(prefix)}[/]", highlight=False)
            if result.revision_id:
                console.print(f"[dim]Revision {result.revision_id[:10]}[/]")
            return
        results = store.sync_all(ctx, SyncDirection(direction))
        if not _print_results("Sync", results):
            sys.exit(1)

    @main.command("status")
    @home_option
    @handle_errors
    def status(home):
        """Working-copy state of every mount."""
        store = open_store(home)
        if not _print_results("Status", store.status()):
            sys.exit(1)

    @main.command("fsck")
    @home_option
    @handle_errors
    def fsck(home):
        """Re-encrypt every secret whose recipients are out of date."""
        store = open_store(home)
        if not _print_results("fsck", store.fsck(make_context(autosync=store.config.autosync))):
            sys.exit(1)

    @main.command("resolve")
    @click.option("--mount", "prefix", default="", help="Mount prefix (default: root).")
    @home_option
    @handle_errors
    def resolve(prefix, home):
        """Mark a mount's merge conflict as resolved."""
        store = open_store(home)
        state = store.resolve_conflict(prefix)
        console.print(f"[green]Resolved[/] {mount_label(prefix)}: {state_icon(state)}", highlight=False)
