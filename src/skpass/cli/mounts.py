"""Mount commands: list, add, remove."""

from __future__ import annotations

from pathlib import Path

import click
from rich.table import Table

from ..errors import SkpassError
from ..sync.models import SyncBackendType
from ._common import (
    console,
    handle_errors,
    home_option,
    make_context,
    mount_label,
    open_store,
    state_icon,
    yes_option,
)


def register_mount_commands(main: click.Group) -> None:
    """Register the mounts command group."""

    @main.group()
    def mounts():
        """Mounted sub-stores with their own recipients and history.

        \b
        Mount:    skpass mounts add work ~/src/work-secrets -r KEYID
        List:     skpass mounts list
        Unmount:  skpass mounts remove work
        """

    @mounts.command("list")
    @home_option
    @handle_errors
    def mounts_list(home):
        """Show every mount and where it lives."""
        store = open_store(home)
        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Mount", style="cyan", no_wrap=True)
        table.add_column("Path", style="dim", overflow="fold")
        table.add_column("Sync")
        table.add_column("State")

        for m in store.mounts():
            try:
                state = state_icon(store.mount_status(m.prefix))
            except SkpassError as exc:
                state = f"[red]{exc}[/]"
            table.add_row(mount_label(m.prefix), str(m.path), m.sync.name, state)

        console.print()
        console.print(table)
        console.print()

    @mounts.command("add")
    @click.argument("prefix")
    @click.argument("path", type=click.Path())
    @click.option("--recipient", "-r", "recipients", multiple=True, help="Initialize with this recipient.")
    @click.option(
        "--sync", "sync_type", default=None,
        type=click.Choice([t.value for t in SyncBackendType]),
        help="Sync backend (defaults to the root's).",
    )
    @home_option
    @yes_option
    @handle_errors
    def mounts_add(prefix, path, recipients, sync_type, home, always_yes):
        """Mount the store at PATH under PREFIX."""
        store = open_store(home)
        mount = store.add_mount(
            make_context(always_yes),
            prefix,
            Path(path).expanduser(),
            sync=SyncBackendType(sync_type) if sync_type else None,
            recipients=recipients or None,
        )
        console.print(f"[green]Mounted[/] [cyan]{mount.name}[/] at {mount.path}", highlight=False)

    @mounts.command("remove")
    @click.argument("prefix")
    @home_option
    @handle_errors
    def mounts_remove(prefix, home):
        """Unmount PREFIX. Files stay where they are."""
        store = open_store(home)
        mount = store.remove_mount(prefix)
        console.print(f"[green]Unmounted[/] [cyan]{mount.name}[/] ({mount.path} kept)", highlight=False)
