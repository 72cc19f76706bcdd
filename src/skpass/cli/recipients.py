"""Recipient commands: list, add, remove, reencrypt."""

from __future__ import annotations

import sys

import click

from ..models import ReencryptReport
from ._common import console, handle_errors, home_option, make_context, mount_label, open_store, yes_option

mount_option = click.option(
    "--mount", "prefix", default=None, help="Mount prefix (asks when omitted, root if piped)."
)


def _pick_mount(store, ctx, prefix):
    if prefix is not None:
        return prefix
    return store.prompter.ask_store(ctx, [m.prefix for m in store.mounts() if m.prefix])


def _print_report(report: ReencryptReport) -> None:
    console.print(f"  [green]{len(report.updated)} re-encrypted[/]")
    for name, err in sorted(report.failed.items()):
        console.print(f"  [red]failed[/] {name}: [dim]{err}[/]")


def register_recipient_commands(main: click.Group) -> None:
    """Register the recipients command group."""

    @main.group()
    def recipients():
        """Who can read a mount's secrets."""

    @recipients.command("list")
    @mount_option
    @home_option
    @handle_errors
    def recipients_list(prefix, home):
        """Show recipients of a mount."""
        store = open_store(home)
        prefix = _pick_mount(store, make_context(), prefix)
        console.print(f"\n  [bold]{mount_label(prefix)}[/]")
        for r in store.recipients(prefix):
            console.print(f"    {r}")
        pending = store.pending_recipients(prefix)
        if pending is not None:
            console.print("  [yellow]pending (run skpass recipients reencrypt):[/]")
            for r in pending:
                console.print(f"    {r}")
        console.print()

    @recipients.command("add")
    @click.argument("key_id")
    @click.option("--no-reencrypt", is_flag=True, help="Record the change without re-encrypting.")
    @mount_option
    @home_option
    @yes_option
    @handle_errors
    def recipients_add(key_id, no_reencrypt, prefix, home, always_yes):
        """Add KEY_ID to a mount's recipients."""
        store = open_store(home)
        ctx = make_context(always_yes, store.config.autosync)
        prefix = _pick_mount(store, ctx, prefix)
        update = store.add_recipient(ctx, prefix, key_id, reencrypt=not no_reencrypt)
        console.print(f"[green]Added[/] {key_id} to {mount_label(prefix)}", highlight=False)
        if update.report:
            _print_report(update.report)
            if not update.report.ok:
                sys.exit(1)

    @recipients.command("remove")
    @click.argument("key_id")
    @click.option("--no-reencrypt", is_flag=True, help="Record the change without re-encrypting.")
    @mount_option
    @home_option
    @yes_option
    @handle_errors
    def recipients_remove(key_id, no_reencrypt, prefix, home, always_yes):
        """Remove KEY_ID from a mount's recipients and re-encrypt."""
        store = open_store(home)
        ctx = make_context(always_yes, store.config.autosync)
        prefix = _pick_mount(store, ctx, prefix)
        update = store.remove_recipient(ctx, prefix, key_id, reencrypt=not no_reencrypt)
        console.print(f"[green]Removed[/] {key_id} from {mount_label(prefix)}", highlight=False)
        if update.report:
            _print_report(update.report)
            if not update.report.ok:
                sys.exit(1)

    @recipients.command("reencrypt")
    @mount_option
    @home_option
    @handle_errors
    def recipients_reencrypt(prefix, home):
        """Re-encrypt every out-of-sync secret in a mount."""
        store = open_store(home)
        ctx = make_context(autosync=store.config.autosync)
        report = store.reencrypt(ctx, _pick_mount(store, ctx, prefix))
        _print_report(report)
        if not report.ok:
            sys.exit(1)
