"""Key commands: gen, list, export, import."""

from __future__ import annotations

import base64
import sys

import click
from rich.table import Table

from ..crypto import XCCrypto
from ._common import console, handle_errors, home_option, open_store


def _keyring(home: str) -> XCCrypto:
    store = open_store(home)
    if not isinstance(store.crypto, XCCrypto):
        console.print(f"[red]Key management needs the xc backend (configured: {store.crypto.name})[/]")
        sys.exit(1)
    return store.crypto


def register_key_commands(main: click.Group) -> None:
    """Register the keys command group."""

    @main.group()
    def keys():
        """Local X25519 keyring."""

    @keys.command("gen")
    @click.argument("name", default="")
    @home_option
    @handle_errors
    def keys_gen(name, home):
        """Generate a new keypair."""
        key_id = _keyring(home).generate_key(name)
        click.echo(key_id)

    @keys.command("list")
    @home_option
    @handle_errors
    def keys_list(home):
        """List public keys; private ones are marked."""
        keyring = _keyring(home)
        private = set(keyring.list_private_keys())
        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Key ID", style="cyan", no_wrap=True)
        table.add_column("Name")
        table.add_column("Private")
        for kid in keyring.list_public_keys():
            table.add_row(kid, keyring.key_name(kid), "[green]yes[/]" if kid in private else "[dim]no[/]")
        console.print(table)

    @keys.command("export")
    @click.argument("key_id")
    @home_option
    @handle_errors
    def keys_export(key_id, home):
        """Print a public key for sharing."""
        click.echo(base64.b64encode(_keyring(home).export_public_key(key_id)).decode("ascii"))

    @keys.command("import")
    @click.argument("public_key")
    @click.option("--name", default="", help="Label for the key.")
    @home_option
    @handle_errors
    def keys_import(public_key, name, home):
        """Import a base64 public key exported by a teammate."""
        raw = base64.b64decode(public_key)
        click.echo(_keyring(home).import_public_key(raw, name=name))
