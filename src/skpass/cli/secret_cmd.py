"""Secret commands: init, clone, insert, show, ls, mv, cp, rm."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.tree import Tree

from ..config import CONFIG_FILE, default_config, save_config
from ..store import Store
from ..sync.models import SyncBackendType
from ._common import console, handle_errors, home_option, make_context, open_store, yes_option


def register_secret_commands(main: click.Group) -> None:
    """Register the secret commands."""

    @main.command("init")
    @click.argument("recipients", nargs=-1, required=True)
    @click.option("--path", "store_path", default=None, type=click.Path(), help="Root store directory.")
    @click.option("--crypto", default="xc", type=click.Choice(["xc", "mock"]), show_default=True)
    @click.option(
        "--sync", "sync_type", default=SyncBackendType.GIT.value,
        type=click.Choice([t.value for t in SyncBackendType]), show_default=True,
    )
    @click.option("--remote", default=None, help="Git remote URL for the root store.")
    @home_option
    @yes_option
    @handle_errors
    def init(recipients, store_path, crypto, sync_type, remote, home, always_yes):
        """Create a new root store encrypted for RECIPIENTS."""
        home_path = Path(home).expanduser()
        if (home_path / CONFIG_FILE).exists():
            console.print(f"[bold red]Already initialized:[/] {home_path / CONFIG_FILE}")
            sys.exit(1)

        config = default_config(home_path)
        config.crypto = crypto
        config.sync = SyncBackendType(sync_type)
        if store_path:
            config.path = Path(store_path).expanduser()

        store = Store(config, home=home_path)
        result = store.init(make_context(always_yes), recipients, remote=remote)
        save_config(config, home_path)

        console.print(f"\n  [green]Store initialized[/] at [cyan]{config.path}[/]")
        for r in sorted(recipients):
            console.print(f"    recipient [dim]{r}[/]")
        if result.revision_id:
            console.print(f"  [dim]Revision {result.revision_id[:10]}[/]")
        console.print()

    @main.command("clone")
    @click.argument("url")
    @click.option("--path", "target", default=None, type=click.Path(), help="Directory for the clone.")
    @click.option("--mount", "prefix", default="", help="Mount the clone here instead of at the root.")
    @click.option(
        "--crypto", default="xc", type=click.Choice(["xc", "mock"]),
        show_default=True, help="Crypto backend of a root clone.",
    )
    @home_option
    @yes_option
    @handle_errors
    def clone(url, target, prefix, crypto, home, always_yes):
        """Clone an existing store from URL."""
        home_path = Path(home).expanduser()
        ctx = make_context(always_yes)
        if prefix:
            store = open_store(home)
            mount = store.clone(ctx, url, prefix=prefix, path=Path(target) if target else None)
        else:
            if (home_path / CONFIG_FILE).exists():
                console.print(f"[bold red]Already initialized:[/] {home_path / CONFIG_FILE}")
                sys.exit(1)
            config = default_config(home_path)
            config.crypto = crypto
            if target:
                config.path = Path(target).expanduser()
            store = Store(config, home=home_path)
            mount = store.clone(ctx, url)

        console.print(f"\n  [green]Cloned[/] {url} into [cyan]{mount.path}[/]", highlight=False)
        for r in store.recipients(mount.prefix):
            console.print(f"    recipient [dim]{r}[/]")
        console.print()

    @main.command("insert")
    @click.argument("name")
    @click.option("--multiline", "-m", is_flag=True, help="Read the whole secret body from stdin.")
    @click.option("--force", "-f", is_flag=True, help="Overwrite without asking.")
    @click.option("--sync/--no-sync", "autosync", default=None, help="Push after committing.")
    @home_option
    @yes_option
    @handle_errors
    def insert(name, multiline, force, autosync, home, always_yes):
        """Store a secret at NAME."""
        store = open_store(home)
        ctx = make_context(always_yes, store.config.autosync if autosync is None else autosync)

        if store.exists(name) and not force:
            if not store.prompter.confirm(ctx, f"'{name}' already exists. Overwrite it?"):
                console.print("[yellow]Aborted.[/]")
                sys.exit(1)

        if ctx.interactive and not multiline:
            content = store.prompter.ask_password(ctx, f"Enter secret for {name}")
        else:
            data = click.get_text_stream("stdin").read()
            content = data if multiline else data.splitlines()[0] if data else ""

        result = store.write(ctx, name, content)
        console.print(f"[green]Saved[/] [cyan]{name}[/]", highlight=False)
        if result.revision_id:
            console.print(f"[dim]Revision {result.revision_id[:10]}[/]")

    @main.command("show")
    @click.argument("name")
    @click.option("--key", "-k", default=None, help="Print only this key from the body.")
    @click.option("--password", "-p", "password_only", is_flag=True, help="Print only the first line.")
    @home_option
    @handle_errors
    def show(name, key, password_only, home):
        """Decrypt and print the secret at NAME."""
        store = open_store(home)
        secret = store.show(make_context(), name)
        if key:
            value = secret.get(key)
            if value is None:
                console.print(f"[red]No key '{key}' in {name}[/]")
                sys.exit(1)
            click.echo(value)
        elif password_only:
            click.echo(secret.password)
        else:
            click.echo(secret.to_bytes().decode("utf-8"))

    @main.command("ls")
    @click.argument("prefix", default="")
    @click.option("--flat", is_flag=True, help="One path per line (default when piped).")
    @home_option
    @handle_errors
    def ls(prefix, flat, home):
        """List secrets, optionally below PREFIX."""
        store = open_store(home)
        names = store.list(prefix)
        if flat or not make_context().terminal:
            for n in names:
                click.echo(n)
            return

        tree = Tree(f"[bold]{prefix or 'skpass'}[/]")
        nodes: dict[str, Tree] = {}
        for n in names:
            parent = tree
            parts = n.split("/")
            for depth, part in enumerate(parts):
                key = "/".join(parts[: depth + 1])
                if key not in nodes:
                    style = "cyan" if depth == len(parts) - 1 else "bold blue"
                    nodes[key] = parent.add(f"[{style}]{part}[/]")
                parent = nodes[key]
        console.print(tree)

    @main.command("mv")
    @click.argument("src")
    @click.argument("dst")
    @click.option("--force", "-f", is_flag=True, help="Overwrite DST without asking.")
    @home_option
    @yes_option
    @handle_errors
    def mv(src, dst, force, home, always_yes):
        """Move or rename a secret, across mounts if needed."""
        store = open_store(home)
        store.move(make_context(always_yes, store.config.autosync), src, dst, force=force)
        console.print(f"[green]Moved[/] {src} -> {dst}", highlight=False)

    @main.command("cp")
    @click.argument("src")
    @click.argument("dst")
    @click.option("--force", "-f", is_flag=True, help="Overwrite DST without asking.")
    @home_option
    @yes_option
    @handle_errors
    def cp(src, dst, force, home, always_yes):
        """Copy a secret, re-encrypting it for DST's mount."""
        store = open_store(home)
        store.copy(make_context(always_yes, store.config.autosync), src, dst, force=force)
        console.print(f"[green]Copied[/] {src} -> {dst}", highlight=False)

    @main.command("rm")
    @click.argument("name")
    @click.option("--recursive", "-r", is_flag=True, help="Remove everything below NAME.")
    @home_option
    @yes_option
    @handle_errors
    def rm(name, recursive, home, always_yes):
        """Remove a secret."""
        store = open_store(home)
        store.delete(make_context(always_yes, store.config.autosync), name, recursive=recursive)
        console.print(f"[green]Removed[/] {name}", highlight=False)
