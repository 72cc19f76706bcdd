"""
SKPass CLI — the sovereign secret store command line.

The main Click group is defined here and all subcommands are
registered via register functions from their own modules.

Entry point: skpass.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="skpass")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
def main(verbose: bool):
    """SKPass — Sovereign Secret Store.

    Encrypted secrets, mounted stores, git-synced everywhere.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .secret_cmd import register_secret_commands
from .mounts import register_mount_commands
from .recipients import register_recipient_commands
from .sync_cmd import register_sync_commands
from .keys import register_key_commands

register_secret_commands(main)
register_mount_commands(main)
register_recipient_commands(main)
register_sync_commands(main)
register_key_commands(main)
