"""
proxysync CLI: sync, back up and inspect proxy settings.

Each command group lives in its own module and is registered on the
main Click group here.

Entry point: proxysync.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="proxysync")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging.")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """proxysync: settings sync and backup for proxy configurations."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups from modular files
# ---------------------------------------------------------------------------

from .sync_cmd import register_sync_commands
from .backup import register_backup_commands
from .settings_cmd import register_settings_commands

register_sync_commands(main)
register_backup_commands(main)
register_settings_commands(main)
