"""Shared utilities for the CLI command modules.

Provides the Rich console, runtime loading and result printing.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.console import Console

from .. import PROXYSYNC_HOME
from ..runtime import ProxySyncRuntime, get_runtime
from ..sync.models import SyncResult

console = Console()
logger = logging.getLogger("proxysync.cli")

home_option = click.option(
    "--home", default=PROXYSYNC_HOME, type=click.Path(), help="proxysync home directory.",
)


def open_runtime(home: str) -> ProxySyncRuntime:
    """Load the runtime for ``home`` and apply its log level.

    ``--verbose`` on the main group wins over ``log_level`` in config.yaml.
    """
    runtime = get_runtime(Path(home).expanduser())

    ctx = click.get_current_context(silent=True)
    verbose = bool(ctx and (ctx.find_root().obj or {}).get("verbose"))
    if not verbose:
        level = logging.getLevelName(runtime.config.log_level.upper())
        if isinstance(level, int):
            logging.getLogger("proxysync").setLevel(level)
    return runtime


def fail(message: str) -> None:
    """Print a failure and exit with status 1."""
    console.print(f"[bold red]{message}[/]")
    raise SystemExit(1)


def print_sync_result(result: SyncResult) -> None:
    """Print a sync result; exit 1 if it failed."""
    if not result.success:
        fail(result.message)
    backend = f" [dim]({result.backend})[/]" if result.backend else ""
    console.print(f"[green]{result.message}[/]{backend}")
