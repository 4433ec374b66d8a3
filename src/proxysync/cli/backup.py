"""Backup and restore commands: create, restore, list."""

from __future__ import annotations

from pathlib import Path

import click
from rich.panel import Panel
from rich.table import Table

from ._common import console, fail, home_option, open_runtime


def register_backup_commands(main: click.Group) -> None:
    """Register the backup command group."""

    @main.group()
    def backup():
        """Backup and restore of proxy settings.

        Backups hold the syncable settings only: no WebDAV credentials
        and no fetched subscription content.
        """

    @backup.command("create")
    @home_option
    @click.option("--output", "-o", default=None, type=click.Path(), help="Output directory.")
    def backup_create(home: str, output: str):
        """Write a backup file of the current settings.

        Examples:

            proxysync backup create

            proxysync backup create -o /mnt/usb/backups
        """
        from ..backup import create_backup

        runtime = open_runtime(home)
        out_dir = Path(output).expanduser() if output else runtime.backups_dir

        try:
            result = create_backup(runtime.store.current, out_dir)
        except OSError as exc:
            fail(f"Backup failed: {exc}")

        console.print(Panel(
            f"[bold green]Backup created[/]\n"
            f"Version: {result['version']}\n"
            f"Proxy servers: {result['proxy_servers']}\n"
            f"Profiles: {result['proxy_profiles']}\n"
            f"Size: {result['size']} bytes\n"
            f"Path: [cyan]{result['filepath']}[/]",
            title="Backup Complete",
            border_style="green",
        ))

    @backup.command("restore")
    @click.argument("backup_file", type=click.Path(exists=True, dir_okay=False))
    @home_option
    def backup_restore(backup_file: str, home: str):
        """Restore settings from a backup file.

        Broken proxy servers in the file are skipped; everything else
        is restored and repaired.

        Examples:

            proxysync backup restore smartproxy_settings-20260301.json
        """
        from ..backup import restore_backup

        runtime = open_runtime(home)
        data = Path(backup_file).read_bytes()

        result = restore_backup(runtime.engine, data)
        if not result.success:
            fail(result.message)

        config = result.config
        console.print(Panel(
            f"[bold green]{result.message}[/]\n"
            f"Proxy servers: {len(config.proxy_servers)}\n"
            f"Server subscriptions: {len(config.proxy_server_subscriptions)}\n"
            f"Profiles: {len(config.proxy_profiles)}\n"
            f"Active profile: [cyan]{config.active_profile_id}[/]",
            title="Restore Complete",
            border_style="green",
        ))

    @backup.command("list")
    @home_option
    def backup_list(home: str):
        """List backup files, newest first."""
        from ..backup import list_backups

        runtime = open_runtime(home)
        backups = list_backups(runtime.backups_dir)

        if not backups:
            console.print("\n[dim]No backups found.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Filename", style="cyan")
        table.add_column("Version")
        table.add_column("Size", justify="right")
        table.add_column("Created", style="dim")

        for b in backups:
            table.add_row(
                b["filename"],
                b["version"] or "[red]unreadable[/]",
                f"{b['size'] / 1024:.1f} KB",
                b["created"][:19],
            )

        console.print(f"\n[bold]{len(backups)}[/] backup(s):\n")
        console.print(table)
        console.print()

    main.add_command(backup)
