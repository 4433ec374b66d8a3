"""Sync commands: push, pull, status, enable, disable."""

from __future__ import annotations

from typing import Optional

import click
from rich.panel import Panel

from ._common import console, fail, home_option, logger, open_runtime, print_sync_result
from ..errors import SyncErrorKind


def register_sync_commands(main: click.Group) -> None:
    """Register the sync command group."""

    @main.group()
    def sync():
        """Settings sync across devices.

        Pushes the syncable settings to the platform sync storage or a
        WebDAV server and pulls changes made elsewhere.
        """

    @sync.command("push")
    @home_option
    @click.option("--local-only", is_flag=True, help="Only stamp and save locally.")
    def sync_push(home: str, local_only: bool):
        """Save settings locally, then to the sync server if sync is on."""
        runtime = open_runtime(home)
        result = runtime.engine.save_all_sync(save_to_sync_server=not local_only)
        print_sync_result(result)

    @sync.command("pull")
    @home_option
    def sync_pull(home: str):
        """Fetch synced settings and apply them if they changed."""
        runtime = open_runtime(home)
        result = runtime.engine.pull()
        if result.error == SyncErrorKind.NO_OP:
            console.print(f"[yellow]{result.message}[/]")
            return
        print_sync_result(result)

    @sync.command("status")
    @home_option
    def sync_status(home: str):
        """Show sync settings and recent activity."""
        runtime = open_runtime(home)
        status = runtime.engine.status()
        state = status["state"]

        enabled = "[green]enabled[/]" if status["enabled"] else "[yellow]disabled[/]"
        available = "" if status["available"] else " [red](not configured)[/]"
        console.print()
        console.print(
            Panel(
                f"Sync: {enabled}\n"
                f"Backend: [cyan]{status['backend']}[/]{available}\n"
                f"Sync active profile: {status['sync_active_profile']}\n"
                f"Sync active proxy: {status['sync_active_proxy']}\n"
                f"Sync hash: {status['sync_hash'] or '[dim]none[/]'}\n"
                f"Last Push: {state['last_push'] or '[dim]never[/]'} ({state['push_count']})\n"
                f"Last Pull: {state['last_pull'] or '[dim]never[/]'} ({state['pull_count']})\n"
                f"Last Error: {state['last_error'] or '[dim]none[/]'}\n"
                f"Store: [dim]{status['store'] or '-'}[/]",
                title="Settings Sync",
                border_style="magenta",
            )
        )
        console.print()

    @sync.command("enable")
    @home_option
    @click.option("--webdav-url", default=None, help="Sync through this WebDAV folder.")
    @click.option("--webdav-file", default=None, help="WebDAV file name.")
    @click.option("--webdav-user", default=None, help="WebDAV user name.")
    @click.option("--webdav-password", default=None, help="WebDAV password.")
    @click.option("--no-profile", is_flag=True, help="Keep the active profile per device.")
    @click.option("--no-proxy", is_flag=True, help="Keep the default proxy per device.")
    def sync_enable(
        home: str,
        webdav_url: Optional[str],
        webdav_file: Optional[str],
        webdav_user: Optional[str],
        webdav_password: Optional[str],
        no_profile: bool,
        no_proxy: bool,
    ):
        """Turn settings sync on.

        Examples:

            proxysync sync enable

            proxysync sync enable --webdav-url https://dav.example.com/proxy/
        """
        runtime = open_runtime(home)
        options = runtime.store.current.options

        options.sync_settings = True
        options.sync_active_profile = not no_profile
        options.sync_active_proxy = not no_proxy
        if webdav_url:
            options.sync_web_dav_server_enabled = True
            options.sync_web_dav_server_url = webdav_url
            options.sync_web_dav_backup_filename = webdav_file or ""
            options.sync_web_dav_server_user = webdav_user or ""
            options.sync_web_dav_server_password = webdav_password or ""

        runtime.store.update_active_settings()
        if not runtime.writer.save_all_local(force=True):
            fail("Could not save settings.")
        logger.info("Sync enabled (%s)", runtime.store.active.sync_backend)
        console.print(
            f"[green]Sync enabled[/] [dim]({runtime.store.active.sync_backend})[/]\n"
            "  Run [cyan]proxysync sync pull[/] to fetch, or "
            "[cyan]proxysync sync push[/] to upload this device's settings."
        )

    @sync.command("disable")
    @home_option
    def sync_disable(home: str):
        """Turn settings sync off. Settings stay on this device."""
        runtime = open_runtime(home)
        runtime.store.current.options.sync_settings = False
        runtime.store.update_active_settings()
        if not runtime.writer.save_all_local(force=True):
            fail("Could not save settings.")
        console.print("[green]Sync disabled[/]")

    main.add_command(sync)
