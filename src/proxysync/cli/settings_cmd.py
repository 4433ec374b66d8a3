"""Settings commands: show, reset."""

from __future__ import annotations

import json

import click
from rich.panel import Panel
from rich.table import Table

from ._common import console, fail, home_option, open_runtime
from ..backup import factory_reset
from ..messages import get_message


def register_settings_commands(main: click.Group) -> None:
    """Register the settings command group."""

    @main.group()
    def settings():
        """Inspect or reset the proxy settings on this device."""

    @settings.command("show")
    @home_option
    @click.option("--json-out", is_flag=True, help="Print the settings document as JSON.")
    def settings_show(home: str, json_out: bool):
        """Show the current settings."""
        runtime = open_runtime(home)
        config = runtime.store.current

        if json_out:
            click.echo(json.dumps(config.to_json_dict(), indent=2))
            return

        active = runtime.store.active
        server = active.current_proxy_server
        console.print()
        console.print(Panel(
            f"Version: {config.version} (schema {config.config_version or '-'})\n"
            f"Active profile: [cyan]{active.active_profile.name if active.active_profile else '-'}[/]\n"
            f"Proxy: [cyan]{server.name or server.host if server else '-'}[/]\n"
            f"Sync: {'[green]on[/]' if active.sync_enabled else '[dim]off[/]'} "
            f"[dim]({active.sync_backend})[/]",
            title="proxysync",
            border_style="bright_blue",
        ))

        if config.proxy_servers:
            table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
            table.add_column("Name", style="cyan")
            table.add_column("Protocol")
            table.add_column("Host")
            table.add_column("Port", justify="right")
            for s in config.proxy_servers:
                table.add_row(s.name, s.protocol, s.host, str(s.port))
            console.print(table)

        for sub in config.proxy_server_subscriptions:
            state = "[green]on[/]" if sub.enabled else "[dim]off[/]"
            console.print(f"  Subscription [cyan]{sub.name}[/] {state}: {len(sub.proxies)} server(s)")
        console.print()

    @settings.command("reset")
    @home_option
    @click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
    def settings_reset(home: str, yes: bool):
        """Reset all settings to defaults."""
        if not yes:
            click.confirm("Reset all proxy settings to defaults?", abort=True)

        runtime = open_runtime(home)
        result = factory_reset(runtime.engine)
        if not result.success:
            fail(result.message)
        console.print(f"[green]{get_message('settingsFactoryResetSuccess')}[/]")

    main.add_command(settings)
