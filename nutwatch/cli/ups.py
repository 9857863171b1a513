"""
UPS query and control commands.
"""
from contextlib import asynccontextmanager

import click
from rich.console import Console
from rich.table import Table

from ..config import settings
from ..nut.client import NUTClient
from ..nut.models import NUTTarget
from .utils import handle_async_command, nut_options, target_from_options

console = Console()


@click.group(name='ups')
def ups_cli():
    """Query and control UPS devices on a NUT server."""
    pass


@asynccontextmanager
async def connected_client(target: NUTTarget):
    client = NUTClient(target)
    await client.connect()
    try:
        yield client
    finally:
        await client.disconnect()


@ups_cli.command(name='list')
@nut_options
@handle_async_command
async def list_devices(host, port, username, password) -> None:
    """Lists the UPS devices on the server."""
    target = target_from_options(host, port, username, password)
    async with connected_client(target) as client:
        devices = await client.list_devices()

    if not devices:
        console.print(f"[yellow]No UPS devices found on {target}[/yellow]")
        return
    table = Table(title=f"UPS devices on {target}")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    for name, description in devices.items():
        table.add_row(name, description)
    console.print(table)


@ups_cli.command(name='vars')
@click.argument('ups_name', default=settings.UPS_NAME)
@nut_options
@handle_async_command
async def show_vars(ups_name, host, port, username, password) -> None:
    """Shows the current telemetry of a UPS."""
    target = target_from_options(host, port, username, password)
    async with connected_client(target) as client:
        data = await client.fetch_telemetry(ups_name)

    table = Table(title=f"{ups_name}@{target}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in data.model_dump(exclude={"extended_vars"}, exclude_none=True).items():
        table.add_row(key, str(value))
    for key, value in sorted(data.extended_vars.items()):
        table.add_row(f"[dim]{key}[/dim]", value)
    console.print(table)


@ups_cli.command(name='commands')
@click.argument('ups_name', default=settings.UPS_NAME)
@nut_options
@handle_async_command
async def list_commands(ups_name, host, port, username, password) -> None:
    """Lists the instant commands a UPS supports."""
    target = target_from_options(host, port, username, password)
    async with connected_client(target) as client:
        commands = await client.list_commands(ups_name)

    for command in commands:
        console.print(command)
    if not commands:
        console.print(f"[yellow]'{ups_name}' reports no instant commands[/yellow]")


@ups_cli.command(name='run')
@click.argument('ups_name')
@click.argument('command')
@nut_options
@handle_async_command
async def run_command(ups_name, command, host, port, username, password) -> None:
    """Runs an instant command (e.g. beeper.toggle) on a UPS."""
    target = target_from_options(host, port, username, password)
    async with connected_client(target) as client:
        await client.run_command(ups_name, command)
    console.print(f"[green]✅ '{command}' accepted by {ups_name}[/green]")
