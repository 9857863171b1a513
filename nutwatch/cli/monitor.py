"""
Foreground watchdog command.
"""
import asyncio
import signal
import sys

import click
from rich.console import Console

from ..config import settings
from ..core.bus import TOPIC_POWER_EVENT, TOPIC_SHUTDOWN_CANCELLED, TOPIC_SHUTDOWN_WARNING
from ..core.monitor import MonitorService
from ..history.store import HistoryStore
from ..shutdown.guard import ShutdownPolicy
from ..shutdown.host_control import HostAction, SystemHostControl
from .utils import handle_async_command, nut_options, target_from_options

console = Console()


@click.group(name='monitor')
def monitor_cli():
    """Run the UPS watchdog."""
    pass


@monitor_cli.command()
@click.argument('ups_name', default=settings.UPS_NAME)
@nut_options
@click.option('--db', 'db_path', default=settings.DB_PATH, show_default=True, help='History database path.')
@click.option('--shutdown/--no-shutdown', default=settings.SHUTDOWN_ENABLED, show_default=True,
              help='Power the host down when the battery is critical.')
@click.option('--action', type=click.Choice([a.value for a in HostAction]), default=settings.SHUTDOWN_ACTION,
              show_default=True, help='Host action when the countdown expires.')
@click.option('--dry-run', is_flag=True, default=settings.SHUTDOWN_DRY_RUN, help='Log host actions instead of running them.')
@handle_async_command
async def run(ups_name, host, port, username, password, db_path, shutdown, action, dry_run) -> None:
    """Polls a UPS until interrupted. SIGUSR1 aborts a running shutdown countdown."""
    policy = ShutdownPolicy.from_settings()
    policy.enabled = shutdown
    policy.action = HostAction(action)

    service = MonitorService(
        target_from_options(host, port, username, password),
        ups_name,
        store=HistoryStore(db_path),
        host_control=SystemHostControl(dry_run=dry_run),
        policy=policy,
    )

    async def on_warning(remaining):
        console.print(f"[bold red]⚠ Battery critical: {policy.action.value} in {remaining}s[/bold red]")

    async def on_cancelled(_):
        console.print("[green]Shutdown cancelled[/green]")

    async def on_power_event(event):
        console.print(f"[yellow]{event['message']}[/yellow]")

    service.bus.subscribe(TOPIC_SHUTDOWN_WARNING, on_warning)
    service.bus.subscribe(TOPIC_SHUTDOWN_CANCELLED, on_cancelled)
    service.bus.subscribe(TOPIC_POWER_EVENT, on_power_event)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    if sys.platform != 'win32':
        loop.add_signal_handler(signal.SIGINT, stop.set)
        loop.add_signal_handler(signal.SIGTERM, stop.set)
        loop.add_signal_handler(signal.SIGUSR1, service.request_abort)

    console.print(f"[bold blue]Monitoring {ups_name}@{service.target}[/bold blue] (shutdown={'on' if shutdown else 'off'})")
    await service.start()
    try:
        await stop.wait()
    finally:
        await service.stop()
        service.store.close()
