"""
History inspection and maintenance commands.
"""
from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from ..config import settings
from ..history.store import HistoryStore

console = Console()


def _fmt(value, suffix: str = "") -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.1f}{suffix}"
    return f"{value}{suffix}"


@click.group(name='history')
@click.option('--db', 'db_path', default=settings.DB_PATH, show_default=True, help='History database path.')
@click.pass_context
def history_cli(ctx, db_path):
    """Inspect and maintain the UPS history."""
    ctx.ensure_object(dict)
    ctx.obj['DB_PATH'] = db_path


def _store(ctx) -> HistoryStore:
    return HistoryStore(ctx.obj['DB_PATH'])


@history_cli.command()
@click.option('--hours', default=24.0, show_default=True, help='Lookback window in hours.')
@click.pass_context
def show(ctx, hours: float) -> None:
    """Shows stored history entries."""
    store = _store(ctx)
    try:
        entries = store.query_range(hours)
    finally:
        store.close()

    table = Table(title=f"History, last {hours:g}h ({len(entries)} entries)")
    for column in ("Time", "Status", "Input V", "Output V", "Load", "Charge"):
        table.add_column(column)
    for entry in entries:
        table.add_row(
            datetime.fromtimestamp(entry.timestamp).isoformat(sep=" "),
            entry.status or "-",
            _fmt(entry.input_voltage),
            _fmt(entry.output_voltage),
            _fmt(entry.load_percent, "%"),
            _fmt(entry.battery_charge, "%"),
        )
    console.print(table)


@history_cli.command()
@click.option('--hours', default=24.0, show_default=True, help='Lookback window in hours.')
@click.pass_context
def stats(ctx, hours: float) -> None:
    """Shows min/max/average figures for a window."""
    store = _store(ctx)
    try:
        result = store.aggregate(hours)
    finally:
        store.close()

    console.print(f"[bold blue]History Statistics ({hours:g}h)[/bold blue]")
    rows = {
        "input_voltage": f"{_fmt(result.min_input_voltage)} / {_fmt(result.avg_input_voltage)} / {_fmt(result.max_input_voltage)} V",
        "output_voltage": f"{_fmt(result.min_output_voltage)} / {_fmt(result.avg_output_voltage)} / {_fmt(result.max_output_voltage)} V",
        "load": f"avg {_fmt(result.avg_load, '%')}, max {_fmt(result.max_load, '%')}",
        "battery": f"min {_fmt(result.min_battery, '%')}, avg {_fmt(result.avg_battery, '%')}",
        "data_points": str(result.data_points),
        "outages": str(result.outages),
    }
    for key, value in rows.items():
        console.print(f"[cyan]{key.replace('_', ' ').title()}[/cyan]: {value}")


@history_cli.command()
@click.pass_context
def compact(ctx) -> None:
    """Keeps one normal-status entry per 5 minutes; anomalies are kept."""
    store = _store(ctx)
    try:
        deleted = store.compact()
    finally:
        store.close()
    console.print(f"[green]✅ Compaction removed {deleted} entries[/green]")


@history_cli.command()
@click.option('--days', default=settings.HISTORY_RETENTION_DAYS, show_default=True, help='Entries older than this are deleted.')
@click.pass_context
def prune(ctx, days: int) -> None:
    """Deletes entries older than the retention period."""
    store = _store(ctx)
    try:
        deleted = store.delete_older_than(days)
    finally:
        store.close()
    console.print(f"[green]✅ Pruned {deleted} entries older than {days} days[/green]")
