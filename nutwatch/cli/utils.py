import asyncio
import functools
import sys

import click
from rich.console import Console

from ..config import settings
from ..nut.client import NUTError
from ..nut.models import NUTTarget

console = Console()


def handle_async_command(async_func):
    """Decorator to handle async CLI commands."""
    @functools.wraps(async_func)
    def wrapper(*args, **kwargs):
        try:
            return asyncio.run(async_func(*args, **kwargs))
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            sys.exit(1)
        except NUTError as e:
            console.print(f"[red]NUT error: {e}[/red]")
            sys.exit(1)
    return wrapper


def nut_options(func):
    """Adds --host/--port/--username/--password options, defaulting to settings."""
    options = [
        click.option('--host', default=settings.NUT_HOST, show_default=True, help='NUT server host.'),
        click.option('--port', default=settings.NUT_PORT, show_default=True, help='NUT server port.'),
        click.option('--username', default=settings.NUT_USERNAME, help='NUT username.'),
        click.option('--password', default=settings.NUT_PASSWORD, help='NUT password.'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def target_from_options(host: str, port: int, username, password) -> NUTTarget:
    return NUTTarget(host=host, port=port, username=username or None, password=password or None)
