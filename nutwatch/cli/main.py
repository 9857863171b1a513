import click

from ..utils.logging import setup_logging
from .history import history_cli
from .monitor import monitor_cli
from .ups import ups_cli


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enables verbose mode.')
@click.option('--quiet', '-q', is_flag=True, help='Enables quiet mode.')
@click.pass_context
def app(ctx, verbose, quiet):
    """
    nutwatch UPS watchdog CLI.
    """
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet

    if verbose:
        setup_logging(level="DEBUG")
    elif quiet:
        setup_logging(level="ERROR")
    else:
        setup_logging()


# Add subcommands
app.add_command(ups_cli, name='ups')
app.add_command(history_cli, name='history')
app.add_command(monitor_cli, name='monitor')

if __name__ == '__main__':
    app()
