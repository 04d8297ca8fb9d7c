"""Root CLI group and version flag."""

import signal

import click

# Ensure SIGPIPE doesn't silently kill the process (e.g. when stdout
# pipe closes while click.echo is writing the review feedback).
if hasattr(signal, "SIGPIPE"):
    signal.signal(signal.SIGPIPE, signal.SIG_IGN)

from aurore import __version__
from aurore.commands.review import review
from aurore.commands.serve import serve
from aurore.commands.watch import watch


@click.group()
@click.version_option(version=__version__, prog_name="aurore")
def cli() -> None:
    """Aurore: browser UI for a local Claude coding session."""


cli.add_command(serve)
cli.add_command(watch)
cli.add_command(review)
