"""aurore review — collect one round of review feedback and print it."""

from __future__ import annotations

import asyncio

import click

from aurore.commands.serve import configure_logging, open_in_browser, resolve_config
from aurore.config import AuroreConfig, ConfigError
from aurore.server.app import PortInUseError
from aurore.server.review import FeedbackResult, ReviewServer

#: Seconds to keep serving after a decision so the page sees the response.
_RESPONSE_GRACE = 0.5


@click.command()
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option("--port", type=int, default=None, help="Port to listen on.")
@click.option("--no-browser", is_flag=True, help="Do not open the UI in a browser.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def review(config_file: str | None, port: int | None, no_browser: bool, verbose: bool) -> None:
    """Serve the workspace for review and print the submitted feedback."""
    configure_logging(verbose)
    try:
        config = resolve_config(config_file, port, None, no_browser)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    try:
        result = asyncio.run(_run_review(config))
    except PortInUseError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    # stdout carries only the feedback so callers can capture it.
    click.echo(result.feedback)


async def _run_review(config: AuroreConfig) -> FeedbackResult:
    server = ReviewServer(
        config.working_directory,
        host=config.host,
        port=config.port,
        static_dir=config.static_dir,
    )
    await server.start()
    click.echo(f"Aurore review server running at {server.url}", err=True)
    if config.open_browser:
        open_in_browser(server.url)
    else:
        click.echo("Remote mode: open the URL in your browser", err=True)

    try:
        result = await server.wait_for_decision()
        await asyncio.sleep(_RESPONSE_GRACE)
    finally:
        await server.stop()
    return result
