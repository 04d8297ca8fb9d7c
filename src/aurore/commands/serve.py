"""aurore serve — run the session server until interrupted."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import subprocess
import sys
from pathlib import Path
from typing import Any

import click

from aurore.config import AuroreConfig, ConfigError, load_config
from aurore.server.app import AuroreServer, PortInUseError

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def browser_command(url: str, platform: str | None = None) -> list[str]:
    """Platform opener for *url*: ``open``, ``cmd /c start``, or ``xdg-open``."""
    platform = platform or sys.platform
    if platform == "darwin":
        return ["open", url]
    if platform == "win32":
        return ["cmd", "/c", "start", "", url]
    return ["xdg-open", url]


def open_in_browser(url: str) -> None:
    try:
        subprocess.Popen(
            browser_command(url),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as exc:
        logger.debug("browser opener failed: %s", exc)
        click.echo(f"Could not open a browser. Visit {url} manually.", err=True)


def resolve_config(
    config_file: str | None,
    port: int | None,
    host: str | None,
    no_browser: bool,
) -> AuroreConfig:
    """Load config, then let command-line flags override it.

    Raises:
        ConfigError: On a bad config file or invalid override.
    """
    overrides: dict[str, Any] = {}
    if port is not None:
        overrides["port"] = port
    if host is not None:
        overrides["host"] = host
    if no_browser:
        overrides["open_browser"] = False
    return load_config(Path(config_file) if config_file else None, overrides=overrides)


@click.command()
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option("--port", type=int, default=None, help="Port to listen on.")
@click.option("--host", type=str, default=None, help="Interface to bind.")
@click.option("--no-browser", is_flag=True, help="Do not open the UI in a browser.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def serve(
    config_file: str | None,
    port: int | None,
    host: str | None,
    no_browser: bool,
    verbose: bool,
) -> None:
    """Start the session server and relay Claude to the browser UI."""
    configure_logging(verbose)
    try:
        config = resolve_config(config_file, port, host, no_browser)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    try:
        asyncio.run(_run_server(config))
    except PortInUseError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc


async def _run_server(config: AuroreConfig) -> None:
    server = AuroreServer(config)
    await server.start()
    click.echo(f"Aurore server running at {server.url}", err=True)
    if config.open_browser:
        open_in_browser(server.url)
    else:
        click.echo("Remote mode: open the URL in your browser", err=True)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _signal_shutdown(sig_name: str) -> None:
        click.echo(f"\nReceived {sig_name}, shutting down...", err=True)
        shutdown_event.set()

    # Windows event loops do not support signal handlers.
    with contextlib.suppress(NotImplementedError):
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_shutdown, sig.name)

    try:
        await shutdown_event.wait()
    finally:
        await server.stop()
