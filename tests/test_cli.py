"""Smoke tests for the Aurore CLI."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from aurore import __version__
from aurore.cli import cli
from aurore.commands.serve import browser_command, open_in_browser
from aurore.server.app import PortInUseError
from aurore.server.review import FeedbackResult


def test_help() -> None:
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Aurore" in result.output
    for command in ("serve", "watch", "review"):
        assert command in result.output


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert f"aurore, version {__version__}" in result.output


def test_serve_flags() -> None:
    result = CliRunner().invoke(cli, ["serve", "--help"])
    assert result.exit_code == 0
    for flag in ("--port", "--host", "--no-browser", "--verbose", "--file"):
        assert flag in result.output


def test_serve_missing_config_file() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["serve", "-f", "nope.yaml"])
    assert result.exit_code == 1
    assert "Error: Config file not found" in result.output


def test_serve_invalid_config() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        with open("aurore.yaml", "w", encoding="utf-8") as fh:
            fh.write("port: 0\n")
        result = runner.invoke(cli, ["serve"])
    assert result.exit_code == 1
    assert "Config validation failed" in result.output


def test_serve_passes_overrides() -> None:
    runner = CliRunner()
    run = AsyncMock(return_value=None)
    with runner.isolated_filesystem(), patch("aurore.commands.serve._run_server", run):
        result = runner.invoke(cli, ["serve", "--port", "9911", "--host", "0.0.0.0", "--no-browser"])
    assert result.exit_code == 0, result.output
    config = run.await_args.args[0]
    assert config.port == 9911
    assert config.host == "0.0.0.0"
    assert config.open_browser is False


def test_serve_port_in_use() -> None:
    runner = CliRunner()
    run = AsyncMock(
        side_effect=PortInUseError(
            "Port 9847 is already in use. Only one Aurore session is allowed at a time."
        )
    )
    with runner.isolated_filesystem(), patch("aurore.commands.serve._run_server", run):
        result = runner.invoke(cli, ["serve"])
    assert result.exit_code == 1
    assert "Port 9847 is already in use" in result.output


def test_review_prints_feedback() -> None:
    runner = CliRunner()
    run = AsyncMock(return_value=FeedbackResult("<aurore-feedback/>", cancelled=False))
    with runner.isolated_filesystem(), patch("aurore.commands.review._run_review", run):
        result = runner.invoke(cli, ["review", "--no-browser"])
    assert result.exit_code == 0, result.output
    assert result.output.strip().endswith("<aurore-feedback/>")
    assert run.await_args.args[0].open_browser is False


def test_review_cancelled_still_exits_zero() -> None:
    runner = CliRunner()
    run = AsyncMock(return_value=FeedbackResult("Review cancelled by user", cancelled=True))
    with runner.isolated_filesystem(), patch("aurore.commands.review._run_review", run):
        result = runner.invoke(cli, ["review"])
    assert result.exit_code == 0
    assert "Review cancelled by user" in result.output


@pytest.mark.parametrize(
    ("platform", "expected"),
    [
        ("darwin", ["open", "http://localhost:1"]),
        ("win32", ["cmd", "/c", "start", "", "http://localhost:1"]),
        ("linux", ["xdg-open", "http://localhost:1"]),
    ],
)
def test_browser_command(platform: str, expected: list[str]) -> None:
    assert browser_command("http://localhost:1", platform) == expected


def test_open_in_browser_failure(capsys: pytest.CaptureFixture[str]) -> None:
    with patch("subprocess.Popen", side_effect=FileNotFoundError("xdg-open")):
        open_in_browser("http://localhost:9847")
    assert "Could not open a browser. Visit http://localhost:9847 manually." in capsys.readouterr().err
