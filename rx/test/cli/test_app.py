from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from rx import __version__
from rx.cli.app import app


def test_version() -> None:
    result = CliRunner().invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_commands_registered() -> None:
    result = CliRunner().invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "sync" in result.output
    assert "status" in result.output


def test_missing_explicit_config(tmp_path: Path) -> None:
    result = CliRunner().invoke(app, ["status", "--config", str(tmp_path / "nope.toml")])
    assert result.exit_code == 2
