from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import typer

from rx.core.config import Config, load_config, load_config_or_default
from rx.core.errors import ErrorCode
from rx.core.result import Err
from rx.forge.http import HttpClient, RealHttpClient
from rx.output.console import ConsoleProtocol, RichConsole

DEFAULT_CONFIG = Path("rx.toml")


@dataclass(frozen=True, slots=True)
class CLIContext:
    config: Config
    console: ConsoleProtocol
    http: HttpClient


def build_context(config_path: Path | None = None) -> CLIContext:
    """Load configuration and build the production console and HTTP client.

    Without --config, a missing ./rx.toml means the built-in defaults;
    an explicit path must exist.
    """
    if config_path is None:
        config_result = load_config_or_default(DEFAULT_CONFIG)
    else:
        config_result = load_config(config_path)

    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error}", err=True)
        raise typer.Exit(code=int(ErrorCode.CONFIG_ERROR))

    config = config_result.value
    token = os.environ.get(config.network.token_env) or None
    return CLIContext(
        config=config,
        console=RichConsole(),
        http=RealHttpClient(timeout=config.network.timeout, token=token),
    )


def configure_logging(verbose: bool) -> None:
    """Route rx diagnostics through Rich when verbose; otherwise only errors."""
    logger = logging.getLogger("rx")
    if not verbose:
        logger.setLevel(logging.ERROR)
        return

    from rich.logging import RichHandler

    logger.setLevel(logging.DEBUG)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(show_path=False, log_time_format="[%X]")
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
