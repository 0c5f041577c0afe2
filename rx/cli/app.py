from __future__ import annotations

import typer

from rx import __version__
from rx.cli.commands.status import status
from rx.cli.commands.sync import sync

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(sync)
app.command()(status)


def _show_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_show_version,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Install RTX Remix release artifacts into one runtime tree."""


def main() -> None:
    app()
