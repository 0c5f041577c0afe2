"""Status command - show what is installed in the output directory."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from rx.cli.context import build_context
from rx.output.console import ConsoleProtocol, RichConsole, Style
from rx.pipeline.state import load_state


@dataclass(frozen=True, slots=True)
class StatusRow:
    component: str
    version: str | None
    asset: str | None
    installed_at: str | None

    @property
    def installed(self) -> bool:
        return self.version is not None


def collect_rows(configured: list[str], output_dir: Path) -> list[StatusRow]:
    """Configured components first, then anything else recorded in the state file."""
    state = load_state(output_dir)
    rows: list[StatusRow] = []
    for repo in [*configured, *sorted(set(state) - set(configured))]:
        entry = state.get(repo)
        if entry is None:
            rows.append(StatusRow(repo, None, None, None))
        else:
            rows.append(StatusRow(repo, entry.version, entry.asset, entry.installed_at))
    return rows


def _render_table(rows: list[StatusRow], console: RichConsole) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Component")
    table.add_column("Version")
    table.add_column("Asset", style="dim")
    table.add_column("Installed", style="dim")
    for row in rows:
        if row.installed:
            cells = (row.component, row.version or "", row.asset or "", row.installed_at or "")
            table.add_row(*(escape(cell) for cell in cells))
        else:
            table.add_row(escape(row.component), "[yellow]not installed[/yellow]", "", "")
    console.rich.print(table)


def status(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file (default ./rx.toml)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output directory"),
) -> None:
    """Show installed component versions."""
    ctx = build_context(config)
    output_dir = output or Path(ctx.config.output.dir)
    rows = collect_rows([c.id for c in ctx.config.components], output_dir)

    console: ConsoleProtocol = ctx.console
    if isinstance(console, RichConsole):
        _render_table(rows, console)
    else:
        for row in rows:
            if row.installed:
                console.print(f"{row.component} {row.version} {row.asset}")
            else:
                console.print(f"{row.component} not installed", Style.WARNING)

    console.print("Output:", Style.BOLD)
    console.link(output_dir)
