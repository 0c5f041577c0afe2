"""Sync command - resolve, download and merge every configured component."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from pathlib import Path

import typer

from rx.cli.context import build_context, configure_logging
from rx.cli.progress import ProgressReporter
from rx.core.config import Config
from rx.core.errors import ErrorCode
from rx.forge.http import HttpClient
from rx.forge.models import RepositorySpec
from rx.forge.resolver import ReleaseResolver
from rx.output.console import ConsoleProtocol, RichConsole, Style
from rx.output.errors import pipeline_exit_code, print_failure
from rx.pipeline.cancel import CancelToken
from rx.pipeline.events import EventSink, null_sink
from rx.pipeline.extractor import ArchiveExtractor
from rx.pipeline.fetcher import ArtifactFetcher
from rx.pipeline.merger import OutputTree
from rx.pipeline.orchestrator import (
    Failed,
    Pipeline,
    PipelineResult,
    Skipped,
    Succeeded,
)
from rx.pipeline.retry import RetryPolicy


@contextlib.contextmanager
def _event_sink(console: ConsoleProtocol) -> Iterator[EventSink]:
    if isinstance(console, RichConsole):
        with ProgressReporter(console.rich) as reporter:
            yield reporter
    else:
        yield null_sink


def build_pipeline(
    config: Config,
    http: HttpClient,
    *,
    token: CancelToken,
    events: EventSink,
    workers: int | None = None,
) -> Pipeline:
    """Wire resolver, fetcher and extractor from configuration."""
    network = config.network
    policy = RetryPolicy(
        attempts=network.attempts,
        base_delay=network.base_delay,
        max_delay=network.max_delay,
    )
    temp_dir = Path(network.temp_dir) if network.temp_dir else None
    return Pipeline(
        resolver=ReleaseResolver(http, api_url=network.api_url, policy=policy, sleep=token.sleep),
        fetcher=ArtifactFetcher(http, policy=policy, token=token, events=events, temp_dir=temp_dir),
        extractor=ArchiveExtractor(temp_dir=temp_dir, token=token),
        token=token,
        events=events,
        workers=workers or network.workers,
        exclude=config.output.exclude,
        manifest=config.output.manifest,
    )


def _print_summary(result: PipelineResult, console: ConsoleProtocol) -> None:
    console.header("Components")
    for outcome in result.components:
        match outcome.status:
            case Succeeded(version=version, report=report):
                console.success(f"{outcome.id} {version} ({len(report.written)} files)")
                for o in report.overwritten:
                    owner = f" (from {o.previous_owner})" if o.previous_owner else ""
                    console.print(f"  replaced {o.path}{owner}", Style.DIM)
            case Skipped(version=version):
                console.print(f"{outcome.id} {version} already installed", Style.DIM)
            case Failed() as failure:
                print_failure(outcome.id, failure, console)

    if result.extras:
        console.header("Extra files")
        for extra in result.extras:
            if extra.failure is None:
                console.success(extra.id)
            else:
                print_failure(extra.id, extra.failure, console)


def sync(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file (default ./rx.toml)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output directory"),
    force: bool = typer.Option(False, "--force", help="Reinstall even if up to date"),
    clean: bool = typer.Option(False, "--clean", help="Wipe the output directory first"),
    workers: int | None = typer.Option(None, "--workers", min=1, help="Parallel downloads"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show diagnostic logging"),
) -> None:
    """Install the latest release of every component into the output directory."""
    configure_logging(verbose)
    ctx = build_context(config)
    output_dir = output or Path(ctx.config.output.dir)
    specs = [RepositorySpec.from_config(c) for c in ctx.config.components]
    token = CancelToken()

    try:
        with _event_sink(ctx.console) as events:
            pipeline = build_pipeline(
                ctx.config,
                ctx.http,
                token=token,
                events=events,
                workers=workers,
            )
            result = pipeline.run(
                specs,
                OutputTree(output_dir),
                force=force,
                clean=clean,
                extras=ctx.config.extras,
            )
    except KeyboardInterrupt:
        ctx.console.error("cancelled")
        raise typer.Exit(code=int(ErrorCode.CANCELLED))
    except OSError as e:
        ctx.console.error(f"output {output_dir}: {e}")
        raise typer.Exit(code=int(ErrorCode.IO_ERROR))

    _print_summary(result, ctx.console)
    ctx.console.newline()
    ctx.console.print("Output:", Style.BOLD)
    ctx.console.link(output_dir)

    code = pipeline_exit_code(result)
    if code != ErrorCode.OK:
        raise typer.Exit(code=code)
