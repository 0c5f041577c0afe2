"""Error presentation utilities.

Centralized failure formatting and exit code mapping for consistent UX.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rx.core.errors import ErrorCode
from rx.output.console import Style
from rx.pipeline.errors import (
    AssetSelectionError,
    CancelledError,
    ForgeUnavailableError,
    IntegrityError,
    MergeIOError,
    NotFoundError,
    PathTraversalError,
    PipelineError,
    RateLimitedError,
    UnsupportedFormatError,
)
from rx.pipeline.orchestrator import (
    AllFailed,
    AllSucceeded,
    Failed,
    PartiallyFailed,
    PipelineResult,
)

if TYPE_CHECKING:
    from rx.output.console import ConsoleProtocol

__all__ = ["print_pipeline_error", "print_failure", "pipeline_exit_code", "was_cancelled"]


def print_pipeline_error(error: PipelineError, console: ConsoleProtocol) -> None:
    """Print hints for a pipeline error (the headline is printed by print_failure)."""
    match error:
        case NotFoundError():
            console.print("hint: check owner/name and that a non-draft release exists", Style.DIM)
        case AssetSelectionError(candidates=candidates) if candidates:
            console.print(f"candidates: {', '.join(candidates)}", Style.DIM)
            console.print("hint: set a narrower 'asset' glob for this component", Style.DIM)
        case RateLimitedError():
            console.print("hint: set GITHUB_TOKEN to raise the API rate limit", Style.DIM)
        case ForgeUnavailableError(status=401 | 403):
            console.print("hint: check the token in GITHUB_TOKEN", Style.DIM)
        case IntegrityError(expected=expected, actual=actual):
            console.print(f"expected {expected}, got {actual}", Style.DIM)
        case UnsupportedFormatError():
            console.print("hint: supported formats are .zip, .tar, .tar.gz, .tar.xz, .tar.bz2", Style.DIM)
        case PathTraversalError(entry=entry):
            console.print(f"refused entry: {entry}", Style.DIM)
        case MergeIOError(reason="type-conflict"):
            console.print("hint: rerun with --clean to start from an empty output", Style.DIM)
        case MergeIOError(merged=merged) if merged:
            console.print(f"{len(merged)} file(s) from this component were already written", Style.DIM)
        case _:
            pass


def print_failure(component: str, failure: Failed, console: ConsoleProtocol) -> None:
    """Print one failed component: stage, error kind and message."""
    console.error(f"{component}: {failure.stage} failed [{failure.kind}] {failure.error}")
    print_pipeline_error(failure.error, console)


def was_cancelled(result: PipelineResult) -> bool:
    statuses = [c.status for c in result.components]
    statuses.extend(e.failure for e in result.extras if e.failure is not None)
    return any(isinstance(s, Failed) and isinstance(s.error, CancelledError) for s in statuses)


def pipeline_exit_code(result: PipelineResult) -> int:
    """Get exit code for a finished pipeline run."""
    if was_cancelled(result):
        return int(ErrorCode.CANCELLED)
    match result.outcome:
        case AllSucceeded():
            return int(ErrorCode.OK)
        case PartiallyFailed():
            return int(ErrorCode.PARTIAL_FAILURE)
        case AllFailed():
            return int(ErrorCode.ALL_FAILED)
    return int(ErrorCode.ALL_FAILED)
