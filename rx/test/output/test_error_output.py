"""Tests for rx.output.errors - failure presentation and exit codes."""

from __future__ import annotations

from rx.core.config import ExtraFileConfig
from rx.core.errors import ErrorCode
from rx.forge.models import RepositorySpec
from rx.output.console import MockConsole, Style
from rx.output.errors import pipeline_exit_code, print_failure, print_pipeline_error, was_cancelled
from rx.pipeline.errors import (
    AssetSelectionError,
    CancelledError,
    MergeIOError,
    NotFoundError,
    RateLimitedError,
)
from rx.pipeline.merger import MergeReport
from rx.pipeline.orchestrator import (
    ComponentOutcome,
    ExtraOutcome,
    Failed,
    PipelineResult,
    Skipped,
    Stage,
    Succeeded,
)

_REPORT = MergeReport(component="o/a", written=("a.txt",), overwritten=(), skipped=())


def _outcome(repo: str, status: Succeeded | Skipped | Failed) -> ComponentOutcome:
    owner, name = repo.split("/")
    return ComponentOutcome(spec=RepositorySpec(owner, name), status=status)


class TestPrintFailure:
    def test_headline_names_stage_and_kind(self) -> None:
        console = MockConsole()
        failure = Failed(Stage.RESOLVE, NotFoundError(target="o/a", message="no published release"))

        print_failure("o/a", failure, console)

        assert console.has_error()
        assert console.messages[0] == "error: o/a: resolve failed [not-found] o/a: no published release"

    def test_asset_selection_lists_candidates(self) -> None:
        console = MockConsole()
        print_pipeline_error(
            AssetSelectionError(repo="o/a", pattern="*.zip", candidates=("a.zip", "b.zip")),
            console,
        )
        assert console.find("candidates: a.zip, b.zip")
        assert all(o.style == Style.DIM for o in console.outputs)

    def test_rate_limit_hint(self) -> None:
        console = MockConsole()
        print_pipeline_error(RateLimitedError(url="u"), console)
        assert console.find("GITHUB_TOKEN")

    def test_type_conflict_hint(self) -> None:
        console = MockConsole()
        print_pipeline_error(MergeIOError(path="p", message="m", reason="type-conflict"), console)
        assert console.find("--clean")

    def test_cancelled_has_no_hint(self) -> None:
        console = MockConsole()
        print_pipeline_error(CancelledError(), console)
        assert console.outputs == []


class TestExitCode:
    def test_all_succeeded(self) -> None:
        result = PipelineResult(
            components=(
                _outcome("o/a", Succeeded("1", "a.zip", _REPORT)),
                _outcome("o/b", Skipped("2", "b.zip")),
            )
        )
        assert pipeline_exit_code(result) == ErrorCode.OK

    def test_partial(self) -> None:
        result = PipelineResult(
            components=(
                _outcome("o/a", Succeeded("1", "a.zip", _REPORT)),
                _outcome("o/b", Failed(Stage.FETCH, NotFoundError(target="o/b"))),
            )
        )
        assert pipeline_exit_code(result) == ErrorCode.PARTIAL_FAILURE

    def test_failed_extra_counts(self) -> None:
        result = PipelineResult(
            components=(_outcome("o/a", Succeeded("1", "a.zip", _REPORT)),),
            extras=(
                ExtraOutcome(
                    ExtraFileConfig("x.conf", "u"),
                    Failed(Stage.FETCH, NotFoundError(target="u")),
                ),
            ),
        )
        assert result.failed == ("x.conf",)
        assert pipeline_exit_code(result) == ErrorCode.PARTIAL_FAILURE

    def test_all_failed(self) -> None:
        result = PipelineResult(
            components=(_outcome("o/a", Failed(Stage.RESOLVE, NotFoundError(target="o/a"))),)
        )
        assert pipeline_exit_code(result) == ErrorCode.ALL_FAILED

    def test_cancelled_wins(self) -> None:
        result = PipelineResult(
            components=(
                _outcome("o/a", Succeeded("1", "a.zip", _REPORT)),
                _outcome("o/b", Failed(Stage.FETCH, CancelledError())),
            )
        )
        assert was_cancelled(result)
        assert pipeline_exit_code(result) == ErrorCode.CANCELLED
