"""Pipeline orchestration: resolve, fetch, extract and merge every component.

Resolution, download and extraction run on a small worker pool. Merges run
on the calling thread in the configured order, so the output tree has a
single writer and later components win path collisions deterministically.
A failing component never stops its siblings.
"""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from rx.core.result import Err
from rx.pipeline.cancel import CancelToken
from rx.pipeline.errors import (
    CancelledError,
    ExtractionError,
    ForgeUnavailableError,
    PipelineError,
)
from rx.pipeline.events import EventSink, Phase, PhaseEvent, null_sink
from rx.pipeline.merger import MergeReport, OutputTree, TreeMerger
from rx.pipeline.state import ComponentState, load_state, save_state

if TYPE_CHECKING:
    from rx.core.config import ExtraFileConfig
    from rx.forge.models import ReleaseDescriptor, RepositorySpec
    from rx.forge.resolver import ReleaseResolver
    from rx.pipeline.extractor import ArchiveExtractor, StagedTree
    from rx.pipeline.fetcher import ArtifactFetcher

__all__ = [
    "Pipeline",
    "PipelineResult",
    "ComponentOutcome",
    "ExtraOutcome",
    "Stage",
    "Skipped",
    "Succeeded",
    "Failed",
    "ComponentStatus",
    "AllSucceeded",
    "PartiallyFailed",
    "AllFailed",
    "Outcome",
]

logger = logging.getLogger(__name__)


class Stage(Enum):
    """Sub-pipeline stage a failure happened in."""

    RESOLVE = "resolve"
    FETCH = "fetch"
    EXTRACT = "extract"
    MERGE = "merge"

    def __str__(self) -> str:
        return self.value


# -----------------------------------------------------------------------------
# Per-component terminal states
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Skipped:
    """Already installed at the latest version."""

    version: str
    asset: str


@dataclass(frozen=True, slots=True)
class Succeeded:
    version: str
    asset: str
    report: MergeReport


@dataclass(frozen=True, slots=True)
class Failed:
    stage: Stage
    error: PipelineError

    @property
    def kind(self) -> str:
        return self.error.kind


ComponentStatus = Skipped | Succeeded | Failed


@dataclass(frozen=True, slots=True)
class ComponentOutcome:
    spec: RepositorySpec
    status: ComponentStatus

    @property
    def id(self) -> str:
        return self.spec.id


@dataclass(frozen=True, slots=True)
class ExtraOutcome:
    """Result of fetching one plain file; ``failure`` is None on success."""

    extra: ExtraFileConfig
    failure: Failed | None = None
    report: MergeReport | None = None

    @property
    def id(self) -> str:
        return self.extra.relative_path


# -----------------------------------------------------------------------------
# Run-level outcome
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AllSucceeded:
    pass


@dataclass(frozen=True, slots=True)
class PartiallyFailed:
    failed: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class AllFailed:
    failed: tuple[str, ...]


Outcome = AllSucceeded | PartiallyFailed | AllFailed


@dataclass(frozen=True, slots=True)
class PipelineResult:
    components: tuple[ComponentOutcome, ...]
    extras: tuple[ExtraOutcome, ...] = ()

    @property
    def failed(self) -> tuple[str, ...]:
        """Ids of failed components, then failed extra files."""
        ids = [c.id for c in self.components if isinstance(c.status, Failed)]
        ids.extend(e.id for e in self.extras if e.failure is not None)
        return tuple(ids)

    @property
    def outcome(self) -> Outcome:
        failed = self.failed
        total = len(self.components) + len(self.extras)
        if not failed:
            return AllSucceeded()
        if len(failed) == total:
            return AllFailed(failed)
        return PartiallyFailed(failed)

    def get(self, repo: str) -> ComponentOutcome | None:
        return next((c for c in self.components if c.id == repo), None)


# -----------------------------------------------------------------------------
# Pipeline
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Staged:
    release: ReleaseDescriptor
    staged: StagedTree


type _Prepared = _Staged | Skipped | Failed


def _unexpected_error(stage: Stage, target: str, error: Exception) -> PipelineError:
    message = f"unexpected {type(error).__name__}: {error}"
    if stage is Stage.EXTRACT:
        return ExtractionError(archive=target, message=message)
    return ForgeUnavailableError(url=target, status=0, message=message, transient=False)


class Pipeline:
    """Drive every component through resolve -> fetch -> extract -> merge.

    Usage:
        pipeline = Pipeline(resolver=resolver, fetcher=fetcher, extractor=extractor)
        result = pipeline.run(specs, OutputTree(Path("remix")))
        match result.outcome:
            case AllSucceeded():
                ...
            case PartiallyFailed(failed=ids) | AllFailed(failed=ids):
                ...
    """

    def __init__(
        self,
        *,
        resolver: ReleaseResolver,
        fetcher: ArtifactFetcher,
        extractor: ArchiveExtractor,
        merger: TreeMerger | None = None,
        token: CancelToken | None = None,
        events: EventSink = null_sink,
        workers: int = 2,
        exclude: Sequence[str] = (),
        manifest: str | None = "build-names.txt",
    ) -> None:
        """Initialize pipeline.

        Args:
            resolver: Release resolver
            fetcher: Artifact fetcher
            extractor: Archive extractor
            merger: Tree merger (default TreeMerger())
            token: Cancellation token shared with fetcher/extractor
            events: Sink for phase events (called from worker threads)
            workers: Concurrent resolve/fetch/extract jobs (1 = sequential)
            exclude: Globs never merged, for every component
            manifest: Output-relative file listing installed assets (None: don't write)
        """
        self._resolver = resolver
        self._fetcher = fetcher
        self._extractor = extractor
        self._merger = merger or TreeMerger()
        self._token = token or CancelToken()
        self._events = events
        self._workers = max(1, workers)
        self._exclude = tuple(exclude)
        self._manifest = manifest

    @property
    def token(self) -> CancelToken:
        return self._token

    def run(
        self,
        specs: Sequence[RepositorySpec],
        output: OutputTree,
        *,
        force: bool = False,
        clean: bool = False,
        extras: Sequence[ExtraFileConfig] = (),
    ) -> PipelineResult:
        """Install every spec into output, in order.

        Args:
            specs: Components; later entries win path collisions
            output: Shared output tree
            force: Reinstall even if the recorded version is current
            clean: Wipe the output tree first
            extras: Plain files fetched after all components

        Returns:
            PipelineResult with one outcome per spec and per extra

        Raises:
            ValueError: If two specs name the same repository
            OSError: If the output tree cannot be prepared or state cannot be saved
            KeyboardInterrupt: After cancelling and cleaning up in-flight work
        """
        ids = [spec.id for spec in specs]
        if len(set(ids)) != len(ids):
            raise ValueError(f"duplicate repositories: {ids}")

        output.prepare(clean=clean)
        state = load_state(output.root)

        with ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="rx") as pool:
            futures = [
                pool.submit(self._prepare, spec, state.get(spec.id), force) for spec in specs
            ]
            try:
                components = tuple(
                    self._finish(spec, future, output)
                    for spec, future in zip(specs, futures, strict=True)
                )
            except BaseException:
                self._token.cancel()
                self._drain(futures)
                raise

        extra_outcomes = tuple(self._fetch_extra(extra, output) for extra in extras)

        for outcome in components:
            if isinstance(outcome.status, Succeeded):
                state[outcome.id] = ComponentState.now(outcome.status.version, outcome.status.asset)
        with output.lock:
            save_state(output.root, state)

        self._write_manifest(components, output)
        return PipelineResult(components=components, extras=extra_outcomes)

    # -- worker side ---------------------------------------------------------

    def _emit(self, component: str, phase: Phase, detail: str = "") -> None:
        self._events(PhaseEvent(component, phase, detail))

    def _prepare(
        self,
        spec: RepositorySpec,
        recorded: ComponentState | None,
        force: bool,
    ) -> _Prepared:
        """Resolve, fetch and extract one component on a worker thread.

        Any exception other than a BaseException like KeyboardInterrupt
        becomes a failure of this component at the stage it was raised in.
        """
        stage = Stage.RESOLVE
        target = spec.id
        try:
            if self._token.cancelled:
                return Failed(stage, CancelledError())

            self._emit(spec.id, Phase.RESOLVING)
            resolved = self._resolver.resolve(spec)
            if isinstance(resolved, Err):
                return Failed(stage, resolved.error)
            release = resolved.value

            if not force and recorded is not None and recorded.version == release.version:
                logger.info("%s: %s already installed", spec.id, release.version)
                return Skipped(release.version, recorded.asset)

            stage = Stage.FETCH
            target = release.selected.url
            if self._token.cancelled:
                return Failed(stage, CancelledError())

            self._emit(spec.id, Phase.DOWNLOADING, release.selected.name)
            fetched = self._fetcher.fetch(release, release.selected)
            if isinstance(fetched, Err):
                return Failed(stage, fetched.error)

            stage = Stage.EXTRACT
            target = release.selected.name
            with fetched.value as downloaded:
                if self._token.cancelled:
                    return Failed(stage, CancelledError())
                self._emit(spec.id, Phase.EXTRACTING, release.selected.name)
                extracted = self._extractor.extract(
                    downloaded,
                    strip_components=spec.strip_components,
                )
            if isinstance(extracted, Err):
                return Failed(stage, extracted.error)

            return _Staged(release, extracted.value)
        except Exception as e:
            logger.exception("%s: unexpected error during %s", spec.id, stage)
            return Failed(stage, _unexpected_error(stage, target, e))

    # -- orchestrator side ---------------------------------------------------

    def _finish(
        self,
        spec: RepositorySpec,
        future: Future[_Prepared],
        output: OutputTree,
    ) -> ComponentOutcome:
        try:
            prepared = future.result()
        except concurrent.futures.CancelledError:
            prepared = Failed(Stage.RESOLVE, CancelledError())

        status: ComponentStatus
        match prepared:
            case _Staged(release=release, staged=staged):
                status = self._merge(spec, release, staged, output)
            case Skipped() | Failed():
                status = prepared

        match status:
            case Succeeded(version=version):
                self._emit(spec.id, Phase.SUCCEEDED, version)
            case Skipped(version=version):
                self._emit(spec.id, Phase.SKIPPED, version)
            case Failed(stage=stage, error=error):
                logger.warning("%s: %s failed: %s", spec.id, stage, error)
                self._emit(spec.id, Phase.FAILED, f"{stage}: {error}")

        return ComponentOutcome(spec=spec, status=status)

    def _merge(
        self,
        spec: RepositorySpec,
        release: ReleaseDescriptor,
        staged: StagedTree,
        output: OutputTree,
    ) -> ComponentStatus:
        if self._token.cancelled:
            staged.discard()
            return Failed(Stage.MERGE, CancelledError())

        self._emit(spec.id, Phase.MERGING, release.version)
        merged = self._merger.merge(staged, output, exclude=(*self._exclude, *spec.exclude))
        if isinstance(merged, Err):
            return Failed(Stage.MERGE, merged.error)
        return Succeeded(release.version, release.selected.name, merged.value)

    def _drain(self, futures: list[Future[_Prepared]]) -> None:
        """Wait for in-flight work after cancel and drop whatever it staged."""
        for future in futures:
            future.cancel()
        for future in futures:
            if future.cancelled():
                continue
            try:
                prepared = future.result()
            except Exception:
                logger.exception("worker failed while cancelling")
                continue
            if isinstance(prepared, _Staged):
                prepared.staged.discard()

    def _fetch_extra(self, extra: ExtraFileConfig, output: OutputTree) -> ExtraOutcome:
        component = extra.relative_path
        if self._token.cancelled:
            return ExtraOutcome(extra, Failed(Stage.FETCH, CancelledError()))

        self._emit(component, Phase.DOWNLOADING, extra.url)
        fetched = self._fetcher.fetch_url(extra.url, extra.name)
        if isinstance(fetched, Err):
            failure = Failed(Stage.FETCH, fetched.error)
            self._emit(component, Phase.FAILED, f"{failure.stage}: {failure.error}")
            return ExtraOutcome(extra, failure)

        with fetched.value as downloaded:
            staged = self._extractor.stage_file(downloaded, component)
        if isinstance(staged, Err):
            failure = Failed(Stage.EXTRACT, staged.error)
            self._emit(component, Phase.FAILED, f"{failure.stage}: {failure.error}")
            return ExtraOutcome(extra, failure)

        self._emit(component, Phase.MERGING)
        merged = self._merger.merge(staged.value, output)
        if isinstance(merged, Err):
            failure = Failed(Stage.MERGE, merged.error)
            self._emit(component, Phase.FAILED, f"{failure.stage}: {failure.error}")
            return ExtraOutcome(extra, failure)

        self._emit(component, Phase.SUCCEEDED)
        return ExtraOutcome(extra, report=merged.value)

    def _write_manifest(self, components: tuple[ComponentOutcome, ...], output: OutputTree) -> None:
        if not self._manifest:
            return
        names = [
            c.status.asset for c in components if isinstance(c.status, (Succeeded, Skipped))
        ]
        if names:
            output.write_text(self._manifest, "".join(f"{name}\n" for name in names))
