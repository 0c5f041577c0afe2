"""Rich progress display fed by pipeline events."""

from __future__ import annotations

import threading
from types import TracebackType

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TransferSpeedColumn,
)

from rx.pipeline.events import DownloadProgress, Phase, PhaseEvent, PipelineEvent

__all__ = ["ProgressReporter"]

_PHASE_STYLE = {
    Phase.SUCCEEDED: "green",
    Phase.SKIPPED: "dim",
    Phase.FAILED: "red",
}


class ProgressReporter:
    """One progress row per component; usable directly as an EventSink.

    Usage:
        with ProgressReporter(console) as events:
            Pipeline(..., events=events).run(specs, output)
    """

    def __init__(self, console: Console) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=console,
        )
        self._tasks: dict[str, TaskID] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> ProgressReporter:
        self._progress.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._progress.stop()

    def _task(self, component: str) -> TaskID:
        with self._lock:
            task = self._tasks.get(component)
            if task is None:
                task = self._progress.add_task(component, total=None)
                self._tasks[component] = task
            return task

    def __call__(self, event: PipelineEvent) -> None:
        match event:
            case DownloadProgress(component=component, downloaded=downloaded, total=total):
                self._progress.update(
                    self._task(component),
                    completed=downloaded,
                    total=total or None,
                )
            case PhaseEvent(component=component, phase=phase, detail=detail):
                task = self._task(component)
                style = _PHASE_STYLE.get(phase, "cyan")
                suffix = f" {escape(detail)}" if detail else ""
                description = f"{escape(component)} [{style}]{phase}[/{style}]{suffix}"
                if phase.is_terminal:
                    self._progress.update(task, description=description, total=1, completed=1)
                else:
                    self._progress.update(task, description=description)
