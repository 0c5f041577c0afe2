"""Progress events emitted by the pipeline.

The pipeline never prints. Front-ends subscribe with an ``EventSink`` and
render the events however they like; sinks are called from worker threads.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

__all__ = ["Phase", "PhaseEvent", "DownloadProgress", "PipelineEvent", "EventSink", "null_sink"]


class Phase(Enum):
    RESOLVING = "resolving"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    MERGING = "merging"
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.SUCCEEDED, Phase.SKIPPED, Phase.FAILED)


@dataclass(frozen=True, slots=True)
class PhaseEvent:
    """A component entered a phase.

    Attributes:
        component: Repository id or extra file path
        phase: The phase entered
        detail: Version, asset name or error text, depending on phase
    """

    component: str
    phase: Phase
    detail: str = ""


@dataclass(frozen=True, slots=True)
class DownloadProgress:
    component: str
    downloaded: int
    total: int


type PipelineEvent = PhaseEvent | DownloadProgress
type EventSink = Callable[[PipelineEvent], None]


def null_sink(_event: PipelineEvent) -> None:
    """Discard events."""
