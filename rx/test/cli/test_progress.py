from __future__ import annotations

import io

from rich.console import Console

from rx.cli.progress import ProgressReporter
from rx.pipeline.events import DownloadProgress, Phase, PhaseEvent


def test_reporter_tracks_components() -> None:
    buf = io.StringIO()
    console = Console(file=buf, width=120, color_system=None)

    with ProgressReporter(console) as reporter:
        reporter(PhaseEvent("o/a", Phase.RESOLVING))
        reporter(DownloadProgress("o/a", 512, 1024))
        reporter(PhaseEvent("o/b", Phase.FAILED, "resolve: not found"))
        reporter(PhaseEvent("o/a", Phase.SUCCEEDED, "1.0"))

    output = buf.getvalue()
    assert "o/a" in output
    assert "succeeded" in output
    assert "o/b" in output
    assert "failed" in output


def test_details_are_not_markup() -> None:
    buf = io.StringIO()
    console = Console(file=buf, width=160, color_system=None)

    with ProgressReporter(console) as reporter:
        reporter(PhaseEvent("o/[x]", Phase.DOWNLOADING, "[abc]*.zip"))
        reporter(PhaseEvent("o/[x]", Phase.FAILED, "resolve: pattern '[abc]*.zip' [/no match]"))

    output = buf.getvalue()
    assert "o/[x]" in output
    assert "[abc]*.zip" in output
    assert "[/no match]" in output
