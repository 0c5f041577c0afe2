"""Error taxonomy for the install pipeline.

Errors are plain values carried in ``Err``. Each type has a stable ``kind``
string that the CLI shows next to the failing stage.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from rx.forge.http import HttpError

__all__ = [
    "NotFoundError",
    "AssetSelectionError",
    "ForgeUnavailableError",
    "RateLimitedError",
    "IntegrityError",
    "UnsupportedFormatError",
    "PathTraversalError",
    "ExtractionError",
    "MergeIOError",
    "CancelledError",
    "PipelineError",
    "from_http_error",
    "is_retryable",
]


@dataclass(frozen=True, slots=True)
class NotFoundError:
    """The repository, its latest release, or an asset URL does not exist."""

    kind: ClassVar[str] = "not-found"

    target: str
    message: str = "not found"

    def __str__(self) -> str:
        return f"{self.target}: {self.message}"


@dataclass(frozen=True, slots=True)
class AssetSelectionError:
    """Zero or several assets match where exactly one is required."""

    kind: ClassVar[str] = "asset-selection"

    repo: str
    pattern: str | None
    candidates: tuple[str, ...]

    def __str__(self) -> str:
        names = ", ".join(self.candidates) or "none"
        if self.pattern is None:
            if not self.candidates:
                return f"{self.repo}: release has no assets"
            return f"{self.repo}: several assets and no asset pattern configured ({names})"
        return f"{self.repo}: pattern {self.pattern!r} must match exactly one asset (matched: {names})"


@dataclass(frozen=True, slots=True)
class ForgeUnavailableError:
    """Non-2xx answer or no answer at all.

    Attributes:
        transient: True for 5xx/network/timeout, False for permanent 4xx
    """

    kind: ClassVar[str] = "forge-unavailable"

    url: str
    status: int
    message: str
    transient: bool

    def __str__(self) -> str:
        tag = "transient" if self.transient else "permanent"
        if self.status:
            return f"HTTP {self.status} ({tag}): {self.message} ({self.url})"
        return f"{self.message} ({tag}) ({self.url})"


@dataclass(frozen=True, slots=True)
class RateLimitedError:
    """The forge throttled us."""

    kind: ClassVar[str] = "rate-limited"

    url: str
    retry_after: float | None = None

    def __str__(self) -> str:
        if self.retry_after is not None:
            return f"rate limited, retry after {self.retry_after:.0f}s ({self.url})"
        return f"rate limited ({self.url})"


@dataclass(frozen=True, slots=True)
class IntegrityError:
    """Downloaded bytes do not match the declared size or digest."""

    kind: ClassVar[str] = "integrity"

    asset: str
    expected: str
    actual: str

    def __str__(self) -> str:
        return f"{self.asset}: expected {self.expected}, got {self.actual}"


@dataclass(frozen=True, slots=True)
class UnsupportedFormatError:
    kind: ClassVar[str] = "unsupported-format"

    archive: str

    def __str__(self) -> str:
        return f"unsupported archive format: {self.archive}"


@dataclass(frozen=True, slots=True)
class PathTraversalError:
    """An archive entry would land outside the staging root."""

    kind: ClassVar[str] = "path-traversal"

    archive: str
    entry: str

    def __str__(self) -> str:
        return f"{self.archive}: entry {self.entry!r} escapes the extraction root"


@dataclass(frozen=True, slots=True)
class ExtractionError:
    kind: ClassVar[str] = "extraction"

    archive: str
    message: str

    def __str__(self) -> str:
        return f"{self.archive}: {self.message}"


@dataclass(frozen=True, slots=True)
class MergeIOError:
    """Writing into the output tree failed.

    Attributes:
        path: Relative output path being written
        message: What went wrong
        reason: "io" for filesystem errors, "type-conflict" for file/directory clashes
        merged: Paths already written from the same staged tree (left in place)
    """

    kind: ClassVar[str] = "merge-io"

    path: str
    message: str
    reason: str = "io"
    merged: tuple[str, ...] = ()

    def __str__(self) -> str:
        partial = f" ({len(self.merged)} file(s) already merged)" if self.merged else ""
        return f"{self.path}: {self.message}{partial}"


@dataclass(frozen=True, slots=True)
class CancelledError:
    kind: ClassVar[str] = "cancelled"

    def __str__(self) -> str:
        return "cancelled"


PipelineError = (
    NotFoundError
    | AssetSelectionError
    | ForgeUnavailableError
    | RateLimitedError
    | IntegrityError
    | UnsupportedFormatError
    | PathTraversalError
    | ExtractionError
    | MergeIOError
    | CancelledError
)


def from_http_error(error: HttpError) -> NotFoundError | ForgeUnavailableError | RateLimitedError:
    """Classify an HTTP failure."""
    if error.rate_limited:
        return RateLimitedError(url=error.url, retry_after=error.retry_after)
    if error.status == 404:
        return NotFoundError(target=error.url, message=error.message)
    return ForgeUnavailableError(
        url=error.url,
        status=error.status,
        message=error.message,
        transient=error.is_transient,
    )


def is_retryable(error: PipelineError) -> bool:
    """True for failures worth another network attempt."""
    match error:
        case ForgeUnavailableError(transient=transient):
            return transient
        case RateLimitedError():
            return True
        case _:
            return False
