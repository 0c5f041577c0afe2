"""Tests for rx.pipeline.errors - classification of HTTP failures."""

from rx.forge.http import HttpError
from rx.pipeline.errors import (
    CancelledError,
    ForgeUnavailableError,
    MergeIOError,
    NotFoundError,
    RateLimitedError,
    from_http_error,
    is_retryable,
)


class TestFromHttpError:
    def test_404(self) -> None:
        error = from_http_error(HttpError("u", 404, "Not Found"))
        assert error == NotFoundError(target="u", message="Not Found")

    def test_rate_limited(self) -> None:
        error = from_http_error(HttpError("u", 403, "Rate limited", rate_limited=True, retry_after=5))
        assert error == RateLimitedError(url="u", retry_after=5)

    def test_plain_403_is_permanent(self) -> None:
        error = from_http_error(HttpError("u", 403, "Forbidden"))
        assert error == ForgeUnavailableError(url="u", status=403, message="Forbidden", transient=False)
        assert not is_retryable(error)

    def test_5xx_and_network_are_transient(self) -> None:
        assert is_retryable(from_http_error(HttpError("u", 500, "boom")))
        assert is_retryable(from_http_error(HttpError("u", 0, "timeout")))


class TestKinds:
    def test_kinds_are_stable(self) -> None:
        assert NotFoundError(target="x").kind == "not-found"
        assert MergeIOError(path="p", message="m").kind == "merge-io"
        assert CancelledError().kind == "cancelled"
        assert str(CancelledError()) == "cancelled"
