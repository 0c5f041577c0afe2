"""Tests for rx.forge.http - throttling detection and the mock client."""

from __future__ import annotations

from email.utils import formatdate
from pathlib import Path

from rx.core.result import Err, Ok
from rx.forge.http import HttpClient, HttpError, MockHttpClient, RealHttpClient, parse_rate_limit


class TestHttpError:
    def test_transient_statuses(self) -> None:
        assert HttpError("u", 0, "timeout").is_transient
        assert HttpError("u", 503, "busy").is_transient
        assert not HttpError("u", 404, "missing").is_transient
        assert not HttpError("u", 401, "denied").is_transient

    def test_str(self) -> None:
        assert str(HttpError("https://x", 500, "boom")) == "HTTP 500: boom (https://x)"
        assert str(HttpError("https://x", 0, "timed out")) == "timed out (https://x)"


class TestParseRateLimit:
    """GitHub throttling: 429, or 403 with no remaining quota."""

    def test_not_limited(self) -> None:
        assert parse_rate_limit(403, {}) == (False, None)
        assert parse_rate_limit(403, {"X-RateLimit-Remaining": "12"}) == (False, None)
        assert parse_rate_limit(500, {"Retry-After": "3"}) == (False, None)

    def test_429_with_retry_after_seconds(self) -> None:
        assert parse_rate_limit(429, {"Retry-After": "7"}) == (True, 7.0)

    def test_403_with_reset_header(self) -> None:
        headers = {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1060"}
        assert parse_rate_limit(403, headers, now=1000.0) == (True, 60.0)

    def test_retry_after_http_date(self) -> None:
        headers = {"Retry-After": formatdate(1_000_030, usegmt=True)}
        limited, retry_after = parse_rate_limit(429, headers, now=1_000_000.0)
        assert limited
        assert retry_after == 30.0

    def test_reset_in_the_past_is_zero(self) -> None:
        headers = {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "10"}
        assert parse_rate_limit(403, headers, now=100.0) == (True, 0.0)

    def test_limited_without_hint(self) -> None:
        assert parse_rate_limit(429, {"Retry-After": "soon"}) == (True, None)


class TestMockHttpClient:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(MockHttpClient(), HttpClient)
        assert isinstance(RealHttpClient(), HttpClient)

    def test_unknown_url_is_404(self) -> None:
        result = MockHttpClient().get_json("https://api.test/missing")
        assert isinstance(result, Err)
        assert result.error.status == 404

    def test_queued_responses_last_is_sticky(self) -> None:
        client = MockHttpClient()
        url = "https://api.test/x"
        client.set_json(url, HttpError(url, 503, "busy"), {"n": 1})

        assert isinstance(client.get_json(url), Err)
        assert client.get_json(url) == Ok({"n": 1})
        assert client.get_json(url) == Ok({"n": 1})
        assert client.count("get_json", url) == 3

    def test_download_reports_progress(self, tmp_path: Path) -> None:
        client = MockHttpClient()
        client.set_download("https://dl.test/a.zip", b"0123456789")
        seen: list[tuple[int, int]] = []

        result = client.download(
            "https://dl.test/a.zip",
            tmp_path / "a.zip",
            lambda done, total: seen.append((done, total)),
        )

        assert result == Ok(tmp_path / "a.zip")
        assert (tmp_path / "a.zip").read_bytes() == b"0123456789"
        assert seen == [(5, 10), (10, 10)]
