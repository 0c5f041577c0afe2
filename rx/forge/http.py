"""HTTP client abstraction for forge access.

This module provides:
- HttpClient: Protocol for HTTP operations (injectable for tests)
- RealHttpClient: Real implementation using urllib
- MockHttpClient: Scripted implementation for testing
"""

from __future__ import annotations

import json
import logging
import ssl
import time
import urllib.error
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from rx import __version__
from rx.core.result import Err, Ok, Result

if TYPE_CHECKING:
    from collections.abc import Callable

__all__ = [
    "HttpClient",
    "RealHttpClient",
    "MockHttpClient",
    "HttpError",
    "ProgressCallback",
    "parse_rate_limit",
]

logger = logging.getLogger(__name__)

type ProgressCallback = Callable[[int, int], None]

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True, slots=True)
class HttpError:
    """HTTP error details.

    Attributes:
        url: The URL that failed
        status: HTTP status code (0 for network errors and timeouts)
        message: Human-readable error message
        rate_limited: The forge signalled throttling
        retry_after: Seconds the forge asked us to wait, if it said
    """

    url: str
    status: int
    message: str
    rate_limited: bool = False
    retry_after: float | None = None

    @property
    def is_transient(self) -> bool:
        """Network failures, timeouts and 5xx may succeed on a later attempt."""
        return self.status == 0 or self.status >= 500

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status}: {self.message} ({self.url})"
        return f"{self.message} ({self.url})"


def parse_rate_limit(
    status: int,
    headers: Mapping[str, str],
    *,
    now: float | None = None,
) -> tuple[bool, float | None]:
    """Detect throttling from a response status and headers.

    GitHub answers 429, or 403 with ``X-RateLimit-Remaining: 0``. The wait
    hint comes from ``Retry-After`` (seconds or HTTP date) or, failing that,
    ``X-RateLimit-Reset`` (epoch seconds).

    Returns:
        (rate_limited, retry_after_seconds)
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    limited = status == 429 or (
        status == 403 and lowered.get("x-ratelimit-remaining", "").strip() == "0"
    )
    if not limited:
        return False, None

    current = time.time() if now is None else now

    retry_after = lowered.get("retry-after")
    if retry_after:
        try:
            return True, max(0.0, float(retry_after))
        except ValueError:
            pass
        try:
            return True, max(0.0, parsedate_to_datetime(retry_after).timestamp() - current)
        except (TypeError, ValueError):
            pass

    reset = lowered.get("x-ratelimit-reset")
    if reset:
        try:
            return True, max(0.0, float(reset) - current)
        except ValueError:
            pass

    return True, None


@runtime_checkable
class HttpClient(Protocol):
    """Protocol for HTTP operations.

    Injecting this lets resolver and fetcher tests run without the network.
    """

    def get_json(self, url: str) -> Result[object, HttpError]:
        """Fetch URL and parse the body as JSON.

        Returns:
            Ok with the decoded JSON value, or Err with HttpError
        """
        ...

    def download(
        self,
        url: str,
        dest: Path,
        progress: ProgressCallback | None = None,
    ) -> Result[Path, HttpError]:
        """Stream URL to dest in chunks.

        Args:
            url: URL to download
            dest: Destination path (parent must exist)
            progress: Optional callback(downloaded, total); total is 0 if unknown.
                Exceptions raised by the callback propagate to the caller.

        Returns:
            Ok with dest path, or Err with HttpError
        """
        ...


class RealHttpClient:
    """HTTP client using urllib.

    Handles:
    - HTTPS with system certificates
    - GitHub API headers and optional bearer token
    - Throttling detection (status + headers)
    - Chunked streaming downloads
    """

    def __init__(
        self,
        timeout: float = 30.0,
        token: str | None = None,
        user_agent: str = f"rx/{__version__}",
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self._token = token
        self._ssl_context = ssl.create_default_context()

    def _headers(self, *, api: bool) -> dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        if api:
            headers["Accept"] = "application/vnd.github+json"
            headers["X-GitHub-Api-Version"] = "2022-11-28"
        else:
            headers["Accept"] = "application/octet-stream"
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _error(self, url: str, exc: Exception) -> HttpError:
        if isinstance(exc, urllib.error.HTTPError):
            headers = {k: v for k, v in exc.headers.items()} if exc.headers else {}
            limited, retry_after = parse_rate_limit(exc.code, headers)
            message = "Rate limited" if limited else str(exc.reason)
            return HttpError(
                url=url,
                status=exc.code,
                message=message,
                rate_limited=limited,
                retry_after=retry_after,
            )
        if isinstance(exc, urllib.error.URLError):
            return HttpError(url=url, status=0, message=str(exc.reason))
        if isinstance(exc, TimeoutError):
            return HttpError(url=url, status=0, message="Request timed out")
        return HttpError(url=url, status=0, message=str(exc))

    def get_json(self, url: str) -> Result[object, HttpError]:
        """Fetch URL and parse as JSON."""
        logger.debug("GET %s", url)
        req = urllib.request.Request(url, headers=self._headers(api=True))
        try:
            with urllib.request.urlopen(
                req,
                timeout=self.timeout,
                context=self._ssl_context,
            ) as response:
                body = response.read()
        except (urllib.error.URLError, TimeoutError, ValueError, OSError) as e:
            return Err(self._error(url, e))

        try:
            return Ok(json.loads(body.decode("utf-8")))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return Err(HttpError(url=url, status=0, message=f"JSON parse error: {e}"))

    def download(
        self,
        url: str,
        dest: Path,
        progress: ProgressCallback | None = None,
    ) -> Result[Path, HttpError]:
        """Stream URL to dest with optional progress callback."""
        logger.debug("download %s -> %s", url, dest)
        req = urllib.request.Request(url, headers=self._headers(api=False))
        try:
            with urllib.request.urlopen(
                req,
                timeout=self.timeout,
                context=self._ssl_context,
            ) as response:
                total = int(response.headers.get("Content-Length") or 0)
                downloaded = 0
                with open(dest, "wb") as f:
                    while True:
                        chunk = response.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        f.write(chunk)
                        downloaded += len(chunk)
                        if progress:
                            progress(downloaded, total)
            return Ok(dest)
        except (urllib.error.URLError, TimeoutError, ValueError, OSError) as e:
            return Err(self._error(url, e))


type _Scripted[T] = T | HttpError


class MockHttpClient:
    """Mock HTTP client for testing.

    Responses are scripted per URL. Passing several responses queues them:
    each call consumes the next one and the last one repeats.

    Usage:
        client = MockHttpClient()
        client.set_json(url, HttpError(url, 503, "busy"), {"tag_name": "v1.0"})
        client.get_json(url)  # Err(503)
        client.get_json(url)  # Ok({...})
    """

    def __init__(self) -> None:
        self._json: dict[str, list[_Scripted[object]]] = {}
        self._downloads: dict[str, list[_Scripted[bytes]]] = {}
        self.calls: list[tuple[str, str]] = []

    def set_json(self, url: str, *responses: object) -> None:
        """Script JSON responses (or HttpError) for URL."""
        self._json[url] = list(responses)

    def set_download(self, url: str, *responses: bytes | HttpError) -> None:
        """Script download bodies (or HttpError) for URL."""
        self._downloads[url] = list(responses)

    def count(self, method: str, url: str) -> int:
        return sum(1 for call in self.calls if call == (method, url))

    @staticmethod
    def _next[T](queue: list[_Scripted[T]]) -> _Scripted[T]:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def get_json(self, url: str) -> Result[object, HttpError]:
        self.calls.append(("get_json", url))

        queue = self._json.get(url)
        if not queue:
            return Err(HttpError(url=url, status=404, message="Not found (mock)"))

        response = self._next(queue)
        if isinstance(response, HttpError):
            return Err(response)
        return Ok(response)

    def download(
        self,
        url: str,
        dest: Path,
        progress: ProgressCallback | None = None,
    ) -> Result[Path, HttpError]:
        """Write the scripted body to dest in two halves, reporting progress."""
        self.calls.append(("download", url))

        queue = self._downloads.get(url)
        if not queue:
            return Err(HttpError(url=url, status=404, message="Not found (mock)"))

        response = self._next(queue)
        if isinstance(response, HttpError):
            return Err(response)

        half = len(response) // 2
        with open(dest, "wb") as f:
            for chunk, done in ((response[:half], half), (response[half:], len(response))):
                f.write(chunk)
                if progress:
                    progress(done, len(response))
        return Ok(dest)
