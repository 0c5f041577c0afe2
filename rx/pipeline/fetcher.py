"""Artifact download with retry and integrity checks.

This module provides an ArtifactFetcher that:
- Streams an asset into a private temporary directory
- Retries transient failures with exponential backoff and jitter
- Verifies declared size and forge digest, re-downloading once on mismatch
- Removes its temporary directory on every failure path
"""

from __future__ import annotations

import hashlib
import logging
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING

from rx.core.result import Err, Ok, Result
from rx.forge.models import Asset
from rx.pipeline.cancel import CancelToken, OperationCancelled
from rx.pipeline.errors import (
    CancelledError,
    IntegrityError,
    PipelineError,
    from_http_error,
)
from rx.pipeline.events import DownloadProgress, EventSink, null_sink
from rx.pipeline.retry import RetryPolicy, RetryState
from rx.platform.files import remove_tree

if TYPE_CHECKING:
    from rx.forge.http import HttpClient
    from rx.forge.models import ReleaseDescriptor

__all__ = ["ArtifactFetcher", "DownloadedAsset", "verify_file"]

logger = logging.getLogger(__name__)

# A mismatch this many times in a row means a bad asset, not a bad transfer
INTEGRITY_ATTEMPTS = 2

_HASH_CHUNK = 1024 * 1024


@dataclass(frozen=True, slots=True)
class DownloadedAsset:
    """A fully downloaded and verified asset.

    The file lives in ``work_dir``, a directory private to this download.
    Use as a context manager, or call ``discard()``, to delete it.

    Attributes:
        path: The downloaded file
        work_dir: Private temp directory holding path
        asset: Asset metadata the bytes were checked against
        release: Release the asset belongs to (None for plain URL fetches)
        component: Id used in events and error messages
    """

    path: Path
    work_dir: Path
    asset: Asset
    release: ReleaseDescriptor | None
    component: str

    def discard(self) -> None:
        remove_tree(self.work_dir)

    def __enter__(self) -> DownloadedAsset:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.discard()


def _file_digest(path: Path, algorithm: str) -> str:
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        while chunk := f.read(_HASH_CHUNK):
            h.update(chunk)
    return h.hexdigest()


def verify_file(path: Path, asset: Asset) -> IntegrityError | None:
    """Check a downloaded file against the asset's declared size and digest.

    Digests use the forge's "algorithm:hex" form (e.g. "sha256:ab12...").
    An algorithm hashlib does not know is reported as a mismatch rather
    than skipped.

    Returns:
        None if the file matches, else IntegrityError
    """
    actual_size = path.stat().st_size
    if asset.size is not None and actual_size != asset.size:
        return IntegrityError(
            asset=asset.name,
            expected=f"{asset.size} bytes",
            actual=f"{actual_size} bytes",
        )

    if asset.digest:
        algorithm, sep, expected = asset.digest.partition(":")
        if not sep:
            algorithm, expected = "sha256", asset.digest
        algorithm = algorithm.strip().lower()
        if algorithm not in hashlib.algorithms_available:
            return IntegrityError(
                asset=asset.name,
                expected=asset.digest,
                actual=f"unsupported digest algorithm {algorithm!r}",
            )
        actual = _file_digest(path, algorithm)
        if actual != expected.strip().lower():
            return IntegrityError(
                asset=asset.name,
                expected=f"{algorithm}:{expected.strip().lower()}",
                actual=f"{algorithm}:{actual}",
            )

    return None


class ArtifactFetcher:
    """Download release assets into private temp directories.

    Usage:
        fetcher = ArtifactFetcher(http)
        match fetcher.fetch(release, release.selected):
            case Ok(downloaded):
                with downloaded:
                    ...  # extract downloaded.path
            case Err(error):
                print(error)
    """

    def __init__(
        self,
        http: HttpClient,
        *,
        policy: RetryPolicy | None = None,
        token: CancelToken | None = None,
        events: EventSink = null_sink,
        temp_dir: Path | None = None,
        sleep: Callable[[float], bool] | None = None,
        rand: Callable[[], float] | None = None,
    ) -> None:
        """Initialize fetcher.

        Args:
            http: HTTP client for downloads
            policy: Retry limits for transient failures
            token: Cancellation token checked between and during transfers
            events: Sink for DownloadProgress events
            temp_dir: Parent for private download directories (system temp if None)
            sleep: Wait function returning True if cancelled (defaults to token.sleep)
            rand: Random source in [0, 1) for backoff jitter
        """
        self._http = http
        self._policy = policy or RetryPolicy()
        self._token = token or CancelToken()
        self._events = events
        self._temp_dir = temp_dir
        self._sleep = sleep or self._token.sleep
        self._rand = rand

    def fetch(
        self,
        release: ReleaseDescriptor,
        asset: Asset,
    ) -> Result[DownloadedAsset, PipelineError]:
        """Download one asset of a resolved release.

        Args:
            release: The resolved release
            asset: Asset to download (normally release.selected)

        Returns:
            Ok with DownloadedAsset (caller owns cleanup), or Err
        """
        return self._fetch(asset, release=release, component=release.repo.id)

    def fetch_url(self, url: str, name: str) -> Result[DownloadedAsset, PipelineError]:
        """Download a plain file with no declared size or digest."""
        return self._fetch(Asset(name=name, url=url), release=None, component=name)

    def _fetch(
        self,
        asset: Asset,
        *,
        release: ReleaseDescriptor | None,
        component: str,
    ) -> Result[DownloadedAsset, PipelineError]:
        if self._temp_dir is not None:
            self._temp_dir.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix="rx-download-", dir=self._temp_dir))
        dest = work_dir / Path(asset.name).name

        try:
            result = self._download_verified(asset, dest, component)
        except OperationCancelled:
            result = Err(CancelledError())
        except BaseException:
            remove_tree(work_dir)
            raise

        if isinstance(result, Err):
            remove_tree(work_dir)
            return result

        return Ok(
            DownloadedAsset(
                path=dest,
                work_dir=work_dir,
                asset=asset,
                release=release,
                component=component,
            )
        )

    def _download_verified(
        self,
        asset: Asset,
        dest: Path,
        component: str,
    ) -> Result[Path, PipelineError]:
        integrity_attempts = 0
        while True:
            downloaded = self._download_with_retry(asset, dest, component)
            if isinstance(downloaded, Err):
                return downloaded

            mismatch = verify_file(dest, asset)
            if mismatch is None:
                logger.debug("%s: downloaded %s", component, asset.name)
                return downloaded

            dest.unlink(missing_ok=True)
            integrity_attempts += 1
            logger.warning("%s: integrity check failed: %s", component, mismatch)
            if integrity_attempts >= INTEGRITY_ATTEMPTS:
                return Err(mismatch)

    def _download_with_retry(
        self,
        asset: Asset,
        dest: Path,
        component: str,
    ) -> Result[Path, PipelineError]:
        state = RetryState(self._policy, rand=self._rand)

        def progress(downloaded: int, total: int) -> None:
            self._token.raise_if_cancelled()
            self._events(DownloadProgress(component, downloaded, total or (asset.size or 0)))

        while True:
            self._token.raise_if_cancelled()
            result = self._http.download(asset.url, dest, progress=progress)
            if isinstance(result, Ok):
                return result

            dest.unlink(missing_ok=True)
            error = from_http_error(result.error)
            if not state.failed(error):
                return Err(error)

            logger.debug(
                "%s: retrying download in %.1fs (attempt %d): %s",
                component,
                state.next_delay,
                state.attempt,
                error,
            )
            if self._sleep(state.next_delay):
                return Err(CancelledError())
