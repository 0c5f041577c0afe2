"""Release resolution against the GitHub Releases API.

Given a RepositorySpec, find the newest eligible release and pick exactly one
asset from it. Drafts are never eligible; pre-releases only when the component
opts in. Asset selection never guesses: zero or several matches is an error.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from fnmatch import fnmatchcase
from typing import TYPE_CHECKING

from rx.core.result import Err, Ok, Result
from rx.core.structured import StrDict, as_obj_list, as_str_dict, get_bool, get_str
from rx.forge.models import ReleaseDescriptor, RepositorySpec, assets_from_api
from rx.pipeline.errors import (
    AssetSelectionError,
    CancelledError,
    ForgeUnavailableError,
    NotFoundError,
    PipelineError,
    from_http_error,
)
from rx.pipeline.retry import RetryPolicy, RetryState

if TYPE_CHECKING:
    from rx.forge.http import HttpClient
    from rx.forge.models import Asset

__all__ = ["ReleaseResolver", "select_asset"]

logger = logging.getLogger(__name__)

# Pre-release lookups scan this many of the newest releases
RELEASES_PAGE_SIZE = 30


def select_asset(
    repo: str,
    assets: tuple[Asset, ...],
    pattern: str | None,
) -> Result[Asset, AssetSelectionError]:
    """Pick the single asset matching pattern (or the only asset if no pattern).

    Args:
        repo: Repository id, for error messages
        assets: Candidate assets of one release
        pattern: fnmatch glob, case-sensitive, or None

    Returns:
        Ok with the asset, or Err naming the pattern and what matched
    """
    if pattern is None:
        matches = assets
    else:
        matches = tuple(a for a in assets if fnmatchcase(a.name, pattern))

    if len(matches) == 1:
        return Ok(matches[0])

    return Err(
        AssetSelectionError(
            repo=repo,
            pattern=pattern,
            candidates=tuple(a.name for a in matches),
        )
    )


class ReleaseResolver:
    """Resolve the latest release of a repository.

    Usage:
        resolver = ReleaseResolver(RealHttpClient())
        match resolver.resolve(RepositorySpec("NVIDIAGameWorks", "rtx-remix", "*-release.zip")):
            case Ok(release):
                print(release.version, release.selected.name)
            case Err(error):
                print(error)
    """

    def __init__(
        self,
        http: HttpClient,
        *,
        api_url: str = "https://api.github.com",
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], bool] | None = None,
        rand: Callable[[], float] | None = None,
    ) -> None:
        """Initialize resolver.

        Args:
            http: HTTP client for API calls
            api_url: Forge API root (GitHub Enterprise uses <host>/api/v3)
            policy: Retry limits for transient failures
            sleep: Wait function returning True when the wait was cancelled
            rand: Random source in [0, 1) for backoff jitter
        """
        self._http = http
        self._api_url = api_url.rstrip("/")
        self._policy = policy or RetryPolicy()
        self._sleep = sleep or _blocking_sleep
        self._rand = rand

    def resolve(self, spec: RepositorySpec) -> Result[ReleaseDescriptor, PipelineError]:
        """Resolve spec to a release and its selected asset."""
        release = self._fetch_release(spec)
        if isinstance(release, Err):
            return release

        data = release.value
        tag = get_str(data, "tag_name")
        if tag is None:
            return Err(
                ForgeUnavailableError(
                    url=self._releases_url(spec),
                    status=0,
                    message="release without tag_name",
                    transient=False,
                )
            )

        assets = assets_from_api(data.get("assets"))
        selected = select_asset(spec.id, assets, spec.asset)
        if isinstance(selected, Err):
            return selected

        descriptor = ReleaseDescriptor(
            repo=spec,
            tag=tag,
            assets=assets,
            selected=selected.value,
            prerelease=bool(get_bool(data, "prerelease")),
            draft=bool(get_bool(data, "draft")),
        )
        logger.info("%s: resolved %s (%s)", spec.id, descriptor.tag, descriptor.selected.name)
        return Ok(descriptor)

    def _releases_url(self, spec: RepositorySpec) -> str:
        return f"{self._api_url}/repos/{spec.owner}/{spec.name}/releases"

    def _fetch_release(self, spec: RepositorySpec) -> Result[StrDict, PipelineError]:
        if spec.prerelease:
            url = f"{self._releases_url(spec)}?per_page={RELEASES_PAGE_SIZE}"
        else:
            url = f"{self._releases_url(spec)}/latest"

        body = self._get_json(url)
        if isinstance(body, Err):
            if isinstance(body.error, NotFoundError):
                return Err(NotFoundError(target=spec.id, message="no published release"))
            return body

        if spec.prerelease:
            return self._first_eligible(spec, body.value, url)

        data = as_str_dict(body.value)
        if data is None:
            return Err(_malformed(url, "expected a release object"))
        if get_bool(data, "draft") or get_bool(data, "prerelease"):
            return Err(NotFoundError(target=spec.id, message="latest release is not published"))
        return Ok(data)

    def _first_eligible(
        self,
        spec: RepositorySpec,
        body: object,
        url: str,
    ) -> Result[StrDict, PipelineError]:
        items = as_obj_list(body)
        if items is None:
            return Err(_malformed(url, "expected a list of releases"))
        for item in items:
            data = as_str_dict(item)
            if data is not None and not get_bool(data, "draft"):
                return Ok(data)
        return Err(NotFoundError(target=spec.id, message="no published release"))

    def _get_json(self, url: str) -> Result[object, PipelineError]:
        state = RetryState(self._policy, rand=self._rand)
        while True:
            result = self._http.get_json(url)
            if isinstance(result, Ok):
                return result

            error = from_http_error(result.error)
            if not state.failed(error):
                return Err(error)

            logger.debug(
                "retrying %s in %.1fs (attempt %d): %s", url, state.next_delay, state.attempt, error
            )
            if self._sleep(state.next_delay):
                return Err(CancelledError())


def _malformed(url: str, message: str) -> ForgeUnavailableError:
    return ForgeUnavailableError(url=url, status=0, message=message, transient=False)


def _blocking_sleep(seconds: float) -> bool:
    time.sleep(seconds)
    return False
