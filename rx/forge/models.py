"""Forge data model: what to track and what a release offers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from rx.core.structured import as_obj_list, as_str_dict, get_int, get_str

if TYPE_CHECKING:
    from rx.core.config import ComponentConfig

__all__ = ["RepositorySpec", "Asset", "ReleaseDescriptor", "assets_from_api"]


@dataclass(frozen=True, slots=True)
class RepositorySpec:
    """One upstream project to install.

    Attributes:
        owner: Repository owner on the forge
        name: Repository name
        asset: fnmatch-style glob selecting the asset, or None
        prerelease: Allow pre-releases to count as "latest"
        strip_components: Leading archive path components to drop on extract
        exclude: Globs of files not merged into the output tree
    """

    owner: str
    name: str
    asset: str | None = None
    prerelease: bool = False
    strip_components: int = 0
    exclude: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.id

    @classmethod
    def from_config(cls, component: ComponentConfig) -> RepositorySpec:
        return cls(
            owner=component.owner,
            name=component.name,
            asset=component.asset,
            prerelease=component.prerelease,
            strip_components=component.strip_components,
            exclude=component.exclude,
        )


@dataclass(frozen=True, slots=True)
class Asset:
    """A downloadable file attached to a release.

    Attributes:
        name: Asset file name
        url: Direct download URL
        size: Declared size in bytes (None if unknown)
        digest: Forge-provided digest as "algorithm:hex" (None if absent)
    """

    name: str
    url: str
    size: int | None = None
    digest: str | None = None

    @classmethod
    def from_api(cls, data: object) -> Asset | None:
        """Build from a GitHub release asset object; None if malformed."""
        table = as_str_dict(data)
        if table is None:
            return None
        name = get_str(table, "name")
        url = get_str(table, "browser_download_url")
        if name is None or url is None:
            return None
        return cls(name=name, url=url, size=get_int(table, "size"), digest=get_str(table, "digest"))


@dataclass(frozen=True, slots=True)
class ReleaseDescriptor:
    """A resolved release and the asset chosen from it."""

    repo: RepositorySpec
    tag: str
    assets: tuple[Asset, ...]
    selected: Asset
    prerelease: bool = False
    draft: bool = False

    @property
    def version(self) -> str:
        """Tag without a leading 'v'."""
        return self.tag[1:] if self.tag[:1] in ("v", "V") and len(self.tag) > 1 else self.tag


def assets_from_api(data: object) -> tuple[Asset, ...]:
    """Parse the ``assets`` array of a release object, dropping malformed entries."""
    items = as_obj_list(data) or []
    return tuple(a for a in (Asset.from_api(item) for item in items) if a is not None)
