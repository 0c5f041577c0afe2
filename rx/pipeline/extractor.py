"""Archive extraction into private staging directories.

This module provides an ArchiveExtractor that:
- Extracts zip, tar, tar.gz, tar.xz and tar.bz2 archives
- Validates every member path before writing anything
- Supports strip_components (removing leading path components)
- Stages plain files (extras) the same way as archive contents
- Never hands out a partially extracted tree
"""

from __future__ import annotations

import contextlib
import logging
import lzma
import os
import shutil
import stat
import tarfile
import tempfile
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from types import TracebackType
from typing import TYPE_CHECKING

from rx.core.result import Err, Ok, Result
from rx.pipeline.cancel import CancelToken, OperationCancelled
from rx.pipeline.errors import (
    CancelledError,
    ExtractionError,
    PathTraversalError,
    PipelineError,
    UnsupportedFormatError,
)
from rx.platform.files import remove_tree

if TYPE_CHECKING:
    from rx.pipeline.fetcher import DownloadedAsset

__all__ = ["ArchiveExtractor", "StagedTree", "archive_format"]

logger = logging.getLogger(__name__)

_TAR_MODES = {
    "tar": "r:",
    "gz": "r:gz",
    "xz": "r:xz",
    "bz2": "r:bz2",
}


@dataclass(frozen=True, slots=True)
class StagedTree:
    """Fully extracted contents of one asset.

    Attributes:
        root: Private staging directory
        files: POSIX paths of every regular file, relative to root
        component: Id of the component the files belong to
    """

    root: Path
    files: tuple[str, ...]
    component: str

    def discard(self) -> None:
        remove_tree(self.root)

    def __enter__(self) -> StagedTree:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.discard()


def archive_format(name: str) -> str | None:
    """Archive kind from a file name: "zip", "tar", "gz", "xz", "bz2" or None.

    Path.suffixes is not reliable for names like "rtx-remix-1.2.4-release.zip"
    because it splits on every dot, so match on the full lowercase name.
    """
    lowered = name.lower()
    if lowered.endswith(".zip"):
        return "zip"
    if lowered.endswith((".tar.gz", ".tgz")):
        return "gz"
    if lowered.endswith((".tar.xz", ".txz")):
        return "xz"
    if lowered.endswith((".tar.bz2", ".tbz2")):
        return "bz2"
    if lowered.endswith(".tar"):
        return "tar"
    return None


@dataclass(frozen=True, slots=True)
class _Member:
    name: str
    rel_path: PurePosixPath | None  # None: stripped away entirely
    is_file: bool


class _UnsafeEntry(Exception):
    def __init__(self, entry: str) -> None:
        super().__init__(entry)
        self.entry = entry


def _relative_path(member_name: str, strip_components: int) -> PurePosixPath | None:
    """Sanitized relative path for a member.

    Returns:
        The path to extract to, or None if strip_components consumes it

    Raises:
        _UnsafeEntry: Absolute path, drive letter or ".." segment
    """
    normalized = member_name.replace("\\", "/")
    if normalized.startswith("/"):
        raise _UnsafeEntry(member_name)

    parts = [p for p in PurePosixPath(normalized).parts if p not in ("", ".")]
    if ".." in parts or (parts and parts[0].endswith(":")):
        raise _UnsafeEntry(member_name)

    if len(parts) <= strip_components:
        return None
    return PurePosixPath(*parts[strip_components:])


class ArchiveExtractor:
    """Extract downloaded assets into fresh staging directories.

    Usage:
        extractor = ArchiveExtractor()
        match extractor.extract(downloaded, strip_components=1):
            case Ok(staged):
                print(f"Staged {len(staged.files)} files in {staged.root}")
            case Err(error):
                print(error)
    """

    def __init__(self, *, temp_dir: Path | None = None, token: CancelToken | None = None) -> None:
        self._temp_dir = temp_dir
        self._token = token or CancelToken()

    def extract(
        self,
        download: DownloadedAsset,
        *,
        strip_components: int = 0,
    ) -> Result[StagedTree, PipelineError]:
        """Extract an archive into a new staging directory.

        The downloaded file itself is left alone; its owner discards it.

        Args:
            download: Downloaded archive
            strip_components: Number of leading path components to remove

        Returns:
            Ok with StagedTree, or Err. On Err nothing is left on disk.
        """
        archive = download.path
        kind = archive_format(download.asset.name)
        if kind is None:
            return Err(UnsupportedFormatError(archive=download.asset.name))

        root = self._new_root()
        try:
            if kind == "zip":
                files = self._extract_zip(archive, root, strip_components)
            else:
                files = self._extract_tar(archive, root, strip_components, kind)
        except _UnsafeEntry as e:
            remove_tree(root)
            return Err(PathTraversalError(archive=download.asset.name, entry=e.entry))
        except OperationCancelled:
            remove_tree(root)
            return Err(CancelledError())
        except zipfile.BadZipFile as e:
            remove_tree(root)
            return Err(ExtractionError(archive=download.asset.name, message=f"invalid zip: {e}"))
        except (tarfile.TarError, EOFError) as e:
            remove_tree(root)
            return Err(ExtractionError(archive=download.asset.name, message=f"invalid tar: {e}"))
        except (zlib.error, lzma.LZMAError) as e:
            remove_tree(root)
            message = f"corrupt compressed data: {e}"
            return Err(ExtractionError(archive=download.asset.name, message=message))
        except OSError as e:
            remove_tree(root)
            return Err(ExtractionError(archive=download.asset.name, message=f"IO error: {e}"))
        except BaseException:
            remove_tree(root)
            raise

        logger.debug("%s: staged %d files in %s", download.component, len(files), root)
        return Ok(StagedTree(root=root, files=files, component=download.component))

    def stage_file(
        self,
        download: DownloadedAsset,
        relative: str,
    ) -> Result[StagedTree, PipelineError]:
        """Stage a plain, non-archive file at a relative path.

        Args:
            download: Downloaded file
            relative: POSIX path the file should have in the output tree

        Returns:
            Ok with a single-file StagedTree, or Err
        """
        try:
            rel_path = _relative_path(relative, 0)
        except _UnsafeEntry:
            return Err(PathTraversalError(archive=download.asset.name, entry=relative))
        if rel_path is None:
            return Err(ExtractionError(archive=download.asset.name, message="empty destination"))

        root = self._new_root()
        target = root.joinpath(*rel_path.parts)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(download.path, target)
        except OSError as e:
            remove_tree(root)
            return Err(ExtractionError(archive=download.asset.name, message=f"IO error: {e}"))

        return Ok(StagedTree(root=root, files=(str(rel_path),), component=str(rel_path)))

    def _new_root(self) -> Path:
        if self._temp_dir is not None:
            self._temp_dir.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix="rx-stage-", dir=self._temp_dir))

    def _plan(self, root: Path, members: list[_Member]) -> list[tuple[_Member, Path]]:
        """Validate every member before any write; map files to targets."""
        resolved_root = root.resolve()
        planned: list[tuple[_Member, Path]] = []
        for member in members:
            if member.rel_path is None or not member.is_file:
                continue
            target = root.joinpath(*member.rel_path.parts)
            if not target.resolve().is_relative_to(resolved_root):
                raise _UnsafeEntry(member.name)
            planned.append((member, target))
        return planned

    def _extract_zip(self, archive: Path, root: Path, strip_components: int) -> tuple[str, ...]:
        with zipfile.ZipFile(archive, "r") as zf:
            infos: dict[str, zipfile.ZipInfo] = {}
            members: list[_Member] = []
            for info in zf.infolist():
                file_type_bits = (info.external_attr >> 16) & 0o170000
                is_link = file_type_bits == stat.S_IFLNK
                members.append(
                    _Member(
                        name=info.filename,
                        rel_path=_relative_path(info.filename, strip_components),
                        is_file=not info.is_dir() and not is_link,
                    )
                )
                infos[info.filename] = info

            planned = self._plan(root, members)
            for member, target in planned:
                self._token.raise_if_cancelled()
                info = infos[member.name]
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)

                unix_mode = (info.external_attr >> 16) & 0o777
                if unix_mode:
                    with contextlib.suppress(OSError):
                        os.chmod(target, unix_mode | stat.S_IRUSR | stat.S_IWUSR)

        return tuple(dict.fromkeys(str(m.rel_path) for m, _ in planned))

    def _extract_tar(
        self,
        archive: Path,
        root: Path,
        strip_components: int,
        kind: str,
    ) -> tuple[str, ...]:
        with tarfile.open(archive, _TAR_MODES[kind]) as tar:
            by_name: dict[str, tarfile.TarInfo] = {}
            members: list[_Member] = []
            for info in tar.getmembers():
                # Directories are implicit; links, devices and fifos are skipped
                members.append(
                    _Member(
                        name=info.name,
                        rel_path=_relative_path(info.name, strip_components),
                        is_file=info.isreg(),
                    )
                )
                by_name[info.name] = info

            planned = self._plan(root, members)
            for member, target in planned:
                self._token.raise_if_cancelled()
                info = by_name[member.name]
                src = tar.extractfile(info)
                if src is None:
                    raise tarfile.ExtractError(f"cannot read member {info.name}")
                target.parent.mkdir(parents=True, exist_ok=True)
                with src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)

                mode = info.mode & 0o777
                if mode:
                    with contextlib.suppress(OSError):
                        os.chmod(target, mode | stat.S_IRUSR | stat.S_IWUSR)

        return tuple(dict.fromkeys(str(m.rel_path) for m, _ in planned))
