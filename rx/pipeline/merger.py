"""Merge staged trees into the shared output tree.

Collision policy is last-merged-wins: a file already present at the same
relative path is replaced, and the replacement is reported. A path that is a
directory on one side and a file on the other is never resolved silently.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from rx.core.result import Err, Ok, Result
from rx.pipeline.errors import MergeIOError
from rx.platform.files import atomic_copy_file, atomic_write_text, remove_tree

if TYPE_CHECKING:
    from collections.abc import Iterable

    from rx.pipeline.extractor import StagedTree

__all__ = ["OutputTree", "TreeMerger", "MergeReport", "Overwrite"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Overwrite:
    """An existing output file replaced by a merge.

    Attributes:
        path: Relative POSIX path
        previous_owner: Component that wrote it earlier in this run, or None
            if it was already on disk when the run started
    """

    path: str
    previous_owner: str | None


@dataclass(frozen=True, slots=True)
class MergeReport:
    component: str
    written: tuple[str, ...]
    overwritten: tuple[Overwrite, ...]
    skipped: tuple[str, ...]

    @property
    def overwritten_paths(self) -> tuple[str, ...]:
        return tuple(o.path for o in self.overwritten)


@dataclass
class OutputTree:
    """The composite install directory.

    All writes go through ``lock``. ``owners`` remembers which component
    wrote each relative path during the current run.
    """

    root: Path
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    owners: dict[str, str] = field(default_factory=dict, repr=False)

    def prepare(self, *, clean: bool = False) -> None:
        """Create the root; with clean=True wipe it first.

        Raises:
            OSError: If the directory cannot be removed or created
        """
        with self.lock:
            if clean and remove_tree(self.root):
                logger.info("cleaned existing output %s", self.root)
            self.root.mkdir(parents=True, exist_ok=True)
            self.owners.clear()

    def write_text(self, relative: str, content: str) -> None:
        """Atomically write a bookkeeping file (manifest, state) under the root."""
        with self.lock:
            atomic_write_text(self.root / relative, content)


def _is_excluded(relative: str, patterns: Iterable[str]) -> bool:
    name = PurePosixPath(relative).name
    return any(fnmatchcase(relative, p) or fnmatchcase(name, p) for p in patterns)


def _type_conflict(root: Path, relative: str) -> str | None:
    """Describe a file/directory clash for relative under root, if any."""
    parts = PurePosixPath(relative).parts
    current = root
    for i, part in enumerate(parts[:-1]):
        current = current / part
        if current.exists() and not current.is_dir():
            parent = "/".join(parts[: i + 1])
            return f"'{parent}' is a file in the output tree but a directory in this component"
    dest = root.joinpath(*parts)
    if dest.is_dir():
        return "a directory in the output tree but a file in this component"
    return None


class TreeMerger:
    """Copy staged files into an OutputTree.

    Usage:
        merger = TreeMerger()
        match merger.merge(staged, output, exclude=("*.pdb",)):
            case Ok(report):
                for o in report.overwritten:
                    print(f"replaced {o.path}")
            case Err(error):
                print(error)
    """

    def merge(
        self,
        staged: StagedTree,
        into: OutputTree,
        *,
        exclude: Iterable[str] = (),
    ) -> Result[MergeReport, MergeIOError]:
        """Merge every staged file; the staging directory is always removed.

        Files are written in sorted path order. On failure the files already
        written stay in place and are listed in the error.

        Args:
            staged: Fully extracted component
            into: Shared output tree
            exclude: Globs matched against the relative path and the file name

        Returns:
            Ok with MergeReport, or Err with MergeIOError
        """
        patterns = tuple(exclude)
        written: list[str] = []
        overwritten: list[Overwrite] = []
        skipped: list[str] = []

        try:
            with into.lock:
                try:
                    into.root.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    return Err(MergeIOError(path=".", message=e.strerror or str(e)))

                for relative in sorted(staged.files):
                    if _is_excluded(relative, patterns):
                        skipped.append(relative)
                        continue

                    conflict = _type_conflict(into.root, relative)
                    if conflict is not None:
                        return Err(
                            MergeIOError(
                                path=relative,
                                message=conflict,
                                reason="type-conflict",
                                merged=tuple(written),
                            )
                        )

                    dest = into.root / relative
                    try:
                        existed = dest.exists()
                        dest.parent.mkdir(parents=True, exist_ok=True)
                        atomic_copy_file(staged.root / relative, dest)
                    except OSError as e:
                        return Err(
                            MergeIOError(
                                path=relative,
                                message=e.strerror or str(e),
                                merged=tuple(written),
                            )
                        )

                    if existed:
                        overwritten.append(Overwrite(relative, into.owners.get(relative)))
                    into.owners[relative] = staged.component
                    written.append(relative)
        finally:
            staged.discard()

        for o in overwritten:
            logger.debug("%s: overwrote %s (from %s)", staged.component, o.path, o.previous_owner)
        return Ok(
            MergeReport(
                component=staged.component,
                written=tuple(written),
                overwritten=tuple(overwritten),
                skipped=tuple(skipped),
            )
        )
