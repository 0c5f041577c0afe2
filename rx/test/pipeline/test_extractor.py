"""Tests for rx.pipeline.extractor - safe archive extraction."""

from __future__ import annotations

import io
import lzma
import os
import shutil
import stat
import tarfile
import zipfile
from collections.abc import Callable, Mapping
from pathlib import Path

import pytest

from rx.core.result import Err, Ok
from rx.forge.http import MockHttpClient
from rx.forge.models import Asset, ReleaseDescriptor, RepositorySpec
from rx.pipeline.cancel import CancelToken
from rx.pipeline.errors import (
    CancelledError,
    ExtractionError,
    PathTraversalError,
    UnsupportedFormatError,
)
from rx.pipeline.extractor import ArchiveExtractor, archive_format
from rx.pipeline.fetcher import ArtifactFetcher, DownloadedAsset

type ZipFactory = Callable[[Mapping[str, bytes]], bytes]
type TarFactory = Callable[[Mapping[str, bytes], str], bytes]
type DamagedZipFactory = Callable[[str], bytes]


def _downloaded(tmp_path: Path, name: str, data: bytes) -> DownloadedAsset:
    work = tmp_path / "download"
    work.mkdir(exist_ok=True)
    path = work / name
    path.write_bytes(data)
    return DownloadedAsset(
        path=path,
        work_dir=work,
        asset=Asset(name, f"https://dl.test/{name}", len(data)),
        release=None,
        component="o/n",
    )


def _staging(tmp_path: Path) -> Path:
    return tmp_path / "staging"


def _tree(root: Path) -> dict[str, bytes]:
    return {
        p.relative_to(root).as_posix(): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()
    }


class TestArchiveFormat:
    @pytest.mark.parametrize(
        ("name", "kind"),
        [
            ("rtx-remix-1.2.4-release.zip", "zip"),
            ("A.ZIP", "zip"),
            ("x.tar.gz", "gz"),
            ("x.tgz", "gz"),
            ("x.tar.xz", "xz"),
            ("x.tar.bz2", "bz2"),
            ("x.tar", "tar"),
            ("x.7z", None),
            ("x.exe", None),
        ],
    )
    def test_detection(self, name: str, kind: str | None) -> None:
        assert archive_format(name) == kind


class TestExtractZip:
    def test_fetch_then_extract(self, tmp_path: Path, make_zip: ZipFactory) -> None:
        """A fetched zip with {a/b.txt, c.txt} stages exactly those files."""
        body = make_zip({"a/b.txt": b"bee", "c.txt": b"sea"})
        client = MockHttpClient()
        url = "https://dl.test/v1/pkg.zip"
        client.set_download(url, body)
        asset = Asset("pkg.zip", url, len(body))
        release = ReleaseDescriptor(RepositorySpec("o", "n"), "v1", (asset,), asset)

        fetched = ArtifactFetcher(client, temp_dir=tmp_path / "tmp").fetch(release, asset)
        assert isinstance(fetched, Ok)
        with fetched.value as downloaded:
            result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(downloaded)

        assert isinstance(result, Ok)
        staged = result.value
        assert set(staged.files) == {"a/b.txt", "c.txt"}
        assert _tree(staged.root) == {"a/b.txt": b"bee", "c.txt": b"sea"}
        assert staged.component == "o/n"

    def test_directory_entries_are_implicit(self, tmp_path: Path) -> None:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("dir/", b"")
            zf.writestr("dir/file.txt", b"x")
        download = _downloaded(tmp_path, "pkg.zip", buf.getvalue())

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert isinstance(result, Ok)
        assert result.value.files == ("dir/file.txt",)

    def test_strip_components(self, tmp_path: Path, make_zip: ZipFactory) -> None:
        download = _downloaded(
            tmp_path,
            "pkg.zip",
            make_zip({"remix-1.0/bin/d3d9.dll": b"dll", "remix-1.0/README": b"r", "top.txt": b"t"}),
        )

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download, strip_components=1)

        assert isinstance(result, Ok)
        assert set(result.value.files) == {"bin/d3d9.dll", "README"}

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
    def test_preserves_executable_bit(self, tmp_path: Path) -> None:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            info = zipfile.ZipInfo("run.sh")
            info.external_attr = (stat.S_IFREG | 0o755) << 16
            zf.writestr(info, b"#!/bin/sh\n")
        download = _downloaded(tmp_path, "pkg.zip", buf.getvalue())

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert isinstance(result, Ok)
        mode = (result.value.root / "run.sh").stat().st_mode
        assert mode & stat.S_IXUSR


class TestUnsafeEntries:
    """Nothing is written outside the staging root, and nothing partial is kept."""

    def test_parent_traversal(self, tmp_path: Path, make_zip: ZipFactory) -> None:
        download = _downloaded(tmp_path, "evil.zip", make_zip({"ok.txt": b"ok", "../evil.txt": b"pwn"}))

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert result == Err(PathTraversalError(archive="evil.zip", entry="../evil.txt"))
        assert not (tmp_path / "evil.txt").exists()
        assert not (_staging(tmp_path) / "evil.txt").exists()
        assert list(_staging(tmp_path).iterdir()) == []

    @pytest.mark.parametrize("entry", ["/etc/passwd", "a/../../x", "C:/windows/x.dll", "..\\x.txt"])
    def test_rejected_entries(self, tmp_path: Path, make_zip: ZipFactory, entry: str) -> None:
        download = _downloaded(tmp_path, "evil.zip", make_zip({entry: b"x"}))

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert isinstance(result, Err)
        assert isinstance(result.error, PathTraversalError)
        assert list(_staging(tmp_path).iterdir()) == []

    def test_tar_traversal(self, tmp_path: Path, make_tar: TarFactory) -> None:
        download = _downloaded(tmp_path, "evil.tar.gz", make_tar({"../evil.txt": b"pwn"}, "gz"))

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert isinstance(result, Err)
        assert isinstance(result.error, PathTraversalError)
        assert not (tmp_path / "evil.txt").exists()

    def test_tar_symlinks_skipped(self, tmp_path: Path) -> None:
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w") as tf:
            link = tarfile.TarInfo("link")
            link.type = tarfile.SYMTYPE
            link.linkname = "/etc/passwd"
            tf.addfile(link)
            data = b"real"
            info = tarfile.TarInfo("real.txt")
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
        download = _downloaded(tmp_path, "pkg.tar", buf.getvalue())

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert isinstance(result, Ok)
        assert result.value.files == ("real.txt",)
        assert not (result.value.root / "link").exists()


class TestExtractTar:
    @pytest.mark.parametrize(("suffix", "compression"), [(".tar.gz", "gz"), (".tar.xz", "xz"), (".tar.bz2", "bz2")])
    def test_compressed_tarballs(self, tmp_path: Path, make_tar: TarFactory, suffix: str, compression: str) -> None:
        download = _downloaded(tmp_path, f"pkg{suffix}", make_tar({"a/b.txt": b"b", "c.txt": b"c"}, compression))

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert isinstance(result, Ok)
        assert _tree(result.value.root) == {"a/b.txt": b"b", "c.txt": b"c"}


class TestExtractFailures:
    def test_unsupported_format(self, tmp_path: Path) -> None:
        download = _downloaded(tmp_path, "setup.exe", b"MZ")

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert result == Err(UnsupportedFormatError(archive="setup.exe"))

    def test_corrupt_zip(self, tmp_path: Path) -> None:
        download = _downloaded(tmp_path, "pkg.zip", b"not a zip at all")

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert isinstance(result, Err)
        assert isinstance(result.error, ExtractionError)
        assert list(_staging(tmp_path).iterdir()) == []

    def test_damaged_deflate_stream(self, tmp_path: Path, make_damaged_zip: DamagedZipFactory) -> None:
        download = _downloaded(tmp_path, "pkg.zip", make_damaged_zip("rtx.conf"))

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert isinstance(result, Err)
        assert isinstance(result.error, ExtractionError)
        assert result.error.archive == "pkg.zip"
        assert list(_staging(tmp_path).iterdir()) == []

    def test_damaged_xz_stream(
        self,
        tmp_path: Path,
        make_tar: TarFactory,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        download = _downloaded(tmp_path, "pkg.tar.xz", make_tar({"a.txt": b"a"}, "xz"))

        def corrupt(*_args: object, **_kwargs: object) -> None:
            raise lzma.LZMAError("Corrupt input data")

        monkeypatch.setattr(shutil, "copyfileobj", corrupt)

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert result == Err(
            ExtractionError(archive="pkg.tar.xz", message="corrupt compressed data: Corrupt input data")
        )
        assert list(_staging(tmp_path).iterdir()) == []

    def test_cancelled(self, tmp_path: Path, make_zip: ZipFactory) -> None:
        download = _downloaded(tmp_path, "pkg.zip", make_zip({"a.txt": b"a"}))
        token = CancelToken()
        token.cancel()

        result = ArchiveExtractor(temp_dir=_staging(tmp_path), token=token).extract(download)

        assert result == Err(CancelledError())
        assert list(_staging(tmp_path).iterdir()) == []

    def test_download_left_for_owner(self, tmp_path: Path, make_zip: ZipFactory) -> None:
        download = _downloaded(tmp_path, "pkg.zip", make_zip({"a.txt": b"a"}))

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).extract(download)

        assert isinstance(result, Ok)
        assert download.path.exists()
        result.value.discard()
        assert not result.value.root.exists()


class TestStageFile:
    def test_places_file_at_relative_path(self, tmp_path: Path) -> None:
        download = _downloaded(tmp_path, "bridge.conf", b"conf")

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).stage_file(download, ".trex/bridge.conf")

        assert isinstance(result, Ok)
        staged = result.value
        assert staged.files == (".trex/bridge.conf",)
        assert staged.component == ".trex/bridge.conf"
        assert _tree(staged.root) == {".trex/bridge.conf": b"conf"}

    def test_rejects_escaping_path(self, tmp_path: Path) -> None:
        download = _downloaded(tmp_path, "x.conf", b"x")

        result = ArchiveExtractor(temp_dir=_staging(tmp_path)).stage_file(download, "../x.conf")

        assert isinstance(result, Err)
        assert isinstance(result.error, PathTraversalError)
