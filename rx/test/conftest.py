"""Shared fixtures: in-memory archive builders."""

from __future__ import annotations

import io
import tarfile
import zipfile
from collections.abc import Callable, Mapping

import pytest

type ZipFactory = Callable[[Mapping[str, bytes]], bytes]
type TarFactory = Callable[[Mapping[str, bytes], str], bytes]
type DamagedZipFactory = Callable[[str], bytes]


def _zip_bytes(entries: Mapping[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


def _damaged_zip_bytes(name: str) -> bytes:
    """Deflated single-entry zip whose compressed stream has 200 bytes flipped.

    Headers and central directory stay intact, so the archive opens and the
    failure only shows up while decompressing the entry.
    """
    payload = b"".join(f"rtx.option{i} = {i * 7 % 13}\n".encode() for i in range(4000))
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(name, payload)
    data = bytearray(buf.getvalue())
    # local header is 30 bytes plus the entry name
    start = 30 + len(name.encode()) + 64
    for i in range(start, start + 200):
        data[i] ^= 0xA5
    return bytes(data)


def _tar_bytes(entries: Mapping[str, bytes], compression: str = "gz") -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode=f"w:{compression}") as tf:
        for name, data in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


@pytest.fixture
def make_zip() -> ZipFactory:
    return _zip_bytes


@pytest.fixture
def make_tar() -> TarFactory:
    return _tar_bytes


@pytest.fixture
def make_damaged_zip() -> DamagedZipFactory:
    return _damaged_zip_bytes
