"""Fixtures shared by unit and integration tests."""

from __future__ import annotations

import io
import zipfile
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point config discovery at a file that does not exist yet."""
    path = tmp_path / "artisync.yaml"
    monkeypatch.setenv("ARTISYNC_CONFIG", str(path))
    return path


def _make_zip(members: list[tuple[str, bytes]]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in members:
            archive.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture()
def make_zip() -> Callable[[list[tuple[str, bytes]]], bytes]:
    """Build a ZIP archive in memory. Names ending in "/" become directories."""
    return _make_zip


def _set_compression_method(archive: bytes, method: int) -> bytes:
    """Rewrite the method field of a single-member archive's headers."""
    data = bytearray(archive)
    raw = method.to_bytes(2, "little")
    local = data.find(b"PK\x03\x04")
    data[local + 8 : local + 10] = raw
    central = data.find(b"PK\x01\x02")
    data[central + 10 : central + 12] = raw
    return bytes(data)


@pytest.fixture()
def unsupported_zip() -> bytes:
    """Archive holding ``mod.jar`` under a compression method zipfile cannot read."""
    return _set_compression_method(_make_zip([("mod.jar", b"jar")]), 99)
