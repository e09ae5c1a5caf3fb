"""Unit-specific fixtures (filesystem state lives under tmp_path)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from artisync.cache import CacheStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "mods"


@pytest.fixture()
async def store(cache_root: Path) -> CacheStore:
    """Freshly opened, empty cache store."""
    return await CacheStore.open(cache_root)
