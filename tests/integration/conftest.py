"""Integration test fixtures."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import httpx
import pytest

from artisync.sources.github import GitHubClient
from artisync.sources.modrinth import ModrinthClient
from artisync.state import SourceContext

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


@pytest.fixture()
async def ctx() -> AsyncIterator[SourceContext]:
    """SourceContext over a real AsyncClient; tests mock it with respx."""
    async with httpx.AsyncClient() as client:
        yield SourceContext(
            http_client=client,
            github=GitHubClient(client),
            modrinth=ModrinthClient(client),
        )


@pytest.fixture()
def subprocess_env(tmp_path: Path, isolated_config: Path) -> dict[str, str]:
    """Environment for running ``python -m artisync`` against a scratch config."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("ARTISYNC__")}
    env["ARTISYNC_CONFIG"] = str(isolated_config)
    env["ARTISYNC__CACHE__ROOT"] = str(tmp_path / "cache")
    return env
