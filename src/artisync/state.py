"""Per-run dependencies handed to source providers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from artisync import __version__
from artisync.sources.github import GitHubClient
from artisync.sources.modrinth import ModrinthClient

if TYPE_CHECKING:
    from artisync.config import Settings


@dataclass
class SourceContext:
    """Client handles for one run. Built once, passed to every provider."""

    http_client: httpx.AsyncClient
    github: GitHubClient
    modrinth: ModrinthClient


def build_http_client(timeout_seconds: float = 30.0) -> httpx.AsyncClient:
    # Artifact downloads from GitHub redirect to blob storage.
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds),
        follow_redirects=True,
        headers={"User-Agent": f"artisync/{__version__}"},
    )


def build_context(client: httpx.AsyncClient, settings: Settings) -> SourceContext:
    return SourceContext(
        http_client=client,
        github=GitHubClient(client, settings.tokens.github),
        modrinth=ModrinthClient(client),
    )
