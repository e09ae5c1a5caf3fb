"""Fetch pipeline: resolve → compare with cache → fetch → transform → commit."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from artisync.cache import Match
from artisync.errors import ArtisyncError, ErrorCode
from artisync.sources.base import (
    BytesPayload,
    Payload,
    Resolved,
    SourceProvider,
    UrlPayload,
)
from artisync.sources.github import GitHubArtifactsProvider
from artisync.sources.http import UrlProvider
from artisync.sources.modrinth import ModrinthProvider
from artisync.sources.path import PathProvider
from artisync.transform import SourceFile, apply_transform

if TYPE_CHECKING:
    from artisync.cache import CacheEntry, Reference
    from artisync.models.sources import Source, Transform
    from artisync.state import SourceContext

log = structlog.get_logger()

ProviderFactory = Callable[["SourceContext", Any], SourceProvider]

PROVIDERS: dict[str, ProviderFactory] = {
    "github": lambda ctx, source: GitHubArtifactsProvider.from_source(ctx.github, source),
    "modrinth": lambda ctx, source: ModrinthProvider.from_source(ctx.modrinth, source),
    "url": lambda ctx, source: UrlProvider(ctx.http_client, source.url),
    "path": lambda ctx, source: PathProvider(source.path),
}


def build_provider(ctx: SourceContext, source: Source) -> SourceProvider:
    """Construct the provider registered for ``source.kind``."""
    factory = PROVIDERS.get(source.kind)
    if factory is None:
        raise ArtisyncError(
            ErrorCode.INVALID_SOURCE, f"No provider for source kind {source.kind!r}"
        )
    return factory(ctx, source)


async def load(provider: SourceProvider, entry: CacheEntry, transform: Transform) -> Reference:
    """Bring ``entry`` up to date with the provider's latest version.

    The payload is only read when the cache reports a mismatch. If the
    provider has no version at all, the previously cached artifact is served.
    """
    resolved = await provider.resolve_latest()
    if resolved is None:
        existing = entry.get_existing()
        if existing is None:
            raise ArtisyncError(
                ErrorCode.MISSING_ARTIFACT, f"No version of {entry.key!r} is available"
            )
        log.info("source_unavailable_serving_cached", key=entry.key)
        return existing

    try:
        result = entry.try_update(resolved.token)
        if isinstance(result, Match):
            return result.reference
        log.info("downloading", key=entry.key, name=resolved.name)
        data = await resolved.payload.read()
    finally:
        await resolved.payload.aclose()

    file = await apply_transform(transform, SourceFile(name=resolved.name, data=data))
    if file is None:
        raise ArtisyncError(
            ErrorCode.MISSING_ARTIFACT, f"No matching file in artifact for {entry.key!r}"
        )
    return await result.updater.update(file.name, file.data)


__all__ = [
    "PROVIDERS",
    "BytesPayload",
    "Payload",
    "Resolved",
    "SourceProvider",
    "UrlPayload",
    "build_provider",
    "load",
]
