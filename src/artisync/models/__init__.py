from __future__ import annotations

from artisync.models.cache import (
    ArtifactId,
    ContentHash,
    ETag,
    Index,
    IndexEntry,
    Token,
    Unknown,
)
from artisync.models.sources import (
    DirectTransform,
    ExtractTransform,
    GitHubSource,
    ModrinthSource,
    PathSource,
    Pattern,
    Source,
    SourceSet,
    Transform,
    UrlSource,
)

__all__ = [
    # cache
    "Token",
    "ETag",
    "ArtifactId",
    "ContentHash",
    "Unknown",
    "IndexEntry",
    "Index",
    # transforms
    "Pattern",
    "Transform",
    "DirectTransform",
    "ExtractTransform",
    # sources
    "Source",
    "SourceSet",
    "GitHubSource",
    "ModrinthSource",
    "UrlSource",
    "PathSource",
]
