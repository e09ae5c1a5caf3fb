"""Local files, identified by the SHA-1 of their contents."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

import aiofiles

from artisync.errors import ArtisyncError, ErrorCode
from artisync.models.cache import ContentHash
from artisync.sources.base import BytesPayload, Resolved

if TYPE_CHECKING:
    from pathlib import Path


class PathProvider:
    def __init__(self, path: Path) -> None:
        self.path = path.expanduser()

    async def resolve_latest(self) -> Resolved:
        # Hashing needs the bytes anyway, so the payload is read up front.
        try:
            async with aiofiles.open(self.path, mode="rb") as f:
                data = await f.read()
        except FileNotFoundError as exc:
            raise ArtisyncError(
                ErrorCode.MISSING_ARTIFACT, f"Source file {self.path} does not exist"
            ) from exc
        except OSError as exc:
            raise ArtisyncError(
                ErrorCode.SOURCE_FETCH_FAILED, f"Cannot read {self.path}: {exc}"
            ) from exc

        return Resolved(
            token=ContentHash(algorithm="sha1", digest=hashlib.sha1(data).hexdigest()),
            payload=BytesPayload(data),
            name=self.path.name,
        )
