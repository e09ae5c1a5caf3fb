"""Modrinth project versions, identified by the SHA-512 of their primary file."""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ValidationError

from artisync.errors import ArtisyncError, ErrorCode
from artisync.models.cache import ContentHash
from artisync.sources.base import Resolved, UrlPayload, get_json

if TYPE_CHECKING:
    import httpx

    from artisync.models.sources import ModrinthSource

log = structlog.get_logger()


class FileHashes(BaseModel):
    sha512: str | None = None
    sha1: str | None = None


class ProjectFile(BaseModel):
    url: str
    filename: str
    primary: bool = False
    hashes: FileHashes = FileHashes()


class ProjectVersion(BaseModel):
    id: str
    date_published: datetime
    files: list[ProjectFile] = []

    def primary_file(self) -> ProjectFile | None:
        for file in self.files:
            if file.primary:
                return file
        # Single-file versions are often published without the primary flag.
        return self.files[0] if len(self.files) == 1 else None


class ModrinthClient:
    BASE_URL = "https://api.modrinth.com"

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def get_versions(
        self, project_id: str, game_version: str | None = None
    ) -> list[ProjectVersion]:
        params: dict[str, Any] = {}
        if game_version is not None:
            params["game_versions"] = json.dumps([game_version])
        url = f"{self.BASE_URL}/v2/project/{project_id}/version"
        body = await get_json(self._client, url, params=params)
        try:
            return [ProjectVersion.model_validate(version) for version in body]
        except (TypeError, ValidationError) as exc:
            raise ArtisyncError(
                ErrorCode.SOURCE_RESPONSE_INVALID, f"Unexpected response from {url}: {exc}"
            ) from exc

    def payload(self, url: str) -> UrlPayload:
        return UrlPayload(self._client, url)


class ModrinthProvider:
    def __init__(
        self, client: ModrinthClient, project_id: str, game_version: str | None = None
    ) -> None:
        self._client = client
        self.project_id = project_id
        self.game_version = game_version

    @classmethod
    def from_source(cls, client: ModrinthClient, source: ModrinthSource) -> ModrinthProvider:
        return cls(client, source.modrinth, source.game_version)

    async def resolve_latest(self) -> Resolved | None:
        versions = await self._client.get_versions(self.project_id, self.game_version)
        versions.sort(key=lambda v: v.date_published, reverse=True)

        for version in versions:
            file = version.primary_file()
            if file is None:
                continue
            if file.hashes.sha512 is None:
                log.warning(
                    "modrinth_version_without_sha512",
                    project=self.project_id,
                    version=version.id,
                )
                continue
            return Resolved(
                token=ContentHash(algorithm="sha512", digest=file.hashes.sha512.lower()),
                payload=self._client.payload(file.url),
                name=file.filename,
            )

        return None
