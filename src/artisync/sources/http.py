"""Plain URL downloads, identified by the response ETag when there is one.

The GET is issued in streaming mode so headers are available before the body;
on a cache match the body is never read.
"""

from __future__ import annotations

import httpx

from artisync.errors import ArtisyncError, ErrorCode
from artisync.models.cache import ETag, Unknown
from artisync.sources.base import Resolved, check_response


def parse_etag(header: str | None) -> ETag | Unknown:
    if not header:
        return Unknown()
    value = header.strip()
    if value.startswith("W/"):
        value = value[2:]
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1]
    return ETag(value=value)


def file_name(url: str) -> str:
    parsed = httpx.URL(url)
    name = parsed.path.rstrip("/").rsplit("/", 1)[-1]
    return name or parsed.host


class StreamPayload:
    """Body of an already-open streaming response."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    async def read(self) -> bytes:
        try:
            return await self._response.aread()
        except httpx.HTTPError as exc:
            raise ArtisyncError(
                ErrorCode.SOURCE_FETCH_FAILED,
                f"Network error reading {self._response.request.url}: {exc}",
                recoverable=True,
            ) from exc

    async def aclose(self) -> None:
        await self._response.aclose()


class UrlProvider:
    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self._client = client
        self.url = url

    async def resolve_latest(self) -> Resolved:
        request = self._client.build_request("GET", self.url)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise ArtisyncError(
                ErrorCode.SOURCE_FETCH_FAILED,
                f"Network error fetching {self.url}: {exc}",
                recoverable=True,
            ) from exc

        try:
            check_response(response)
        except ArtisyncError:
            await response.aclose()
            raise

        return Resolved(
            token=parse_etag(response.headers.get("etag")),
            payload=StreamPayload(response),
            name=file_name(self.url),
        )
