"""Provider contract shared by every source kind.

A provider answers one question cheaply: what is the latest available version
and what token identifies it. The bytes behind that version are only read
through the returned ``Payload`` once the cache has reported a mismatch.
Providers must guarantee that equal tokens mean byte-identical payloads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from artisync.errors import ArtisyncError, ErrorCode

if TYPE_CHECKING:
    from artisync.models.cache import Token


class Payload(Protocol):
    async def read(self) -> bytes: ...

    async def aclose(self) -> None: ...


@dataclass(frozen=True)
class Resolved:
    """Latest version of an artifact as reported by its provider."""

    token: Token
    payload: Payload
    name: str  # Suggested file name for the fetched bytes


class SourceProvider(Protocol):
    async def resolve_latest(self) -> Resolved | None:
        """Return the newest version, or ``None`` if nothing is available."""
        ...


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class BytesPayload:
    """Payload already held in memory."""

    def __init__(self, data: bytes) -> None:
        self._data = data

    async def read(self) -> bytes:
        return self._data

    async def aclose(self) -> None:
        return None


class UrlPayload:
    """Payload downloaded with a GET request when read."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._client = client
        self._url = url
        self._headers = headers

    @property
    def url(self) -> str:
        return self._url

    async def read(self) -> bytes:
        response = await send(self._client, "GET", self._url, headers=self._headers)
        return response.content

    async def aclose(self) -> None:
        return None


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def check_response(response: httpx.Response) -> None:
    """Raise ``ArtisyncError`` for 4xx/5xx responses. 5xx is recoverable."""
    if response.status_code < 400:
        return
    raise ArtisyncError(
        ErrorCode.SOURCE_FETCH_FAILED,
        f"HTTP {response.status_code} fetching {response.request.url}",
        recoverable=response.status_code >= 500,
    )


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    try:
        response = await client.request(method, url, params=params, headers=headers)
    except httpx.HTTPError as exc:
        raise ArtisyncError(
            ErrorCode.SOURCE_FETCH_FAILED,
            f"Network error fetching {url}: {exc}",
            recoverable=True,
        ) from exc
    check_response(response)
    return response


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> Any:
    response = await send(client, "GET", url, params=params, headers=headers)
    try:
        return response.json()
    except ValueError as exc:
        raise ArtisyncError(
            ErrorCode.SOURCE_RESPONSE_INVALID, f"Invalid JSON from {url}: {exc}"
        ) from exc
