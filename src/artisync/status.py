"""Best-effort status messages posted to a Discord-compatible webhook.

Posting never blocks the caller and never raises: failures are logged.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from typing import Any

log = structlog.get_logger()


class AllowedMentions(BaseModel):
    parse: list[str] = []  # Empty: message text can never ping anyone


class WebhookPayload(BaseModel):
    content: str
    username: str | None = None
    avatar_url: str | None = None
    allowed_mentions: AllowedMentions = AllowedMentions()


class StatusWriter:
    def __init__(self, client: httpx.AsyncClient | None = None, webhook: str | None = None) -> None:
        self._client = client
        self._webhook = webhook
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    def none(cls) -> StatusWriter:
        return cls()

    @property
    def enabled(self) -> bool:
        return self._client is not None and self._webhook is not None

    def write(self, message: str) -> None:
        """Schedule ``message`` for posting. Must be called from the event loop."""
        log.info("status", message=message)
        if self._client is None or self._webhook is None:
            return
        self._spawn(self._post(self._client, self._webhook, WebhookPayload(content=message)))

    async def drain(self) -> None:
        """Wait for every scheduled post to finish."""
        if self._pending:
            await asyncio.gather(*self._pending)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _post(
        self, client: httpx.AsyncClient, webhook: str, payload: WebhookPayload
    ) -> None:
        try:
            response = await client.post(webhook, json=payload.model_dump(exclude_none=True))
            response.raise_for_status()
        except httpx.HTTPError:
            log.warning("status_webhook_failed", exc_info=True)
