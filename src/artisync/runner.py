"""Prepare and apply every configured destination.

Each destination is an independent unit: open its cache store, load all of
its keys concurrently, evict stale entries, persist the index, then sync the
destination directory. Destinations run concurrently with each other.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from artisync.cache import CacheStore
from artisync.destination import apply_destination
from artisync.errors import ArtisyncError, ErrorCode
from artisync.sources import build_provider, load

if TYPE_CHECKING:
    from artisync.cache import Reference
    from artisync.config import DestinationSettings
    from artisync.models.sources import Source, Transform
    from artisync.state import SourceContext
    from artisync.status import StatusWriter

log = structlog.get_logger()

# Without a trustworthy cache the whole destination is unusable.
STORAGE_ERRORS = frozenset({ErrorCode.CACHE_IO_ERROR, ErrorCode.CACHE_INDEX_CORRUPT})


@dataclass
class PreparedDestination:
    name: str
    root: Path
    fresh: list[Reference] = field(default_factory=list)
    stale: list[Reference] = field(default_factory=list)

    @property
    def changed(self) -> list[Reference]:
        return [reference for reference in self.fresh if reference.changed]

    async def apply(self) -> None:
        await apply_destination(self.root, self.fresh, self.stale)


async def load_key(
    ctx: SourceContext,
    store: CacheStore,
    key: str,
    source: Source,
    transform: Transform,
) -> Reference:
    entry = await store.entry(key)
    provider = build_provider(ctx, source)
    return await load(provider, entry, transform)


async def _load_or_exclude(
    ctx: SourceContext,
    store: CacheStore,
    key: str,
    source: Source,
    transform: Transform,
    status: StatusWriter,
) -> Reference | None:
    try:
        return await load_key(ctx, store, key, source, transform)
    except ArtisyncError as exc:
        if exc.code in STORAGE_ERRORS:
            raise
        log.warning(
            "source_load_failed",
            key=key,
            code=str(exc.code),
            recoverable=exc.recoverable,
            error=exc.message,
        )
        status.write(f"Failed to load {key}... Excluding!")
        return None


async def prepare_destination(
    ctx: SourceContext,
    name: str,
    destination: DestinationSettings,
    cache_root: Path,
    status: StatusWriter,
) -> PreparedDestination:
    """Bring the cache for ``name`` up to date and work out the file set."""
    store = await CacheStore.open(cache_root / name)

    jobs = [
        _load_or_exclude(ctx, store, key, source, source_set.transform, status)
        for source_set in destination.sources.values()
        for key, source in source_set.sources.items()
    ]
    try:
        # Let every key finish before a storage error aborts the destination.
        outcomes = await asyncio.gather(*jobs, return_exceptions=True)
        results: list[Reference | None] = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
            results.append(outcome)
        stale = await store.drop_stale()
    finally:
        # The in-memory index only ever lists entries whose blob exists.
        await store.close()

    prepared = PreparedDestination(
        name=name,
        root=destination.path,
        fresh=[reference for reference in results if reference is not None],
        stale=stale + store.superseded(),
    )
    log.info(
        "destination_prepared",
        destination=name,
        files=len(prepared.fresh),
        changed=len(prepared.changed),
        removed=len(stale),
        failed=len(jobs) - len(prepared.fresh),
    )
    return prepared


async def sync_destination(
    ctx: SourceContext,
    name: str,
    destination: DestinationSettings,
    cache_root: Path,
    status: StatusWriter,
) -> PreparedDestination:
    prepared = await prepare_destination(ctx, name, destination, cache_root, status)
    await prepared.apply()
    return prepared


async def sync_destinations(
    ctx: SourceContext,
    destinations: dict[str, DestinationSettings],
    cache_root: Path | str,
    status: StatusWriter,
) -> list[PreparedDestination]:
    """Sync every destination concurrently. Failed destinations are skipped."""
    cache_root = Path(cache_root).expanduser()
    names = list(destinations)
    results = await asyncio.gather(
        *(sync_destination(ctx, n, destinations[n], cache_root, status) for n in names),
        return_exceptions=True,
    )

    synced: list[PreparedDestination] = []
    for name, result in zip(names, results, strict=True):
        if isinstance(result, ArtisyncError):
            log.error(
                "destination_failed",
                destination=name,
                code=str(result.code),
                exc_info=result,
            )
            status.write(f"Failed to prepare destination '{name}'!")
        elif isinstance(result, BaseException):
            raise result
        else:
            synced.append(result)
    return synced
