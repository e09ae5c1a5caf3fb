"""Per-destination artifact cache with change detection and stale eviction.

A ``CacheStore`` owns one cache root: an ``index.json`` mapping each logical
key to the token and file name of the blob stored at ``<root>/<key>``.

Deciding and committing are split so that fetch cost is only paid on a
mismatch: ``CacheEntry.try_update`` compares tokens without I/O and returns
either a ``Match`` carrying the cached ``Reference`` or a ``Mismatch`` carrying
a one-shot ``EntryUpdater``. Only the updater can write a new blob.

Every key looked up through ``entry()`` is marked as touched for this run.
``drop_stale()`` evicts whatever was not touched, so a key whose fetch failed
keeps its previous artifact.

Storage failures raise ``ArtisyncError`` with a ``CACHE_*`` code. Unlike the
provider errors they are fatal for the destination being prepared: without a
trustworthy index nothing can be matched.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles
import aiofiles.os
import structlog
from pydantic import ValidationError

from artisync.errors import ArtisyncError, ErrorCode
from artisync.models.cache import Index, IndexEntry, Unknown

if TYPE_CHECKING:
    from artisync.models.cache import Token

log = structlog.get_logger()

INDEX_FILE = "index.json"


@dataclass(frozen=True)
class Reference:
    """Handle to a cached blob and the name it takes inside a destination."""

    path: Path
    name: str
    changed: bool = False


@dataclass(frozen=True)
class Match:
    reference: Reference


@dataclass(frozen=True)
class Mismatch:
    updater: EntryUpdater


UpdateResult = Match | Mismatch


# ------------------------------------------------------------------
# File helpers
# ------------------------------------------------------------------


async def _atomic_write(path: Path, data: bytes) -> None:
    """Write ``data`` to a temp file beside ``path`` and replace ``path`` with it."""
    fd, tmp_path = await asyncio.to_thread(
        tempfile.mkstemp, dir=path.parent, prefix=".", suffix=".tmp"
    )
    os.close(fd)
    try:
        async with aiofiles.open(tmp_path, mode="wb") as f:
            await f.write(data)
        await aiofiles.os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            await aiofiles.os.unlink(tmp_path)
        raise


async def _read_index(path: Path) -> Index:
    if not await aiofiles.os.path.exists(path):
        return Index()

    try:
        async with aiofiles.open(path, mode="rb") as f:
            raw = await f.read()
    except OSError as exc:
        raise ArtisyncError(
            ErrorCode.CACHE_IO_ERROR, f"Cannot read cache index {path}: {exc}"
        ) from exc

    try:
        return Index.model_validate_json(raw)
    except ValidationError as exc:
        raise ArtisyncError(
            ErrorCode.CACHE_INDEX_CORRUPT, f"Malformed cache index {path}: {exc}"
        ) from exc


# ------------------------------------------------------------------
# Store
# ------------------------------------------------------------------


class CacheStore:
    """Key → artifact index for a single destination.

    Mutations are serialized on an ``asyncio.Lock`` so keys may be processed
    concurrently. There is no locking across processes: two processes sharing
    a cache root can corrupt each other's index.
    """

    def __init__(self, root: Path, entries: dict[str, IndexEntry]) -> None:
        self._root = root
        self._entries = entries
        self._touched: set[str] = set()
        self._superseded: list[Reference] = []
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, root: Path | str) -> CacheStore:
        """Create ``root`` if needed and load its index."""
        root = Path(root).expanduser().resolve()
        try:
            await aiofiles.os.makedirs(root, exist_ok=True)
        except OSError as exc:
            raise ArtisyncError(
                ErrorCode.CACHE_IO_ERROR, f"Cannot create cache root {root}: {exc}"
            ) from exc

        index = await _read_index(root / INDEX_FILE)
        entries = {entry.key: entry for entry in index.entries}
        log.debug("cache_opened", root=str(root), entries=len(entries))
        return cls(root, entries)

    @property
    def root(self) -> Path:
        return self._root

    def keys(self) -> list[str]:
        return list(self._entries)

    async def entry(self, key: str) -> CacheEntry:
        """Mark ``key`` as used this run and return a view of its cached state."""
        self._path_for(key)
        async with self._lock:
            self._touched.add(key)
            current = self._entries.get(key)
            token = current.token if current is not None else Unknown()
        return CacheEntry(self, key, token)

    def superseded(self) -> list[Reference]:
        """Names that updated entries carried before this run renamed them."""
        return list(self._superseded)

    async def drop_stale(self) -> list[Reference]:
        """Evict every entry not looked up since the store was opened.

        Must run after the last ``entry()`` call of the run. Returns references
        describing what was removed so the destination can drop those files.

        An entry is only dropped once its blob is gone. If any blob cannot be
        removed the remaining stale keys are still processed, the failed ones
        stay indexed, and ``CACHE_IO_ERROR`` is raised at the end.
        """
        removed: list[Reference] = []
        failed: list[str] = []
        async with self._lock:
            stale = [key for key in self._entries if key not in self._touched]
            for key in stale:
                path = self._path_for(key)
                try:
                    await aiofiles.os.remove(path)
                except FileNotFoundError:
                    log.debug("cache_blob_already_gone", key=key)
                except OSError as exc:
                    log.error("cache_evict_failed", key=key, error=str(exc))
                    failed.append(key)
                    continue
                entry = self._entries.pop(key)
                removed.append(Reference(path=path, name=entry.file_name))
                log.info("cache_evicted", key=key, file_name=entry.file_name)

        if failed:
            raise ArtisyncError(
                ErrorCode.CACHE_IO_ERROR,
                f"Cannot remove cached blobs for {', '.join(map(repr, failed))} in {self._root}",
            )
        return removed

    async def close(self) -> None:
        """Persist the index, replacing the previous file atomically."""
        async with self._lock:
            index = Index(entries=list(self._entries.values()))
            path = self._root / INDEX_FILE
            try:
                await _atomic_write(path, index.model_dump_json(indent=2).encode())
            except OSError as exc:
                raise ArtisyncError(
                    ErrorCode.CACHE_IO_ERROR, f"Cannot write cache index {path}: {exc}"
                ) from exc
        log.debug("cache_closed", root=str(self._root), entries=len(index.entries))

    # ------------------------------------------------------------------
    # Internal, used by CacheEntry / EntryUpdater
    # ------------------------------------------------------------------

    def _path_for(self, key: str) -> Path:
        if not key or key in (".", "..", INDEX_FILE) or "/" in key or "\\" in key:
            raise ArtisyncError(
                ErrorCode.INVALID_SOURCE, f"Cache key {key!r} is not usable as a file name"
            )
        return self._root / key

    def _reference_for(self, key: str) -> Reference | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return Reference(path=self._path_for(key), name=entry.file_name)

    async def _update_entry(self, key: str, token: Token, name: str, data: bytes) -> Reference:
        path = self._path_for(key)
        async with self._lock:
            try:
                await _atomic_write(path, data)
            except OSError as exc:
                raise ArtisyncError(
                    ErrorCode.CACHE_IO_ERROR, f"Cannot write cached blob {path}: {exc}"
                ) from exc
            previous = self._entries.get(key)
            if previous is not None and previous.file_name != name:
                self._superseded.append(Reference(path=path, name=previous.file_name))
            # Blob is in place before the index claims the new token.
            self._entries[key] = IndexEntry(key=key, token=token, file_name=name)
        log.info("cache_updated", key=key, file_name=name, size=len(data))
        return Reference(path=path, name=name, changed=True)


class CacheEntry:
    """A key's cached state, bound to the token known when it was looked up."""

    def __init__(self, store: CacheStore, key: str, current_token: Token) -> None:
        self._store = store
        self._key = key
        self._current_token = current_token

    @property
    def key(self) -> str:
        return self._key

    @property
    def current_token(self) -> Token:
        return self._current_token

    def try_update(self, token: Token) -> UpdateResult:
        """Compare ``token`` with the cached one. Performs no I/O."""
        if token == self._current_token:
            reference = self._store._reference_for(self._key)
            if reference is not None:
                log.info("cache_matched", key=self._key, token=repr(token))
                return Match(reference)

        log.info(
            "cache_mismatched",
            key=self._key,
            new=repr(token),
            old=repr(self._current_token),
        )
        return Mismatch(EntryUpdater(self._store, self._key, token))

    def get_existing(self) -> Reference | None:
        """Return the cached reference regardless of any remote version."""
        return self._store._reference_for(self._key)


class EntryUpdater:
    """One-shot permission to replace a key's blob, granted by a mismatch."""

    def __init__(self, store: CacheStore, key: str, token: Token) -> None:
        self._store = store
        self._key = key
        self._token = token
        self._consumed = False

    @property
    def key(self) -> str:
        return self._key

    @property
    def token(self) -> Token:
        return self._token

    async def update(self, name: str, data: bytes) -> Reference:
        """Store ``data`` under the key and record the mismatched token."""
        if self._consumed:
            raise RuntimeError(f"EntryUpdater for {self._key!r} has already been used")
        self._consumed = True
        return await self._store._update_entry(self._key, self._token, name, data)
