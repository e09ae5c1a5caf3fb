"""Reconcile a destination directory with this run's cached artifacts.

Only files artisync placed itself are ever removed, and only by name: the
destination may also hold files written by the server process.
"""

from __future__ import annotations

import asyncio
import shutil
from typing import TYPE_CHECKING

import aiofiles.os
import structlog

from artisync.errors import ArtisyncError, ErrorCode

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from artisync.cache import Reference

log = structlog.get_logger()


async def apply_destination(
    root: Path,
    fresh: Iterable[Reference],
    stale: Iterable[Reference],
) -> None:
    """Remove ``stale`` names from ``root``, then copy every ``fresh`` blob in."""
    try:
        if await aiofiles.os.path.isdir(root):
            for reference in stale:
                await _remove_if_present(root / reference.name)
        else:
            await aiofiles.os.makedirs(root, exist_ok=True)

        for reference in fresh:
            target = root / reference.name
            await asyncio.to_thread(shutil.copyfile, reference.path, target)
            log.debug("destination_file_copied", name=reference.name, changed=reference.changed)
    except OSError as exc:
        raise ArtisyncError(
            ErrorCode.DESTINATION_SYNC_FAILED, f"Cannot sync destination {root}: {exc}"
        ) from exc


async def _remove_if_present(path: Path) -> None:
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        return
    log.info("destination_file_removed", path=str(path))
