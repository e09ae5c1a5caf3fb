"""Post-fetch transforms applied before a file enters the cache."""

from __future__ import annotations

import asyncio
import io
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import PurePosixPath

import structlog

from artisync.errors import ArtisyncError, ErrorCode
from artisync.models.sources import DirectTransform, ExtractTransform, Transform

log = structlog.get_logger()


@dataclass(frozen=True)
class SourceFile:
    """Bytes fetched from a source, with the name they should be stored under."""

    name: str
    data: bytes


async def apply_transform(transform: Transform, file: SourceFile) -> SourceFile | None:
    """Run ``transform`` over ``file``. ``None`` means no usable artifact."""
    if isinstance(transform, DirectTransform):
        return file
    if isinstance(transform, ExtractTransform):
        # Decompression is CPU-bound; keep it off the event loop.
        return await asyncio.to_thread(_extract, file, transform)
    raise TypeError(f"Unsupported transform: {transform!r}")


def _extract(file: SourceFile, transform: ExtractTransform) -> SourceFile | None:
    try:
        with zipfile.ZipFile(io.BytesIO(file.data)) as archive:
            for member in archive.infolist():
                if member.is_dir() or not transform.matches_all(member.filename):
                    continue
                data = archive.read(member)
                log.debug("archive_member_selected", archive=file.name, member=member.filename)
                # Destinations are flat; keep only the base name.
                return SourceFile(name=PurePosixPath(member.filename).name, data=data)
    except (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        zlib.error,
        EOFError,
        NotImplementedError,  # Unsupported compression method
        RuntimeError,  # Encrypted member
        OSError,
    ) as exc:
        raise ArtisyncError(
            ErrorCode.EXTRACTION_FAILED, f"Cannot extract {file.name}: {exc}"
        ) from exc

    patterns = [str(p) for p in transform.unzip]
    log.warning("archive_no_match", archive=file.name, patterns=patterns)
    return None
