"""Error types shared across artisync.

Every failure the pipeline can report is an ``ArtisyncError`` carrying a
machine-readable ``ErrorCode``. Callers decide scope from the code: cache and
destination errors abort one destination, everything else excludes one key.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    CACHE_IO_ERROR = "CACHE_IO_ERROR"
    CACHE_INDEX_CORRUPT = "CACHE_INDEX_CORRUPT"
    INVALID_SOURCE = "INVALID_SOURCE"
    SOURCE_FETCH_FAILED = "SOURCE_FETCH_FAILED"
    SOURCE_RESPONSE_INVALID = "SOURCE_RESPONSE_INVALID"
    MISSING_ARTIFACT = "MISSING_ARTIFACT"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    DESTINATION_SYNC_FAILED = "DESTINATION_SYNC_FAILED"


class ArtisyncError(Exception):
    """Structured error raised by cache, providers and destination sync."""

    def __init__(self, code: ErrorCode, message: str, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable

    def __repr__(self) -> str:
        return f"ArtisyncError(code={self.code!s}, message={self.message!r})"
