from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class _TokenBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class ETag(_TokenBase):
    """HTTP entity tag reported by a plain URL source."""

    kind: Literal["etag"] = "etag"
    value: str


class ArtifactId(_TokenBase):
    """Numeric id of a CI build artifact."""

    kind: Literal["artifact"] = "artifact"
    id: int


class ContentHash(_TokenBase):
    """Digest of the artifact bytes, as lowercase hex."""

    kind: Literal["hash"] = "hash"
    algorithm: Literal["sha1", "sha512"]
    digest: str


class Unknown(_TokenBase):
    """No identity could be established. Never equal to anything."""

    kind: Literal["unknown"] = "unknown"

    def __eq__(self, other: object) -> bool:
        return False


Token = Annotated[ETag | ArtifactId | ContentHash | Unknown, Field(discriminator="kind")]


class IndexEntry(BaseModel):
    """One cached artifact: the blob lives at ``<cache root>/<key>``."""

    key: str
    token: Token
    file_name: str  # Name the blob is given inside the destination


class Index(BaseModel):
    """Persisted contents of ``index.json``."""

    entries: list[IndexEntry] = []
