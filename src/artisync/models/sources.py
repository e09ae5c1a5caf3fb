from __future__ import annotations

from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class Pattern(BaseModel):
    """Glob rule for archive entries. ``"!lib/*-sources.jar"`` excludes."""

    model_config = ConfigDict(frozen=True)

    glob: str
    exclude: bool = False

    @model_validator(mode="before")
    @classmethod
    def parse_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            if data.startswith("!"):
                return {"glob": data[1:], "exclude": True}
            return {"glob": data, "exclude": False}
        return data

    @field_validator("glob")
    @classmethod
    def validate_glob(cls, v: str) -> str:
        if not v:
            raise ValueError("pattern must not be empty")
        return v

    def matches(self, path: str) -> bool:
        return fnmatchcase(path, self.glob)

    def __str__(self) -> str:
        return f"!{self.glob}" if self.exclude else self.glob


class DirectTransform(BaseModel):
    """Cache the fetched file as-is."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["direct"] = "direct"


class ExtractTransform(BaseModel):
    """Pick one file out of a fetched ZIP archive."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    unzip: list[Pattern]

    def matches_all(self, path: str) -> bool:
        includes = (p for p in self.unzip if not p.exclude)
        excludes = (p for p in self.unzip if p.exclude)
        return all(p.matches(path) for p in includes) and not any(
            p.matches(path) for p in excludes
        )


Transform = DirectTransform | ExtractTransform


# ---------------------------------------------------------------------------
# Sources
#
# Each source kind is recognised by its distinguishing field, so a YAML entry
# like ``{url: https://...}`` or ``{github: owner/repo}`` needs no type tag.
# ---------------------------------------------------------------------------


class GitHubSource(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: ClassVar[str] = "github"

    github: str  # "owner/repository"
    workflow: str | None = None  # Workflow file name, e.g. "build.yml"
    branch: str | None = None
    artifact: str | None = None


class ModrinthSource(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: ClassVar[str] = "modrinth"

    modrinth: str  # Project id or slug
    game_version: str | None = None


class UrlSource(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: ClassVar[str] = "url"

    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must use http or https scheme")
        return v


class PathSource(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: ClassVar[str] = "path"

    path: Path


Source = GitHubSource | ModrinthSource | UrlSource | PathSource


class SourceSet(BaseModel):
    """Group of keyed sources sharing one transform.

    Sources may be listed under ``sources:`` or directly beside ``transform:``.
    """

    model_config = ConfigDict(extra="forbid")

    transform: Transform = DirectTransform()
    sources: dict[str, Source] = {}

    @model_validator(mode="before")
    @classmethod
    def flatten_sources(cls, data: Any) -> Any:
        if isinstance(data, dict) and "sources" not in data:
            sources = {k: v for k, v in data.items() if k != "transform"}
            flattened: dict[str, Any] = {"sources": sources}
            if "transform" in data:
                flattened["transform"] = data["transform"]
            return flattened
        return data
