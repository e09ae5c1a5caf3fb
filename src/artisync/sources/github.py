"""GitHub Actions build artifacts.

The newest non-expired artifact is identified by its numeric id, so a new CI
build always produces a new token and an unchanged one never re-downloads.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ValidationError

from artisync.errors import ArtisyncError, ErrorCode
from artisync.models.cache import ArtifactId
from artisync.sources.base import Resolved, UrlPayload, get_json

if TYPE_CHECKING:
    import httpx

    from artisync.models.sources import GitHubSource

log = structlog.get_logger()

_EPOCH = datetime.min.replace(tzinfo=UTC)


class WorkflowRun(BaseModel):
    id: int
    head_branch: str | None = None


class Artifact(BaseModel):
    id: int
    name: str
    archive_download_url: str | None = None
    expired: bool = False
    updated_at: datetime | None = None
    workflow_run: WorkflowRun | None = None


class GitHubClient:
    """Thin REST client for the Actions API. Holds the optional access token."""

    BASE_URL = "https://api.github.com"

    def __init__(self, client: httpx.AsyncClient, token: str | None = None) -> None:
        self._client = client
        self._token = token

    @property
    def headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def list_artifacts(
        self, owner: str, repository: str, name: str | None = None
    ) -> list[Artifact]:
        params: dict[str, Any] = {"per_page": 100}
        if name is not None:
            params["name"] = name
        url = f"{self.BASE_URL}/repos/{owner}/{repository}/actions/artifacts"
        body = await get_json(self._client, url, params=params, headers=self.headers)
        return _parse_artifacts(body, url)

    async def latest_run_id(
        self, owner: str, repository: str, workflow: str, branch: str | None = None
    ) -> int | None:
        """Id of the newest successful run of ``workflow``, if any."""
        params: dict[str, Any] = {"per_page": 1, "status": "success"}
        if branch is not None:
            params["branch"] = branch
        url = f"{self.BASE_URL}/repos/{owner}/{repository}/actions/workflows/{workflow}/runs"
        body = await get_json(self._client, url, params=params, headers=self.headers)
        try:
            runs = [WorkflowRun.model_validate(run) for run in body["workflow_runs"]]
        except (KeyError, TypeError, ValidationError) as exc:
            raise ArtisyncError(
                ErrorCode.SOURCE_RESPONSE_INVALID, f"Unexpected response from {url}: {exc}"
            ) from exc
        return runs[0].id if runs else None

    async def list_run_artifacts(self, owner: str, repository: str, run_id: int) -> list[Artifact]:
        url = f"{self.BASE_URL}/repos/{owner}/{repository}/actions/runs/{run_id}/artifacts"
        body = await get_json(self._client, url, params={"per_page": 100}, headers=self.headers)
        return _parse_artifacts(body, url)

    def payload(self, url: str) -> UrlPayload:
        return UrlPayload(self._client, url, headers=self.headers)


def _parse_artifacts(body: Any, url: str) -> list[Artifact]:
    try:
        return [Artifact.model_validate(artifact) for artifact in body["artifacts"]]
    except (KeyError, TypeError, ValidationError) as exc:
        raise ArtisyncError(
            ErrorCode.SOURCE_RESPONSE_INVALID, f"Unexpected response from {url}: {exc}"
        ) from exc


class GitHubArtifactsProvider:
    def __init__(
        self,
        client: GitHubClient,
        owner: str,
        repository: str,
        *,
        workflow: str | None = None,
        branch: str | None = None,
        artifact: str | None = None,
    ) -> None:
        self._client = client
        self.owner = owner
        self.repository = repository
        self.workflow = workflow
        self.branch = branch
        self.artifact = artifact

    @classmethod
    def from_source(cls, client: GitHubClient, source: GitHubSource) -> GitHubArtifactsProvider:
        owner, sep, repository = source.github.partition("/")
        if not sep or not owner or not repository or "/" in repository:
            raise ArtisyncError(
                ErrorCode.INVALID_SOURCE,
                f"Malformed GitHub reference {source.github!r}, expected 'owner/repository'",
            )
        return cls(
            client,
            owner,
            repository,
            workflow=source.workflow,
            branch=source.branch,
            artifact=source.artifact,
        )

    async def resolve_latest(self) -> Resolved | None:
        # Only the first page is consulted; the API lists newest first.
        candidates = [
            (artifact, artifact.archive_download_url)
            for artifact in await self._candidates()
            if artifact.archive_download_url is not None and self._accepts(artifact)
        ]
        if not candidates:
            log.info(
                "github_no_artifact",
                repository=f"{self.owner}/{self.repository}",
                artifact=self.artifact,
            )
            return None

        latest, url = max(candidates, key=lambda pair: pair[0].updated_at or _EPOCH)
        return Resolved(
            token=ArtifactId(id=latest.id),
            payload=self._client.payload(url),
            name=f"{latest.name}.zip",
        )

    async def _candidates(self) -> list[Artifact]:
        if self.workflow is None:
            return await self._client.list_artifacts(self.owner, self.repository, self.artifact)

        run_id = await self._client.latest_run_id(
            self.owner, self.repository, self.workflow, self.branch
        )
        if run_id is None:
            return []
        return await self._client.list_run_artifacts(self.owner, self.repository, run_id)

    def _accepts(self, artifact: Artifact) -> bool:
        if artifact.expired:
            return False
        if self.artifact is not None and artifact.name != self.artifact:
            return False
        if self.branch is not None:
            run = artifact.workflow_run
            if run is None or run.head_branch != self.branch:
                return False
        return True
