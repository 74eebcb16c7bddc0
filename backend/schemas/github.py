"""GitHub export, push and status schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class GitHubOrg(BaseModel):
    login: str
    avatar_url: str | None = None


class GitHubStatusResponse(BaseModel):
    """Whether a GitHub token is configured and whom it authenticates as."""

    connected: bool
    login: str | None = None
    orgs: list[GitHubOrg] = Field(default_factory=list)


class ExportRequest(BaseModel):
    """Request to create a GitHub repository for a registry and publish it."""

    repo_name: str = Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9._-]+$")
    is_private: bool = False
    org: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=350)


class ExportResponse(BaseModel):
    repo_url: str
    pages_url: str
    owner: str
    repo: str
    commit_sha: str | None = None
    published: bool = True
    message: str | None = None


class PushRequest(BaseModel):
    """Request to publish the current registry contents."""

    force: bool = Field(default=False, description="Supersede remote changes")
    allow_empty: bool = Field(
        default=False, description="Confirm publishing an empty file set (deletes every file)"
    )


class PushResponse(BaseModel):
    """A push that either created a commit or had nothing to publish."""

    pushed: bool
    commit_sha: str | None = None
    files_changed: int = Field(default=0, ge=0)
    message: str | None = None


class ConflictResponse(BaseModel):
    """Returned with HTTP 409 when the remote branch moved since the last push."""

    conflict: bool = True
    local_commit: str | None = None
    remote_commit: str | None = None
    last_synced_at: str | None = None


class SyncStatusResponse(BaseModel):
    has_remote_changes: bool
    local_commit: str | None = None
    remote_commit: str | None = None
    last_synced_at: str | None = None


class GitHubRepo(BaseModel):
    name: str
    full_name: str
    description: str | None = None
    html_url: str
    private: bool = False
    default_branch: str = "main"
    owner: str


class RepoListResponse(BaseModel):
    repos: list[GitHubRepo]


class ImportRequest(BaseModel):
    """Request to create a registry from an existing GitHub repository."""

    repo_url: str = Field(min_length=1, max_length=500, examples=["https://github.com/acme/ui"])
    owner_id: str = Field(min_length=1, max_length=200)


class ImportResponse(BaseModel):
    registry_id: int
    item_count: int
    file_count: int
    commit_sha: str
    repo_url: str
