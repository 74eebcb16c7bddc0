"""GitHub export, push and sync status endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import (
    get_git_host,
    get_registry_lock,
    get_session,
    get_settings,
    require_operator,
)
from backend.config import Settings
from backend.githost.base import GitHost
from backend.schemas.github import (
    ConflictResponse,
    ExportRequest,
    ExportResponse,
    GitHubOrg,
    GitHubRepo,
    GitHubStatusResponse,
    ImportRequest,
    ImportResponse,
    PushRequest,
    PushResponse,
    RepoListResponse,
    SyncStatusResponse,
)
from backend.services.datetime_service import format_iso
from backend.services.export_service import (
    INITIAL_PUBLISH_INTERRUPTED,
    export_registry,
    push_registry,
    registry_sync_status,
)
from backend.services.import_service import import_registry, parse_repo_url
from backend.services.publish_service import NOTHING_TO_PUSH, PushOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["github"], dependencies=[Depends(require_operator)])


@router.get("/github/status", response_model=GitHubStatusResponse)
async def github_status_endpoint(request: Request) -> GitHubStatusResponse:
    """Report whether a GitHub token is configured and which account it belongs to."""
    settings: Settings = request.app.state.settings
    if not settings.github_token:
        return GitHubStatusResponse(connected=False)
    host: GitHost = request.app.state.git_host_factory(settings)
    try:
        user = await host.get_authenticated_user()
        orgs = await host.list_orgs()
    finally:
        await host.aclose()
    return GitHubStatusResponse(
        connected=True,
        login=user.login,
        orgs=[GitHubOrg(login=o.login, avatar_url=o.avatar_url) for o in orgs],
    )


@router.get("/github/repos", response_model=RepoListResponse)
async def list_repos_endpoint(
    host: Annotated[GitHost, Depends(get_git_host)],
    org: str | None = None,
) -> RepoListResponse:
    """List repositories that can be imported, most recently updated first."""
    repos = await host.list_repos(org)
    return RepoListResponse(
        repos=[
            GitHubRepo(
                name=r.name,
                full_name=r.full_name,
                description=r.description,
                html_url=r.html_url,
                private=r.private,
                default_branch=r.default_branch,
                owner=r.owner,
            )
            for r in repos
        ]
    )


@router.post(
    "/registries/import",
    response_model=ImportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def import_registry_endpoint(
    body: ImportRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    host: Annotated[GitHost, Depends(get_git_host)],
) -> ImportResponse:
    """Create a registry from the registry.json of an existing repository."""
    owner, repo = parse_repo_url(body.repo_url)
    result = await import_registry(
        session, host, owner, repo, owner_id=body.owner_id, settings=settings
    )
    return ImportResponse(
        registry_id=result.registry_id,
        item_count=result.item_count,
        file_count=result.file_count,
        commit_sha=result.commit_sha,
        repo_url=result.repo_url,
    )

@router.post(
    "/registries/{registry_id}/export",
    response_model=ExportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def export_registry_endpoint(
    request: Request,
    registry_id: int,
    body: ExportRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    host: Annotated[GitHost, Depends(get_git_host)],
) -> ExportResponse:
    """Create a GitHub repository for the registry and publish its scaffold."""
    async with get_registry_lock(request, registry_id):
        result = await export_registry(
            session,
            host,
            registry_id,
            body.repo_name,
            settings=settings,
            private=body.is_private,
            org=body.org,
            description=body.description,
        )
    return ExportResponse(
        repo_url=result.repo_url,
        pages_url=result.hosting_url,
        owner=result.owner,
        repo=result.repo,
        commit_sha=result.commit_sha,
        published=result.published,
        message=None if result.published else INITIAL_PUBLISH_INTERRUPTED,
    )


@router.get("/registries/{registry_id}/sync-status", response_model=SyncStatusResponse)
async def sync_status_endpoint(
    registry_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    host: Annotated[GitHost, Depends(get_git_host)],
) -> SyncStatusResponse:
    """Compare the remote branch head with the last published commit."""
    sync_status = await registry_sync_status(session, host, registry_id)
    return SyncStatusResponse(
        has_remote_changes=sync_status.has_remote_changes,
        local_commit=sync_status.local_commit,
        remote_commit=sync_status.remote_commit,
        last_synced_at=(
            format_iso(sync_status.last_synced_at) if sync_status.last_synced_at else None
        ),
    )


@router.post(
    "/registries/{registry_id}/push",
    response_model=PushResponse,
    responses={409: {"model": ConflictResponse}},
)
async def push_registry_endpoint(
    request: Request,
    registry_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    host: Annotated[GitHost, Depends(get_git_host)],
    body: PushRequest | None = None,
) -> PushResponse | JSONResponse:
    """Publish the registry's current contents to its repository.

    Returns 409 with both commit identifiers when the remote branch moved
    since the last push; resend with ``force`` to supersede it.
    """
    options = body or PushRequest()
    async with get_registry_lock(request, registry_id):
        result = await push_registry(
            session,
            host,
            registry_id,
            settings=settings,
            force=options.force,
            allow_empty=options.allow_empty,
        )

    if result.outcome is PushOutcome.CONFLICT:
        conflict = ConflictResponse(
            local_commit=result.local_commit,
            remote_commit=result.remote_commit,
            last_synced_at=format_iso(result.last_synced_at) if result.last_synced_at else None,
        )
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=conflict.model_dump())
    if result.outcome is PushOutcome.ALREADY_UP_TO_DATE:
        return PushResponse(pushed=False, message=NOTHING_TO_PUSH, files_changed=0)
    return PushResponse(
        pushed=True, commit_sha=result.commit_sha, files_changed=result.files_changed
    )
