"""Export orchestration: first-time repository creation and later pushes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from backend.services.publish_service import PushResult, get_sync_status, sync_binding
from backend.services.registry_service import get_registry, load_registry_tree
from backend.services.scaffold_service import generate_scaffold_files
from backend.services.snapshot_service import create_binding, get_binding, require_binding

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from backend.config import Settings
    from backend.githost.base import GitHost
    from backend.services.publish_service import SyncStatus
    from backend.services.records import BindingRecord

logger = logging.getLogger(__name__)

INITIAL_PUBLISH_INTERRUPTED = (
    "Repository created, but its branch moved during the initial publish. Push again to publish."
)


@dataclass(frozen=True)
class ExportResult:
    """Repository created for a registry and the commit published to it."""

    repo_url: str
    hosting_url: str
    owner: str
    repo: str
    commit_sha: str | None

    @property
    def published(self) -> bool:
        return self.commit_sha is not None


def _hosting_url(binding: BindingRecord) -> str:
    return binding.hosting_url or f"https://{binding.repo_owner}.github.io/{binding.repo_name}"


async def export_registry(
    session: AsyncSession,
    host: GitHost,
    registry_id: int,
    repo_name: str,
    *,
    settings: Settings,
    private: bool = False,
    org: str | None = None,
    description: str | None = None,
) -> ExportResult:
    """Create a repository for the registry, enable static hosting and publish the scaffold.

    Repository creation and hosting enablement run before any object is
    created, so a name collision or permission error leaves nothing behind
    but (at worst) an empty repository. The binding is stored before the
    first push so a failed push can be retried with a plain push.
    """
    if await get_binding(session, registry_id) is not None:
        msg = "Registry is already exported to GitHub"
        raise ValueError(msg)
    registry, items = await load_registry_tree(session, registry_id)
    if not items:
        msg = "Registry has no items to export"
        raise ValueError(msg)
    branch = settings.github_branch
    # Rendered before touching the host so invalid content leaves nothing behind.
    # The final render needs the hosting URL, known only once Pages is enabled.
    provisional_url = f"https://{org or 'owner'}.github.io/{repo_name}"
    generate_scaffold_files(registry, items, provisional_url, branch)

    repository = await host.create_repository(
        repo_name,
        description,
        private,
        org=org,
        homepage=registry.homepage,
        auto_init=settings.github_auto_init,
    )
    logger.info("Created repository %s/%s", repository.owner, repository.name)
    hosting_url = await host.enable_static_hosting(repository.owner, repository.name, branch)

    binding = await create_binding(
        session,
        registry_id,
        repository.owner,
        repository.name,
        repository.html_url,
        hosting_url,
        branch,
    )
    desired = generate_scaffold_files(registry, items, hosting_url, branch)
    result = await sync_binding(
        session,
        host,
        binding,
        desired,
        message=settings.initial_commit_message,
        max_concurrency=settings.github_blob_concurrency,
    )
    if result.conflict:
        logger.warning(
            "Initial publish of %s/%s hit a moved branch; push again to retry",
            repository.owner,
            repository.name,
        )
    return ExportResult(
        repo_url=repository.html_url,
        hosting_url=hosting_url,
        owner=repository.owner,
        repo=repository.name,
        commit_sha=result.commit_sha,
    )


async def push_registry(
    session: AsyncSession,
    host: GitHost,
    registry_id: int,
    *,
    settings: Settings,
    force: bool = False,
    allow_empty: bool = False,
) -> PushResult:
    """Regenerate the registry's repository contents and publish the difference."""
    registry, items = await load_registry_tree(session, registry_id)
    binding = await require_binding(session, registry_id)
    desired = generate_scaffold_files(registry, items, _hosting_url(binding), binding.branch)
    return await sync_binding(
        session,
        host,
        binding,
        desired,
        force=force,
        message=settings.commit_message,
        allow_empty=allow_empty,
        max_concurrency=settings.github_blob_concurrency,
    )


async def registry_sync_status(
    session: AsyncSession, host: GitHost, registry_id: int
) -> SyncStatus:
    await get_registry(session, registry_id)
    binding = await require_binding(session, registry_id)
    return await get_sync_status(host, binding)
