"""Snapshot store: persistence of repository bindings and their sync snapshots."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from backend.exceptions import ConfigurationError, NotFoundError
from backend.models.sync import RepositoryBinding
from backend.services.datetime_service import format_iso, now_utc
from backend.services.records import BindingRecord, binding_from_row, dump_snapshot

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def _binding_row(session: AsyncSession, registry_id: int) -> RepositoryBinding | None:
    stmt = select(RepositoryBinding).where(RepositoryBinding.registry_id == registry_id)
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_binding(session: AsyncSession, registry_id: int) -> BindingRecord | None:
    """Return the registry's binding, or None if it was never exported."""
    row = await _binding_row(session, registry_id)
    return binding_from_row(row) if row is not None else None


async def require_binding(session: AsyncSession, registry_id: int) -> BindingRecord:
    binding = await get_binding(session, registry_id)
    if binding is None:
        msg = "Registry is not connected to GitHub"
        raise ConfigurationError(msg)
    return binding


async def create_binding(
    session: AsyncSession,
    registry_id: int,
    owner: str,
    repo: str,
    repo_url: str,
    hosting_url: str | None,
    branch: str = "main",
) -> BindingRecord:
    """Bind a registry to a repository with no commit and an empty snapshot."""
    if await _binding_row(session, registry_id) is not None:
        msg = "Registry is already exported to GitHub"
        raise ValueError(msg)
    row = RepositoryBinding(
        registry_id=registry_id,
        repo_owner=owner,
        repo_name=repo,
        repo_url=repo_url,
        hosting_url=hosting_url,
        branch=branch,
        last_commit_sha=None,
        sync_snapshot=dump_snapshot({}),
        created_at=format_iso(now_utc()),
        last_synced_at=None,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    logger.info("Bound registry %d to %s/%s", registry_id, owner, repo)
    return binding_from_row(row)


async def record_sync(
    session: AsyncSession,
    binding_id: int,
    commit_sha: str,
    snapshot: dict[str, str],
) -> BindingRecord:
    """Replace the stored snapshot and commit after a successful ref update.

    Snapshot and commit are written together in one transaction; the
    previous snapshot is discarded, never merged.
    """
    row = await session.get(RepositoryBinding, binding_id)
    if row is None:
        msg = f"Binding {binding_id} not found"
        raise NotFoundError(msg)
    row.last_commit_sha = commit_sha
    row.sync_snapshot = dump_snapshot(snapshot)
    row.last_synced_at = format_iso(now_utc())
    await session.commit()
    return binding_from_row(row)

