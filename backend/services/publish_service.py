"""Publish service: conflict detection, ref updates and sync status for a binding.

A push is an optimistic read-then-conditionally-write: the branch head is
read, compared with the commit recorded in the binding's snapshot, and the
ref is only moved as a fast-forward from that head. If someone else moved
the branch in between, the host rejects the update and the push reports a
conflict. Nothing is persisted locally unless the ref actually moved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from backend.exceptions import EmptyPublishError
from backend.githost.base import RefUpdateRejectedError
from backend.services.diff_service import compute_changeset, full_changeset, snapshot_of
from backend.services.object_builder import ObjectBuilder
from backend.services.snapshot_service import record_sync

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from backend.githost.base import GitHost
    from backend.services.records import BindingRecord

logger = logging.getLogger(__name__)

NOTHING_TO_PUSH = "Nothing to push"


class PushOutcome(StrEnum):
    """Result kind of a sync attempt."""

    PUSHED = "pushed"
    ALREADY_UP_TO_DATE = "already_up_to_date"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class PushResult:
    """Outcome of :func:`sync_binding`."""

    outcome: PushOutcome
    commit_sha: str | None = None
    files_changed: int = 0
    local_commit: str | None = None
    remote_commit: str | None = None
    last_synced_at: datetime | None = None

    @property
    def pushed(self) -> bool:
        return self.outcome is PushOutcome.PUSHED

    @property
    def conflict(self) -> bool:
        return self.outcome is PushOutcome.CONFLICT


@dataclass(frozen=True)
class SyncStatus:
    """Read-only comparison of the remote branch head with the last published commit."""

    has_remote_changes: bool
    local_commit: str | None
    remote_commit: str | None
    last_synced_at: datetime | None


def _conflict(binding: BindingRecord, remote_commit: str | None) -> PushResult:
    return PushResult(
        outcome=PushOutcome.CONFLICT,
        local_commit=binding.last_commit_sha,
        remote_commit=remote_commit,
        last_synced_at=binding.last_synced_at,
    )


async def sync_binding(
    session: AsyncSession,
    host: GitHost,
    binding: BindingRecord,
    desired: dict[str, str],
    *,
    force: bool = False,
    message: str = "Update from Registry Studio",
    allow_empty: bool = False,
    max_concurrency: int = 8,
) -> PushResult:
    """Publish ``desired`` as the new content of the binding's branch.

    Returns ``already_up_to_date`` without contacting the host when nothing
    changed since the last push, ``conflict`` without writing anything when
    the branch moved since then (unless ``force``), and ``pushed`` after the
    branch points at the new commit and the snapshot was persisted.
    Host errors propagate; in that case the ref has not moved.
    """
    owner, repo, branch = binding.repo_owner, binding.repo_name, binding.branch

    changeset = compute_changeset(desired, binding.snapshot)
    files_changed = changeset.files_changed
    if changeset.is_empty and binding.last_commit_sha is not None:
        logger.info("Nothing to push for %s/%s", owner, repo)
        return PushResult(
            outcome=PushOutcome.ALREADY_UP_TO_DATE,
            local_commit=binding.last_commit_sha,
            remote_commit=binding.last_commit_sha,
            last_synced_at=binding.last_synced_at,
        )
    if not desired and not allow_empty:
        msg = "Refusing to publish an empty file set; confirm to delete every file"
        raise EmptyPublishError(msg)

    head = await host.get_ref(owner, repo, branch)
    inherit_parent_tree = True
    if head is None:
        # Empty branch: root commit holding exactly the desired files.
        changeset = full_changeset(desired)
        inherit_parent_tree = False
    elif binding.last_commit_sha is None:
        # First sync onto the host's initial commit: the tree replaces it.
        changeset = full_changeset(desired)
        inherit_parent_tree = False
    elif head != binding.last_commit_sha:
        if not force:
            logger.info(
                "Refusing push to %s/%s: remote head %s, last published %s",
                owner,
                repo,
                head,
                binding.last_commit_sha,
            )
            return _conflict(binding, head)
        logger.info("Force push to %s/%s supersedes remote head %s", owner, repo, head)
        changeset = full_changeset(desired)
        inherit_parent_tree = False

    builder = ObjectBuilder(host, owner, repo, max_concurrency=max_concurrency)
    commit_sha = await builder.build_commit(
        changeset, head, message, inherit_parent_tree=inherit_parent_tree
    )

    try:
        if head is None:
            await host.create_ref(owner, repo, branch, commit_sha)
        else:
            await host.update_ref(owner, repo, branch, commit_sha, force=False)
    except RefUpdateRejectedError as exc:
        logger.warning(
            "Ref update for %s/%s rejected, branch moved during push: %s", owner, repo, exc
        )
        return _conflict(binding, await host.get_ref(owner, repo, branch))

    updated = await record_sync(session, binding.id, commit_sha, snapshot_of(desired))
    logger.info(
        "Pushed %s to %s/%s (%d files changed)", commit_sha, owner, repo, files_changed
    )
    return PushResult(
        outcome=PushOutcome.PUSHED,
        commit_sha=commit_sha,
        files_changed=files_changed,
        local_commit=commit_sha,
        remote_commit=commit_sha,
        last_synced_at=updated.last_synced_at,
    )


async def get_sync_status(host: GitHost, binding: BindingRecord) -> SyncStatus:
    """Compare the remote branch head with the last published commit. Never writes."""
    remote = await host.get_ref(binding.repo_owner, binding.repo_name, binding.branch)
    if binding.last_commit_sha is None:
        has_remote_changes = remote is not None
    else:
        # a deleted branch counts as a remote change too
        has_remote_changes = remote != binding.last_commit_sha
    return SyncStatus(
        has_remote_changes=has_remote_changes,
        local_commit=binding.last_commit_sha,
        remote_commit=remote,
        last_synced_at=binding.last_synced_at,
    )
