"""Object builder: turns a changeset into blob, tree and commit objects on the host.

Blob creation is independent per path and runs concurrently. Tree creation,
commit creation and (later, in the publish service) the ref update form a
strict chain. The builder never moves a branch: the commit it returns is
unreachable until someone points a ref at it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from backend.githost.base import TreeEntry

if TYPE_CHECKING:
    from backend.githost.base import GitHost
    from backend.services.diff_service import Changeset

logger = logging.getLogger(__name__)


class ObjectBuilder:
    """Build commits for one repository through a Git host."""

    def __init__(self, host: GitHost, owner: str, repo: str, max_concurrency: int = 8) -> None:
        if max_concurrency < 1:
            msg = "max_concurrency must be at least 1"
            raise ValueError(msg)
        self._host = host
        self._owner = owner
        self._repo = repo
        self._max_concurrency = max_concurrency

    async def create_blobs(self, files: dict[str, str]) -> dict[str, str]:
        """Upload every file as a blob, returning path -> blob SHA.

        The first failure cancels the blobs still in flight and is re-raised.
        """
        semaphore = asyncio.Semaphore(self._max_concurrency)
        blob_shas: dict[str, str] = {}

        async def upload(path: str, content: str) -> None:
            async with semaphore:
                blob_shas[path] = await self._host.create_blob(self._owner, self._repo, content)
                logger.debug("Created blob for %s in %s/%s", path, self._owner, self._repo)

        try:
            async with asyncio.TaskGroup() as group:
                for path, content in files.items():
                    group.create_task(upload(path, content))
        except ExceptionGroup as failures:
            raise failures.exceptions[0] from failures
        return {path: blob_shas[path] for path in sorted(blob_shas)}

    async def _tree_entries(
        self, blob_shas: dict[str, str], deleted: list[str], parent_tree: str
    ) -> tuple[list[TreeEntry], str | None]:
        """Entries plus base tree for a tree that extends ``parent_tree``."""
        if self._host.supports_base_tree:
            entries = [TreeEntry(path=path, sha=sha) for path, sha in blob_shas.items()]
            entries.extend(TreeEntry(path=path, sha=None) for path in deleted)
            return entries, parent_tree

        # No base tree support: enumerate every surviving path of the parent.
        removed = set(deleted) | set(blob_shas)
        existing = await self._host.get_tree(self._owner, self._repo, parent_tree)
        entries = [e for e in existing if e.path not in removed]
        entries.extend(TreeEntry(path=path, sha=sha) for path, sha in blob_shas.items())
        return sorted(entries, key=lambda e: e.path), None

    async def build_commit(
        self,
        changeset: Changeset,
        parent_sha: str | None,
        message: str,
        inherit_parent_tree: bool = True,
    ) -> str:
        """Create blobs, a tree and a commit for ``changeset``; return the commit SHA.

        With ``inherit_parent_tree`` the new tree is the parent's tree with the
        changeset applied. Without it (or without a parent) the tree holds
        exactly the changeset's added and modified files.
        """
        blob_shas = await self.create_blobs(changeset.upserts)

        base_tree: str | None = None
        if parent_sha is not None and inherit_parent_tree:
            parent = await self._host.get_commit(self._owner, self._repo, parent_sha)
            entries, base_tree = await self._tree_entries(
                blob_shas, changeset.deleted, parent.tree_sha
            )
        else:
            entries = [TreeEntry(path=path, sha=sha) for path, sha in blob_shas.items()]

        tree_sha = await self._host.create_tree(self._owner, self._repo, entries, base_tree)
        parents = [parent_sha] if parent_sha is not None else []
        commit_sha = await self._host.create_commit(
            self._owner, self._repo, message, tree_sha, parents
        )
        logger.debug(
            "Built commit %s on %s for %s/%s (%d blobs)",
            commit_sha,
            parent_sha or "<root>",
            self._owner,
            self._repo,
            len(blob_shas),
        )
        return commit_sha
