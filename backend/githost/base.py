"""Base protocol, data classes and errors for remote Git hosts.

A Git host exposes the object-level primitives needed to publish without a
working tree: content-addressed blobs, trees that may extend a base tree,
commits, and a mutable branch reference.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

FILE_MODE = "100644"


class GitHostError(Exception):
    """Raised when the host answers a request with a non-success status."""

    retryable: bool = False

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class GitHostUnavailableError(GitHostError):
    """Transport failure or timeout; the whole sync may be retried."""

    retryable = True

    def __init__(self, message: str) -> None:
        super().__init__(0, message)


class GitHostRateLimitedError(GitHostUnavailableError):
    """The host throttled the request. ``retry_after`` is in seconds when known."""

    def __init__(self, status_code: int, message: str, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class GitHostAuthError(GitHostError):
    """The host rejected the credentials or denied the permission."""


class RepositoryNameCollisionError(GitHostError):
    """Repository creation failed because the name is already taken."""

    def __init__(self, name: str) -> None:
        super().__init__(422, f'Repository "{name}" already exists. Choose a different name.')
        self.name = name


class RefUpdateRejectedError(GitHostError):
    """A fast-forward-only branch update was refused because the branch moved."""


@dataclass(frozen=True)
class TreeEntry:
    """One entry of a tree request. ``sha=None`` removes ``path`` from the base tree."""

    path: str
    sha: str | None
    mode: str = FILE_MODE
    type: str = "blob"


@dataclass(frozen=True)
class CommitInfo:
    sha: str
    tree_sha: str
    parents: tuple[str, ...] = ()


@dataclass(frozen=True)
class RepositoryInfo:
    """A freshly created (or fetched) repository."""

    owner: str
    name: str
    html_url: str
    default_branch: str = "main"
    private: bool = False
    description: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class HostUser:
    login: str
    name: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True)
class HostOrg:
    login: str
    avatar_url: str | None = None


@runtime_checkable
class GitHost(Protocol):
    """Protocol for Git hosting services addressed through object-level APIs."""

    supports_base_tree: bool

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        """Store UTF-8 content, return the blob SHA."""
        ...

    async def get_commit(self, owner: str, repo: str, sha: str) -> CommitInfo: ...

    async def get_tree(self, owner: str, repo: str, sha: str) -> list[TreeEntry]:
        """Return every blob reachable from the tree, with full paths."""
        ...

    async def create_tree(
        self,
        owner: str,
        repo: str,
        entries: list[TreeEntry],
        base_tree: str | None = None,
    ) -> str: ...

    async def create_commit(
        self, owner: str, repo: str, message: str, tree: str, parents: list[str]
    ) -> str: ...

    async def get_ref(self, owner: str, repo: str, branch: str) -> str | None:
        """Return the branch head SHA, or None when the branch has no commits."""
        ...

    async def create_ref(self, owner: str, repo: str, branch: str, sha: str) -> None: ...

    async def update_ref(
        self, owner: str, repo: str, branch: str, sha: str, force: bool = False
    ) -> None:
        """Move the branch. Without ``force`` a non fast-forward move is rejected."""
        ...

    async def create_repository(
        self,
        name: str,
        description: str | None,
        private: bool,
        org: str | None = None,
        homepage: str | None = None,
        auto_init: bool = True,
    ) -> RepositoryInfo: ...

    async def enable_static_hosting(self, owner: str, repo: str, branch: str) -> str:
        """Enable static hosting for the repository and return its public URL."""
        ...

    async def get_file(
        self, owner: str, repo: str, path: str, ref: str | None = None
    ) -> str | None:
        """Return the UTF-8 content of ``path`` at ``ref``, or None when it does not exist."""
        ...

    async def list_repos(self, org: str | None = None) -> list[RepositoryInfo]:
        """Repositories of the authenticated user (or of ``org``), most recently updated first."""
        ...

    async def get_authenticated_user(self) -> HostUser: ...

    async def list_orgs(self) -> list[HostOrg]: ...

    async def aclose(self) -> None: ...
