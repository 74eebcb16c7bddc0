"""GitHub implementation of the Git host protocol using the REST Git Data API."""

from __future__ import annotations

import base64
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

from backend.exceptions import ConfigurationError
from backend.githost.base import (
    CommitInfo,
    GitHostAuthError,
    GitHostError,
    GitHostRateLimitedError,
    GitHostUnavailableError,
    HostOrg,
    HostUser,
    RefUpdateRejectedError,
    RepositoryInfo,
    RepositoryNameCollisionError,
    TreeEntry,
)

if TYPE_CHECKING:
    from backend.config import Settings

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
DEFAULT_REPO_DESCRIPTION = "{name} - shadcn/ui component registry"


def _error_message(resp: httpx.Response) -> str:
    """Extract GitHub's ``message`` field, falling back to the raw body."""
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200] or f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        message = str(data.get("message", ""))
        errors = data.get("errors")
        if isinstance(errors, list):
            details = [
                str(e.get("message", "")) if isinstance(e, dict) else str(e) for e in errors
            ]
            details = [d for d in details if d]
            if details:
                message = f"{message}: {'; '.join(details)}" if message else "; ".join(details)
        if message:
            return message
    return f"HTTP {resp.status_code}"


def _is_rate_limited(resp: httpx.Response) -> bool:
    """Primary (429, or 403 with no remaining quota) and secondary rate limits."""
    if resp.status_code == 429:
        return True
    if resp.status_code != 403:
        return False
    if resp.headers.get("x-ratelimit-remaining") == "0":
        return True
    return "rate limit" in _error_message(resp).lower()


def _retry_after(resp: httpx.Response) -> int | None:
    """Seconds to wait, from ``retry-after`` or the ``x-ratelimit-reset`` epoch."""
    value = resp.headers.get("retry-after")
    if value is not None and value.strip().isdigit():
        return int(value)
    reset = resp.headers.get("x-ratelimit-reset")
    if reset is not None and reset.strip().isdigit():
        return max(0, int(reset) - int(time.time()))
    return None


class GitHubClient:
    """Git host backed by api.github.com (or a GitHub Enterprise API root).

    One ``httpx.AsyncClient`` is shared by all calls of a sync so that the
    blob fan-out reuses connections. Call :meth:`aclose` when done.
    """

    supports_base_tree: bool = True

    def __init__(
        self,
        token: str,
        *,
        api_url: str = "https://api.github.com",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            },
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            logger.warning("GitHub %s %s failed: %s", method, path, exc)
            msg = f"GitHub is unreachable: {exc.__class__.__name__}"
            raise GitHostUnavailableError(msg) from exc
        logger.debug("GitHub %s %s -> %d", method, path, resp.status_code)
        if _is_rate_limited(resp):
            retry_after = _retry_after(resp)
            logger.warning(
                "GitHub rate limit hit on %s %s (retry after %s s)", method, path, retry_after
            )
            raise GitHostRateLimitedError(resp.status_code, _error_message(resp), retry_after)
        if resp.status_code in (401, 403):
            raise GitHostAuthError(resp.status_code, _error_message(resp))
        return resp

    @staticmethod
    def _check(resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            raise GitHostError(resp.status_code, _error_message(resp))
        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        resp = await self._send(
            "POST",
            f"/repos/{owner}/{repo}/git/blobs",
            json={"content": content, "encoding": "utf-8"},
        )
        return str(self._check(resp)["sha"])

    async def get_commit(self, owner: str, repo: str, sha: str) -> CommitInfo:
        resp = await self._send("GET", f"/repos/{owner}/{repo}/git/commits/{sha}")
        data = self._check(resp)
        return CommitInfo(
            sha=str(data["sha"]),
            tree_sha=str(data["tree"]["sha"]),
            parents=tuple(str(p["sha"]) for p in data.get("parents", [])),
        )

    async def get_tree(self, owner: str, repo: str, sha: str) -> list[TreeEntry]:
        resp = await self._send(
            "GET", f"/repos/{owner}/{repo}/git/trees/{sha}", params={"recursive": "1"}
        )
        data = self._check(resp)
        if data.get("truncated"):
            msg = f"Tree {sha} is too large to list in one request"
            raise GitHostError(resp.status_code, msg)
        return [
            TreeEntry(path=str(e["path"]), sha=str(e["sha"]), mode=str(e["mode"]))
            for e in data.get("tree", [])
            if e.get("type") == "blob"
        ]

    async def create_tree(
        self,
        owner: str,
        repo: str,
        entries: list[TreeEntry],
        base_tree: str | None = None,
    ) -> str:
        payload: dict[str, Any] = {
            "tree": [
                {"path": e.path, "mode": e.mode, "type": e.type, "sha": e.sha} for e in entries
            ]
        }
        if base_tree is not None:
            payload["base_tree"] = base_tree
        resp = await self._send("POST", f"/repos/{owner}/{repo}/git/trees", json=payload)
        return str(self._check(resp)["sha"])

    async def create_commit(
        self, owner: str, repo: str, message: str, tree: str, parents: list[str]
    ) -> str:
        resp = await self._send(
            "POST",
            f"/repos/{owner}/{repo}/git/commits",
            json={"message": message, "tree": tree, "parents": parents},
        )
        return str(self._check(resp)["sha"])

    async def get_ref(self, owner: str, repo: str, branch: str) -> str | None:
        resp = await self._send("GET", f"/repos/{owner}/{repo}/git/ref/heads/{branch}")
        # 409 is GitHub's answer for a repository without any commits
        if resp.status_code in (404, 409):
            return None
        data = self._check(resp)
        return str(data["object"]["sha"])

    async def create_ref(self, owner: str, repo: str, branch: str, sha: str) -> None:
        resp = await self._send(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        if resp.status_code == 422:
            raise RefUpdateRejectedError(422, _error_message(resp))
        self._check(resp)

    async def update_ref(
        self, owner: str, repo: str, branch: str, sha: str, force: bool = False
    ) -> None:
        resp = await self._send(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/heads/{branch}",
            json={"sha": sha, "force": force},
        )
        if resp.status_code == 422:
            raise RefUpdateRejectedError(422, _error_message(resp))
        self._check(resp)

    async def create_repository(
        self,
        name: str,
        description: str | None,
        private: bool,
        org: str | None = None,
        homepage: str | None = None,
        auto_init: bool = True,
    ) -> RepositoryInfo:
        payload: dict[str, Any] = {
            "name": name,
            "description": description or DEFAULT_REPO_DESCRIPTION.format(name=name),
            "private": private,
            "auto_init": auto_init,
            "has_issues": True,
            "has_projects": False,
            "has_wiki": False,
        }
        if homepage:
            payload["homepage"] = homepage
        path = f"/orgs/{org}/repos" if org else "/user/repos"
        resp = await self._send("POST", path, json=payload)
        if resp.status_code == 422 and "already exists" in _error_message(resp).lower():
            raise RepositoryNameCollisionError(name)
        data = self._check(resp)
        return RepositoryInfo(
            owner=str(data["owner"]["login"]),
            name=str(data["name"]),
            html_url=str(data["html_url"]),
            default_branch=str(data.get("default_branch") or "main"),
            private=bool(data.get("private", private)),
        )

    async def enable_static_hosting(self, owner: str, repo: str, branch: str) -> str:
        resp = await self._send(
            "POST",
            f"/repos/{owner}/{repo}/pages",
            json={"source": {"branch": branch, "path": "/"}, "build_type": "workflow"},
        )
        fallback = f"https://{owner}.github.io/{repo}"
        if resp.status_code == 409:
            logger.info("GitHub Pages already enabled for %s/%s", owner, repo)
            return fallback
        data = self._check(resp)
        return str(data.get("html_url") or fallback).rstrip("/")

    async def get_file(
        self, owner: str, repo: str, path: str, ref: str | None = None
    ) -> str | None:
        resp = await self._send(
            "GET",
            f"/repos/{owner}/{repo}/contents/{path}",
            params={"ref": ref} if ref else None,
        )
        if resp.status_code == 404:
            return None
        data = self._check(resp)
        if not isinstance(data, dict) or data.get("type") != "file":
            msg = f"{path} is not a file"
            raise GitHostError(resp.status_code, msg)
        if data.get("encoding") != "base64":
            # GitHub omits the content of files over 1 MB
            msg = f"{path} is too large to read through the contents API"
            raise GitHostError(resp.status_code, msg)
        try:
            return base64.b64decode(str(data.get("content", ""))).decode("utf-8")
        except UnicodeDecodeError as exc:
            msg = f"{path} is not UTF-8 text"
            raise GitHostError(resp.status_code, msg) from exc

    async def list_repos(self, org: str | None = None) -> list[RepositoryInfo]:
        path = f"/orgs/{org}/repos" if org else "/user/repos"
        data = self._check(
            await self._send("GET", path, params={"per_page": 100, "sort": "updated"})
        )
        return [
            RepositoryInfo(
                owner=str(r["owner"]["login"]),
                name=str(r["name"]),
                html_url=str(r["html_url"]),
                default_branch=str(r.get("default_branch") or "main"),
                private=bool(r.get("private", False)),
                description=r.get("description"),
            )
            for r in data
        ]

    async def get_authenticated_user(self) -> HostUser:
        data = self._check(await self._send("GET", "/user"))
        return HostUser(
            login=str(data["login"]),
            name=data.get("name"),
            avatar_url=data.get("avatar_url"),
        )

    async def list_orgs(self) -> list[HostOrg]:
        data = self._check(await self._send("GET", "/user/orgs", params={"per_page": 100}))
        return [HostOrg(login=str(o["login"]), avatar_url=o.get("avatar_url")) for o in data]


def create_git_host(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> GitHubClient:
    """Build the configured Git host client.

    Raises ConfigurationError when no GitHub token is configured.
    """
    if not settings.github_token:
        msg = "GitHub is not connected: set GITHUB_TOKEN"
        raise ConfigurationError(msg)
    return GitHubClient(
        settings.github_token,
        api_url=settings.github_api_url,
        timeout=settings.github_timeout_seconds,
        transport=transport,
    )
