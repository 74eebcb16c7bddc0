"""Tests for the GitHub REST client, using httpx.MockTransport."""

from __future__ import annotations

import base64
import json
import time
from collections.abc import Callable

import httpx
import pytest

from backend.config import Settings
from backend.exceptions import ConfigurationError
from backend.githost.base import (
    GitHost,
    GitHostAuthError,
    GitHostError,
    GitHostRateLimitedError,
    GitHostUnavailableError,
    RefUpdateRejectedError,
    RepositoryNameCollisionError,
    TreeEntry,
)
from backend.githost.github import GitHubClient, create_git_host

Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler) -> GitHubClient:
    return GitHubClient("ghp_test", transport=httpx.MockTransport(handler))


class _Recorder:
    def __init__(self, responses: dict[tuple[str, str], httpx.Response]) -> None:
        self.responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses[(request.method, request.url.path)]

    def body(self, index: int = -1) -> dict[str, object]:
        return json.loads(self.requests[index].content)


class TestProtocol:
    async def test_client_satisfies_protocol(self) -> None:
        async with _client(lambda r: httpx.Response(200)) as client:
            assert isinstance(client, GitHost)

    async def test_sends_auth_headers(self) -> None:
        recorder = _Recorder({("GET", "/user"): httpx.Response(200, json={"login": "octo"})})
        async with _client(recorder) as client:
            user = await client.get_authenticated_user()
        assert user.login == "octo"
        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer ghp_test"
        assert request.headers["Accept"] == "application/vnd.github+json"


class TestGitData:
    async def test_create_blob_sends_utf8_content(self) -> None:
        recorder = _Recorder(
            {("POST", "/repos/o/r/git/blobs"): httpx.Response(201, json={"sha": "b1"})}
        )
        async with _client(recorder) as client:
            assert await client.create_blob("o", "r", "héllo") == "b1"
        assert recorder.body() == {"content": "héllo", "encoding": "utf-8"}

    async def test_create_tree_with_base_and_removals(self) -> None:
        recorder = _Recorder(
            {("POST", "/repos/o/r/git/trees"): httpx.Response(201, json={"sha": "t2"})}
        )
        entries = [TreeEntry(path="a.txt", sha="b1"), TreeEntry(path="gone.txt", sha=None)]
        async with _client(recorder) as client:
            assert await client.create_tree("o", "r", entries, base_tree="t1") == "t2"
        assert recorder.body() == {
            "tree": [
                {"path": "a.txt", "mode": "100644", "type": "blob", "sha": "b1"},
                {"path": "gone.txt", "mode": "100644", "type": "blob", "sha": None},
            ],
            "base_tree": "t1",
        }

    async def test_get_commit_and_tree(self) -> None:
        recorder = _Recorder(
            {
                ("GET", "/repos/o/r/git/commits/c1"): httpx.Response(
                    200, json={"sha": "c1", "tree": {"sha": "t1"}, "parents": [{"sha": "c0"}]}
                ),
                ("GET", "/repos/o/r/git/trees/t1"): httpx.Response(
                    200,
                    json={
                        "truncated": False,
                        "tree": [
                            {"path": "src", "type": "tree", "sha": "t9", "mode": "040000"},
                            {"path": "src/a.ts", "type": "blob", "sha": "b1", "mode": "100644"},
                        ],
                    },
                ),
            }
        )
        async with _client(recorder) as client:
            commit = await client.get_commit("o", "r", "c1")
            entries = await client.get_tree("o", "r", commit.tree_sha)
        assert commit.parents == ("c0",)
        assert entries == [TreeEntry(path="src/a.ts", sha="b1")]
        assert recorder.requests[1].url.params["recursive"] == "1"

    async def test_truncated_tree_is_an_error(self) -> None:
        recorder = _Recorder(
            {("GET", "/repos/o/r/git/trees/t1"): httpx.Response(200, json={"truncated": True})}
        )
        async with _client(recorder) as client:
            with pytest.raises(GitHostError, match="too large"):
                await client.get_tree("o", "r", "t1")


class TestRefs:
    async def test_get_ref(self) -> None:
        recorder = _Recorder(
            {
                ("GET", "/repos/o/r/git/ref/heads/main"): httpx.Response(
                    200, json={"object": {"sha": "c1"}}
                )
            }
        )
        async with _client(recorder) as client:
            assert await client.get_ref("o", "r", "main") == "c1"

    @pytest.mark.parametrize("status", [404, 409])
    async def test_missing_branch_is_none(self, status: int) -> None:
        recorder = _Recorder(
            {
                ("GET", "/repos/o/r/git/ref/heads/main"): httpx.Response(
                    status, json={"message": "Git Repository is empty."}
                )
            }
        )
        async with _client(recorder) as client:
            assert await client.get_ref("o", "r", "main") is None

    async def test_update_ref_is_fast_forward_only_by_default(self) -> None:
        recorder = _Recorder(
            {("PATCH", "/repos/o/r/git/refs/heads/main"): httpx.Response(200, json={})}
        )
        async with _client(recorder) as client:
            await client.update_ref("o", "r", "main", "c2")
        assert recorder.body() == {"sha": "c2", "force": False}

    async def test_rejected_update_raises_ref_rejection(self) -> None:
        recorder = _Recorder(
            {
                ("PATCH", "/repos/o/r/git/refs/heads/main"): httpx.Response(
                    422, json={"message": "Update is not a fast forward"}
                )
            }
        )
        async with _client(recorder) as client:
            with pytest.raises(RefUpdateRejectedError, match="fast forward"):
                await client.update_ref("o", "r", "main", "c2")

    async def test_create_ref(self) -> None:
        recorder = _Recorder({("POST", "/repos/o/r/git/refs"): httpx.Response(201, json={})})
        async with _client(recorder) as client:
            await client.create_ref("o", "r", "main", "c1")
        assert recorder.body() == {"ref": "refs/heads/main", "sha": "c1"}


class TestRepositories:
    async def test_create_user_repository(self) -> None:
        recorder = _Recorder(
            {
                ("POST", "/user/repos"): httpx.Response(
                    201,
                    json={
                        "name": "ui",
                        "owner": {"login": "octo"},
                        "html_url": "https://github.com/octo/ui",
                        "default_branch": "main",
                        "private": False,
                    },
                )
            }
        )
        async with _client(recorder) as client:
            repo = await client.create_repository("ui", None, False)
        assert repo.owner == "octo"
        body = recorder.body()
        assert body["auto_init"] is True
        assert body["description"] == "ui - shadcn/ui component registry"
        assert body["has_wiki"] is False

    async def test_org_repository_path(self) -> None:
        recorder = _Recorder(
            {
                ("POST", "/orgs/acme/repos"): httpx.Response(
                    201,
                    json={"name": "ui", "owner": {"login": "acme"}, "html_url": "https://x"},
                )
            }
        )
        async with _client(recorder) as client:
            repo = await client.create_repository("ui", "desc", True, org="acme")
        assert repo.owner == "acme"

    async def test_name_collision(self) -> None:
        recorder = _Recorder(
            {
                ("POST", "/user/repos"): httpx.Response(
                    422,
                    json={
                        "message": "Repository creation failed.",
                        "errors": [{"message": "name already exists on this account"}],
                    },
                )
            }
        )
        async with _client(recorder) as client:
            with pytest.raises(RepositoryNameCollisionError, match='"ui" already exists'):
                await client.create_repository("ui", None, False)

    async def test_pages_already_enabled_is_success(self) -> None:
        recorder = _Recorder(
            {("POST", "/repos/octo/ui/pages"): httpx.Response(409, json={"message": "exists"})}
        )
        async with _client(recorder) as client:
            url = await client.enable_static_hosting("octo", "ui", "main")
        assert url == "https://octo.github.io/ui"
        assert recorder.body() == {
            "source": {"branch": "main", "path": "/"},
            "build_type": "workflow",
        }

    async def test_pages_url_from_response(self) -> None:
        recorder = _Recorder(
            {
                ("POST", "/repos/octo/ui/pages"): httpx.Response(
                    201, json={"html_url": "https://ui.acme.dev/"}
                )
            }
        )
        async with _client(recorder) as client:
            assert await client.enable_static_hosting("octo", "ui", "main") == "https://ui.acme.dev"


class TestErrors:
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_errors(self, status: int) -> None:
        async with _client(
            lambda r: httpx.Response(status, json={"message": "Bad credentials"})
        ) as client:
            with pytest.raises(GitHostAuthError, match="Bad credentials"):
                await client.list_orgs()

    async def test_server_error_keeps_status(self) -> None:
        async with _client(lambda r: httpx.Response(500, text="boom")) as client:
            with pytest.raises(GitHostError) as excinfo:
                await client.create_blob("o", "r", "x")
        assert excinfo.value.status_code == 500
        assert not excinfo.value.retryable

    async def test_transport_failure_is_retryable(self) -> None:
        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        async with _client(fail) as client:
            with pytest.raises(GitHostUnavailableError) as excinfo:
                await client.get_ref("o", "r", "main")
        assert excinfo.value.retryable

    async def test_exhausted_quota_is_rate_limit_not_auth(self) -> None:
        reset = int(time.time()) + 120
        async with _client(
            lambda r: httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": str(reset)},
                json={"message": "API rate limit exceeded for user ID 1."},
            )
        ) as client:
            with pytest.raises(GitHostRateLimitedError) as excinfo:
                await client.create_blob("o", "r", "x")
        assert excinfo.value.retryable
        assert excinfo.value.status_code == 403
        assert excinfo.value.retry_after is not None
        assert 0 < excinfo.value.retry_after <= 120

    async def test_secondary_rate_limit_message(self) -> None:
        async with _client(
            lambda r: httpx.Response(
                403,
                headers={"retry-after": "60"},
                json={"message": "You have exceeded a secondary rate limit."},
            )
        ) as client:
            with pytest.raises(GitHostRateLimitedError) as excinfo:
                await client.get_ref("o", "r", "main")
        assert excinfo.value.retry_after == 60

    async def test_too_many_requests(self) -> None:
        async with _client(
            lambda r: httpx.Response(429, json={"message": "Too Many Requests"})
        ) as client:
            with pytest.raises(GitHostRateLimitedError) as excinfo:
                await client.create_tree("o", "r", [TreeEntry("a", "b1")])
        assert excinfo.value.status_code == 429
        assert excinfo.value.retry_after is None

    async def test_forbidden_with_quota_left_is_auth(self) -> None:
        async with _client(
            lambda r: httpx.Response(
                403,
                headers={"x-ratelimit-remaining": "4999"},
                json={"message": "Resource not accessible by integration"},
            )
        ) as client:
            with pytest.raises(GitHostAuthError):
                await client.create_blob("o", "r", "x")


class TestFactory:
    def test_requires_token(self) -> None:
        with pytest.raises(ConfigurationError, match="GITHUB_TOKEN"):
            create_git_host(Settings(_env_file=None))

    async def test_builds_client(self) -> None:
        host = create_git_host(Settings(_env_file=None, github_token="ghp_x"))
        try:
            assert host.supports_base_tree
        finally:
            await host.aclose()


class TestReading:
    async def test_get_file_decodes_base64(self) -> None:
        content = base64.b64encode("export const x = 'é'\n".encode()).decode()
        recorder = _Recorder(
            {
                ("GET", "/repos/o/r/contents/registry.json"): httpx.Response(
                    200,
                    json={
                        "type": "file",
                        "encoding": "base64",
                        "content": content[:8] + "\n" + content[8:],
                    },
                )
            }
        )
        async with _client(recorder) as client:
            text = await client.get_file("o", "r", "registry.json", ref="c1")
        assert text == "export const x = 'é'\n"
        assert recorder.requests[0].url.params["ref"] == "c1"

    async def test_missing_file_is_none(self) -> None:
        async with _client(lambda r: httpx.Response(404, json={"message": "Not Found"})) as client:
            assert await client.get_file("o", "r", "registry.json") is None

    async def test_directory_is_an_error(self) -> None:
        async with _client(lambda r: httpx.Response(200, json=[{"name": "a"}])) as client:
            with pytest.raises(GitHostError, match="not a file"):
                await client.get_file("o", "r", "registry")

    async def test_list_repos(self) -> None:
        recorder = _Recorder(
            {
                ("GET", "/orgs/acme/repos"): httpx.Response(
                    200,
                    json=[
                        {
                            "name": "ui",
                            "owner": {"login": "acme"},
                            "html_url": "https://github.com/acme/ui",
                            "private": True,
                            "description": "Acme components",
                        }
                    ],
                )
            }
        )
        async with _client(recorder) as client:
            [repo] = await client.list_repos("acme")
        assert repo.full_name == "acme/ui"
        assert repo.private
        assert repo.default_branch == "main"
        assert recorder.requests[0].url.params["sort"] == "updated"
