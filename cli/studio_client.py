"""Operator CLI for publishing Registry Studio registries to GitHub."""

from __future__ import annotations

import argparse
import os
import sys
from typing import Any
from urllib.parse import urlparse

import httpx

DEFAULT_SERVER = "http://localhost:8000"
_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


class StudioError(Exception):
    """Raised when the server answers with an error status."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"{detail} ({status_code})")
        self.status_code = status_code
        self.detail = detail


def _detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    detail = data.get("detail") if isinstance(data, dict) else None
    if isinstance(detail, list):
        return "; ".join(f"{e.get('field')}: {e.get('message')}" for e in detail)
    return str(detail or resp.reason_phrase)


class StudioClient:
    """Client for the Registry Studio HTTP API."""

    def __init__(
        self,
        server_url: str,
        token: str | None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = httpx.Client(
            base_url=server_url.rstrip("/"),
            headers=headers,
            timeout=120.0,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> StudioClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _json(self, resp: httpx.Response) -> dict[str, Any]:
        if resp.status_code >= 400:
            raise StudioError(resp.status_code, _detail(resp))
        result: dict[str, Any] = resp.json()
        return result

    def status(self, registry_id: int) -> dict[str, Any]:
        """Compare the repository's branch head with the last published commit."""
        return self._json(self.client.get(f"/api/registries/{registry_id}/sync-status"))

    def push(
        self, registry_id: int, force: bool = False, allow_empty: bool = False
    ) -> dict[str, Any]:
        """Publish the registry. A conflict is returned as data, not raised."""
        resp = self.client.post(
            f"/api/registries/{registry_id}/push",
            json={"force": force, "allow_empty": allow_empty},
        )
        if resp.status_code == 409:
            result: dict[str, Any] = resp.json()
            if result.get("conflict"):
                return result
        return self._json(resp)

    def export(
        self, registry_id: int, repo_name: str, private: bool = False, org: str | None = None
    ) -> dict[str, Any]:
        """Create the GitHub repository for a registry and publish it."""
        payload: dict[str, Any] = {"repo_name": repo_name, "is_private": private}
        if org:
            payload["org"] = org
        return self._json(self.client.post(f"/api/registries/{registry_id}/export", json=payload))

    def import_repo(self, repo_url: str, owner_id: str) -> dict[str, Any]:
        """Create a registry from an existing GitHub repository."""
        return self._json(
            self.client.post(
                "/api/registries/import", json={"repo_url": repo_url, "owner_id": owner_id}
            )
        )


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. https://example.com)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost servers. "
            "Use --allow-insecure-http only on trusted networks."
        )

    return normalized


def _short(sha: str | None) -> str:
    return sha[:7] if sha else "-"


def _print_status(result: dict[str, Any]) -> None:
    print("Sync Status:")
    print(f"  Last published: {_short(result.get('local_commit'))}")
    print(f"  Remote head:    {_short(result.get('remote_commit'))}")
    print(f"  Last synced:    {result.get('last_synced_at') or 'never'}")
    if result.get("has_remote_changes"):
        print("  The repository has changes that were not published from here.")
        print("  Pushing will report a conflict; use 'push --force' to overwrite them.")
    else:
        print("  Up to date with the repository.")


def _print_push(result: dict[str, Any]) -> bool:
    """Print a push result. Returns False for a conflict."""
    if result.get("conflict"):
        print("Conflict: the repository changed since the last push.")
        print(f"  Last published: {_short(result.get('local_commit'))}")
        print(f"  Remote head:    {_short(result.get('remote_commit'))}")
        print("Re-run with --force to overwrite the remote changes.")
        return False
    if not result.get("pushed"):
        print(result.get("message") or "Nothing to push")
        return True
    print(f"Pushed {_short(result.get('commit_sha'))} ({result.get('files_changed', 0)} files)")
    return True


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="registry-studio-cli",
        description="Publish Registry Studio registries to GitHub",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("REGISTRY_STUDIO_SERVER", DEFAULT_SERVER),
        help=f"Server URL (default: $REGISTRY_STUDIO_SERVER or {DEFAULT_SERVER})",
    )
    parser.add_argument(
        "--token",
        default=os.environ.get("REGISTRY_STUDIO_TOKEN"),
        help="Operator API token (default: $REGISTRY_STUDIO_TOKEN)",
    )
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )

    subparsers = parser.add_subparsers(dest="command")
    status_parser = subparsers.add_parser("status", help="Compare with the repository")
    status_parser.add_argument("registry_id", type=int)

    push_parser = subparsers.add_parser("push", help="Publish local changes")
    push_parser.add_argument("registry_id", type=int)
    push_parser.add_argument(
        "--force", action="store_true", help="Overwrite changes made in the repository"
    )
    push_parser.add_argument(
        "--allow-empty", action="store_true", help="Allow publishing an empty registry"
    )

    export_parser = subparsers.add_parser("export", help="Create the GitHub repository")
    export_parser.add_argument("registry_id", type=int)
    export_parser.add_argument("--repo", required=True, help="Repository name")
    export_parser.add_argument("--private", action="store_true", help="Create a private repo")
    export_parser.add_argument("--org", help="Create the repository in this organization")

    import_parser = subparsers.add_parser("import", help="Import a registry from GitHub")
    import_parser.add_argument("repo_url", help="https://github.com/<owner>/<repo>")
    import_parser.add_argument("--owner", required=True, help="Owner id of the new registry")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        server_url = validate_server_url(args.server, args.allow_insecure_http)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    ok = True
    with StudioClient(server_url, args.token) as client:
        try:
            if args.command == "status":
                _print_status(client.status(args.registry_id))
            elif args.command == "push":
                ok = _print_push(
                    client.push(args.registry_id, force=args.force, allow_empty=args.allow_empty)
                )
            elif args.command == "export":
                result = client.export(
                    args.registry_id, args.repo, private=args.private, org=args.org
                )
                print(f"Created {result['repo_url']}")
                print(f"Registry URL: {result['pages_url']}")
                if result.get("commit_sha"):
                    print(f"Published {_short(result['commit_sha'])}")
                elif result.get("message"):
                    print(result["message"])
            elif args.command == "import":
                result = client.import_repo(args.repo_url, args.owner)
                print(
                    f"Imported registry {result['registry_id']} "
                    f"({result['item_count']} items, {result['file_count']} files) "
                    f"at {_short(result['commit_sha'])}"
                )
        except StudioError as exc:
            print(f"Error: {exc.detail} ({exc.status_code})")
            sys.exit(1)
        except httpx.HTTPError as exc:
            print(f"Error: could not reach {server_url}: {exc}")
            sys.exit(1)

    if not ok:
        sys.exit(2)


if __name__ == "__main__":
    main()
