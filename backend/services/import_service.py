"""Import of an existing registry repository from GitHub.

Everything is read from the remote before anything is stored, so an
unreadable repository leaves no half-imported registry behind. The new
binding is seeded with the remote head and a snapshot of the files that were
read, which makes the next push an ordinary incremental push.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from backend.schemas.registry import (
    FILE_TYPES,
    MAX_ITEMS_PER_REGISTRY,
    FileInput,
    ItemCreate,
    RegistryCreate,
)
from backend.services.diff_service import snapshot_of
from backend.services.registry_service import create_item, create_registry, delete_registry
from backend.services.snapshot_service import create_binding, record_sync

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from backend.config import Settings
    from backend.githost.base import GitHost

logger = logging.getLogger(__name__)

INDEX_PATHS = ("registry.json", "public/r/registry.json")
GITHUB_REPO_URL = re.compile(r"^https://github\.com/([^/\s]+)/([^/\s]+?)(?:\.git)?/?$")

# registry.json keys and the item fields they map to
_ITEM_KEYS = {
    "name": "name",
    "type": "type",
    "title": "title",
    "description": "description",
    "docs": "docs",
    "dependencies": "dependencies",
    "registryDependencies": "registry_dependencies",
    "devDependencies": "dev_dependencies",
    "cssVars": "css_vars",
    "css": "css",
    "envVars": "env_vars",
    "categories": "categories",
    "meta": "meta",
}


@dataclass(frozen=True)
class ImportResult:
    registry_id: int
    item_count: int
    file_count: int
    commit_sha: str
    repo_url: str


def parse_repo_url(url: str) -> tuple[str, str]:
    """Split ``https://github.com/<owner>/<repo>`` into owner and repository name."""
    match = GITHUB_REPO_URL.match(url.strip())
    if match is None:
        msg = "Invalid GitHub URL format. Expected: https://github.com/owner/repo"
        raise ValueError(msg)
    return match.group(1), match.group(2)


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.strip().lower()).strip("-")


class _RemoteReader:
    """Reads files of one commit, remembering what was read for the snapshot."""

    def __init__(self, host: GitHost, owner: str, repo: str, commit_sha: str) -> None:
        self.host = host
        self.owner = owner
        self.repo = repo
        self.commit_sha = commit_sha
        self.paths: set[str] = set()
        self.read: dict[str, str] = {}

    async def load_paths(self) -> None:
        commit = await self.host.get_commit(self.owner, self.repo, self.commit_sha)
        entries = await self.host.get_tree(self.owner, self.repo, commit.tree_sha)
        self.paths = {e.path for e in entries}

    async def read_file(self, path: str) -> str:
        if path not in self.read:
            content = await self.host.get_file(self.owner, self.repo, path, ref=self.commit_sha)
            if content is None:
                msg = f"{path} is missing from {self.owner}/{self.repo}"
                raise ValueError(msg)
            self.read[path] = content
        return self.read[path]


def _file_type(entry: dict[str, Any], item_type: str) -> str:
    declared = entry.get("type")
    if declared:
        return str(declared)
    return item_type if item_type in FILE_TYPES else "registry:component"


async def _item_files(
    reader: _RemoteReader, item_name: str, item_type: str, entries: list[Any]
) -> list[FileInput]:
    item_dir = f"registry/{item_name}"
    if not entries:
        # published indexes carry no file entries; take the item directory instead
        return [
            FileInput(
                path=posixpath.basename(path),
                type=_file_type({}, item_type),
                content=await reader.read_file(path),
            )
            for path in sorted(reader.paths)
            if posixpath.dirname(path) == item_dir
        ]
    files = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("path"):
            msg = f"Item {item_name!r} has a file entry without a path"
            raise ValueError(msg)
        path = str(entry["path"])
        content = entry.get("content")
        if not content:
            source = f"{item_dir}/{posixpath.basename(path)}"
            if source not in reader.paths:
                msg = f"File {path} not found in {item_dir}"
                raise ValueError(msg)
            content = await reader.read_file(source)
        files.append(
            FileInput(
                path=path,
                type=_file_type(entry, item_type),
                content=str(content),
                target=entry.get("target") or None,
            )
        )
    return files


def _parse_index(raw: str, index_path: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = f"{index_path} is not valid JSON"
        raise ValueError(msg) from exc
    if not isinstance(data, dict) or not data.get("name"):
        msg = f"{index_path} has no registry name"
        raise ValueError(msg)
    if not isinstance(data.get("items", []), list):
        msg = f"{index_path} items must be a list"
        raise ValueError(msg)
    return data


async def _read_items(reader: _RemoteReader, index: dict[str, Any]) -> list[ItemCreate]:
    raw_items = index.get("items", [])
    if len(raw_items) > MAX_ITEMS_PER_REGISTRY:
        msg = f"A registry can hold at most {MAX_ITEMS_PER_REGISTRY} items"
        raise ValueError(msg)
    items: list[ItemCreate] = []
    seen: set[str] = set()
    for position, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            msg = "registry.json items must be objects"
            raise ValueError(msg)
        fields = {field: raw[key] for key, field in _ITEM_KEYS.items() if raw.get(key)}
        name = str(fields.get("name", ""))
        if name in seen:
            msg = f"registry.json lists item {name!r} twice"
            raise ValueError(msg)
        seen.add(name)
        item_type = str(fields.get("type", "registry:component"))
        files = await _item_files(reader, name, item_type, raw.get("files") or [])
        items.append(ItemCreate(**fields, sort_order=position, files=files))
    return items


async def import_registry(
    session: AsyncSession,
    host: GitHost,
    owner: str,
    repo: str,
    *,
    owner_id: str,
    settings: Settings,
) -> ImportResult:
    """Create a registry from the ``registry.json`` of an existing repository.

    Item files come from inline ``content``, from ``registry/<item>/<basename>``
    for entries without content, or from the whole item directory when the
    index lists no files. The repository is bound to the new registry at its
    current head.
    """
    branch = settings.github_branch
    head = await host.get_ref(owner, repo, branch)
    if head is None:
        msg = f"{owner}/{repo} has no commits on {branch}"
        raise ValueError(msg)
    reader = _RemoteReader(host, owner, repo, head)
    await reader.load_paths()
    index_path = next((p for p in INDEX_PATHS if p in reader.paths), None)
    if index_path is None:
        msg = f"No registry.json found in {owner}/{repo}"
        raise ValueError(msg)
    index = _parse_index(await reader.read_file(index_path), index_path)
    registry_data = RegistryCreate(
        owner_id=owner_id,
        name=str(index["name"]),
        slug=slugify(str(index["name"])),
        display_name=str(index["name"]),
        homepage=index.get("homepage") or None,
    )
    items = await _read_items(reader, index)

    registry = await create_registry(session, registry_data)
    repo_url = f"https://github.com/{owner}/{repo}"
    try:
        for item in items:
            await create_item(session, registry.id, item)
        binding = await create_binding(session, registry.id, owner, repo, repo_url, None, branch)
        await record_sync(session, binding.id, head, snapshot_of(reader.read))
    except Exception:
        logger.warning("Import of %s/%s failed, removing registry %d", owner, repo, registry.id)
        await delete_registry(session, registry.id)
        raise

    file_count = sum(len(item.files) for item in items)
    logger.info(
        "Imported %s/%s at %s as registry %d (%d items, %d files)",
        owner,
        repo,
        head,
        registry.id,
        len(items),
        file_count,
    )
    return ImportResult(
        registry_id=registry.id,
        item_count=len(items),
        file_count=file_count,
        commit_sha=head,
        repo_url=repo_url,
    )
