"""Plain records for registries and bindings, and the row -> record mappers.

The sync engine and the scaffold generator work on these frozen records and
never touch ORM rows directly. Each entity has exactly one mapper.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from backend.services.datetime_service import parse_timestamp

if TYPE_CHECKING:
    from datetime import datetime

    from backend.models.registry import Registry, RegistryFile, RegistryItem
    from backend.models.sync import RepositoryBinding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryRecord:
    """A registry as seen by the publishing engine."""

    id: int
    owner_id: str
    name: str
    slug: str
    display_name: str | None = None
    homepage: str | None = None
    description: str | None = None
    is_public: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class FileRecord:
    """A source file of a registry item."""

    id: int
    item_id: int
    path: str
    type: str
    content: str
    target: str | None = None


@dataclass(frozen=True)
class ItemRecord:
    """A registry item together with its files."""

    id: int
    registry_id: int
    name: str
    type: str
    title: str | None = None
    description: str | None = None
    docs: str | None = None
    dependencies: list[str] = field(default_factory=list)
    registry_dependencies: list[str] = field(default_factory=list)
    dev_dependencies: list[str] = field(default_factory=list)
    css_vars: dict[str, Any] = field(default_factory=dict)
    css: dict[str, Any] | None = None
    env_vars: dict[str, str] = field(default_factory=dict)
    categories: list[str] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    sort_order: int = 0
    files: list[FileRecord] = field(default_factory=list)


@dataclass(frozen=True)
class BindingRecord:
    """A repository binding plus the snapshot of the last successful push."""

    id: int
    registry_id: int
    repo_owner: str
    repo_name: str
    repo_url: str
    branch: str
    hosting_url: str | None = None
    last_commit_sha: str | None = None
    snapshot: dict[str, str] = field(default_factory=dict)
    created_at: datetime | None = None
    last_synced_at: datetime | None = None


def registry_from_row(row: Registry) -> RegistryRecord:
    return RegistryRecord(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        slug=row.slug,
        display_name=row.display_name,
        homepage=row.homepage,
        description=row.description,
        is_public=bool(row.is_public),
        created_at=parse_timestamp(row.created_at),
        updated_at=parse_timestamp(row.updated_at),
    )


def file_from_row(row: RegistryFile) -> FileRecord:
    return FileRecord(
        id=row.id,
        item_id=row.item_id,
        path=row.path,
        type=row.type,
        content=row.content,
        target=row.target,
    )


def item_from_row(row: RegistryItem) -> ItemRecord:
    """Map an item row, its JSON columns defaulting to empty containers."""
    return ItemRecord(
        id=row.id,
        registry_id=row.registry_id,
        name=row.name,
        type=row.type,
        title=row.title,
        description=row.description,
        docs=row.docs,
        dependencies=list(row.dependencies or []),
        registry_dependencies=list(row.registry_dependencies or []),
        dev_dependencies=list(row.dev_dependencies or []),
        css_vars=dict(row.css_vars or {}),
        css=dict(row.css) if row.css else None,
        env_vars=dict(row.env_vars or {}),
        categories=list(row.categories or []),
        meta=dict(row.meta or {}),
        sort_order=row.sort_order or 0,
        files=[file_from_row(f) for f in sorted(row.files, key=lambda f: f.id)],
    )


def _load_snapshot(raw: str | None, binding_id: int) -> dict[str, str]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.error("Binding %d has a corrupt sync snapshot; treating it as empty", binding_id)
        return {}
    if not isinstance(data, dict):
        logger.error("Binding %d sync snapshot is not an object; treating it as empty", binding_id)
        return {}
    return {str(path): str(digest) for path, digest in data.items()}


def dump_snapshot(snapshot: dict[str, str]) -> str:
    """Serialize a snapshot for storage (stable key order)."""
    return json.dumps(snapshot, sort_keys=True, separators=(",", ":"))


def binding_from_row(row: RepositoryBinding) -> BindingRecord:
    return BindingRecord(
        id=row.id,
        registry_id=row.registry_id,
        repo_owner=row.repo_owner,
        repo_name=row.repo_name,
        repo_url=row.repo_url,
        branch=row.branch,
        hosting_url=row.hosting_url,
        last_commit_sha=row.last_commit_sha,
        snapshot=_load_snapshot(row.sync_snapshot, row.id),
        created_at=parse_timestamp(row.created_at),
        last_synced_at=parse_timestamp(row.last_synced_at),
    )
