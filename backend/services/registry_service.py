"""Registry service: storage of registries, items and files."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from backend.exceptions import NotFoundError
from backend.models.registry import Registry, RegistryFile, RegistryItem
from backend.schemas.registry import MAX_FILE_SIZE, MAX_FILES_PER_ITEM, MAX_ITEMS_PER_REGISTRY
from backend.services.datetime_service import format_iso, now_utc
from backend.services.records import (
    ItemRecord,
    RegistryRecord,
    item_from_row,
    registry_from_row,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from backend.schemas.registry import FileInput, ItemCreate, RegistryCreate

logger = logging.getLogger(__name__)


def _check_file_size(file: FileInput) -> None:
    if len(file.content.encode("utf-8")) > MAX_FILE_SIZE:
        msg = f"File {file.path!r} exceeds the {MAX_FILE_SIZE // 1024} KB limit"
        raise ValueError(msg)


async def _registry_row(session: AsyncSession, registry_id: int) -> Registry:
    stmt = (
        select(Registry)
        .where(Registry.id == registry_id)
        .execution_options(populate_existing=True)
    )
    row = (await session.execute(stmt)).scalar_one_or_none()
    if row is None:
        msg = f"Registry {registry_id} not found"
        raise NotFoundError(msg)
    return row


async def create_registry(session: AsyncSession, data: RegistryCreate) -> RegistryRecord:
    """Create a registry. Raises ValueError if the owner already uses the slug."""
    existing = await session.execute(
        select(Registry.id).where(Registry.owner_id == data.owner_id, Registry.slug == data.slug)
    )
    if existing.first() is not None:
        msg = f"A registry with slug {data.slug!r} already exists"
        raise ValueError(msg)
    now = format_iso(now_utc())
    row = Registry(
        owner_id=data.owner_id,
        name=data.name,
        slug=data.slug,
        display_name=data.display_name,
        homepage=data.homepage,
        description=data.description,
        is_public=data.is_public,
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    logger.info("Created registry %d (%s)", row.id, row.slug)
    return registry_from_row(row)


async def get_registry(session: AsyncSession, registry_id: int) -> Registry:
    """Return the registry row with its items, files and binding loaded."""
    return await _registry_row(session, registry_id)


async def list_registries(session: AsyncSession, owner_id: str | None = None) -> list[Registry]:
    stmt = select(Registry).order_by(Registry.id).execution_options(populate_existing=True)
    if owner_id is not None:
        stmt = stmt.where(Registry.owner_id == owner_id)
    return list((await session.execute(stmt)).scalars().all())


async def delete_registry(session: AsyncSession, registry_id: int) -> None:
    """Delete a registry together with its items, files and binding."""
    row = await _registry_row(session, registry_id)
    await session.delete(row)
    await session.commit()
    logger.info("Deleted registry %d", registry_id)


async def create_item(session: AsyncSession, registry_id: int, data: ItemCreate) -> ItemRecord:
    """Add an item with its files to a registry.

    Raises ValueError on a duplicate name, too many items or an oversized file.
    """
    registry = await _registry_row(session, registry_id)
    count = await session.scalar(
        select(func.count()).select_from(RegistryItem).where(
            RegistryItem.registry_id == registry_id
        )
    )
    if (count or 0) >= MAX_ITEMS_PER_REGISTRY:
        msg = f"A registry can hold at most {MAX_ITEMS_PER_REGISTRY} items"
        raise ValueError(msg)
    paths = [f.path for f in data.files]
    if len(set(paths)) != len(paths):
        msg = "Item files must have distinct paths"
        raise ValueError(msg)
    for file in data.files:
        _check_file_size(file)

    now = format_iso(now_utc())
    item = RegistryItem(
        registry_id=registry_id,
        name=data.name,
        type=data.type,
        title=data.title,
        description=data.description,
        docs=data.docs,
        dependencies=data.dependencies,
        registry_dependencies=data.registry_dependencies,
        dev_dependencies=data.dev_dependencies,
        css_vars=data.css_vars,
        css=data.css,
        env_vars=data.env_vars,
        categories=data.categories,
        meta=data.meta,
        sort_order=data.sort_order,
        created_at=now,
        updated_at=now,
        files=[
            RegistryFile(
                path=f.path,
                type=f.type,
                target=f.target,
                content=f.content,
                created_at=now,
                updated_at=now,
            )
            for f in data.files
        ],
    )
    session.add(item)
    registry.updated_at = now
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        msg = f"An item named {data.name!r} already exists in this registry"
        raise ValueError(msg) from exc
    await session.refresh(item, attribute_names=["files"])
    return item_from_row(item)


async def _item_row(session: AsyncSession, registry_id: int, item_id: int) -> RegistryItem:
    stmt = (
        select(RegistryItem)
        .where(RegistryItem.id == item_id)
        .execution_options(populate_existing=True)
    )
    item = (await session.execute(stmt)).scalar_one_or_none()
    if item is None or item.registry_id != registry_id:
        msg = f"Item {item_id} not found"
        raise NotFoundError(msg)
    return item


async def delete_item(session: AsyncSession, registry_id: int, item_id: int) -> None:
    item = await _item_row(session, registry_id, item_id)
    await session.delete(item)
    await session.commit()


async def upsert_file(
    session: AsyncSession, registry_id: int, item_id: int, data: FileInput
) -> ItemRecord:
    """Create or replace the item's file at ``data.path``."""
    item = await _item_row(session, registry_id, item_id)
    _check_file_size(data)
    now = format_iso(now_utc())
    existing = next((f for f in item.files if f.path == data.path), None)
    if existing is None:
        if len(item.files) >= MAX_FILES_PER_ITEM:
            msg = f"An item can hold at most {MAX_FILES_PER_ITEM} files"
            raise ValueError(msg)
        item.files.append(
            RegistryFile(
                path=data.path,
                type=data.type,
                target=data.target,
                content=data.content,
                created_at=now,
                updated_at=now,
            )
        )
    else:
        existing.type = data.type
        existing.target = data.target
        existing.content = data.content
        existing.updated_at = now
    item.updated_at = now
    await session.commit()
    await session.refresh(item, attribute_names=["files"])
    return item_from_row(item)


async def load_registry_tree(
    session: AsyncSession, registry_id: int
) -> tuple[RegistryRecord, list[ItemRecord]]:
    """Load a registry and its items (by sort order, then id) as records."""
    registry = await _registry_row(session, registry_id)
    stmt = (
        select(RegistryItem)
        .where(RegistryItem.registry_id == registry_id)
        .order_by(RegistryItem.sort_order, RegistryItem.id)
        .execution_options(populate_existing=True)
    )
    items = (await session.execute(stmt)).scalars().all()
    return registry_from_row(registry), [item_from_row(item) for item in items]
