"""Registry, item and file API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import get_session, require_operator
from backend.models.registry import Registry
from backend.schemas.registry import (
    BindingResponse,
    FileInput,
    FileResponse,
    ItemCreate,
    ItemResponse,
    RegistryCreate,
    RegistryListResponse,
    RegistryResponse,
)
from backend.services.datetime_service import format_iso
from backend.services.records import (
    ItemRecord,
    binding_from_row,
    item_from_row,
    registry_from_row,
)
from backend.services.registry_service import (
    create_item,
    create_registry,
    delete_item,
    delete_registry,
    get_registry,
    list_registries,
    upsert_file,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/registries", tags=["registries"], dependencies=[Depends(require_operator)]
)


def _item_response(item: ItemRecord) -> ItemResponse:
    return ItemResponse(
        id=item.id,
        name=item.name,
        type=item.type,
        title=item.title,
        description=item.description,
        sort_order=item.sort_order,
        files=[
            FileResponse(id=f.id, path=f.path, type=f.type, target=f.target, content=f.content)
            for f in item.files
        ],
    )


def _registry_response(row: Registry) -> RegistryResponse:
    registry = registry_from_row(row)
    items = sorted((item_from_row(i) for i in row.items), key=lambda i: (i.sort_order, i.id))
    binding = None
    if row.binding is not None:
        record = binding_from_row(row.binding)
        binding = BindingResponse(
            repo_owner=record.repo_owner,
            repo_name=record.repo_name,
            repo_url=record.repo_url,
            hosting_url=record.hosting_url,
            branch=record.branch,
            last_commit_sha=record.last_commit_sha,
            last_synced_at=format_iso(record.last_synced_at) if record.last_synced_at else None,
        )
    return RegistryResponse(
        id=registry.id,
        owner_id=registry.owner_id,
        name=registry.name,
        slug=registry.slug,
        display_name=registry.display_name,
        homepage=registry.homepage,
        description=registry.description,
        is_public=registry.is_public,
        created_at=format_iso(registry.created_at) if registry.created_at else None,
        updated_at=format_iso(registry.updated_at) if registry.updated_at else None,
        items=[_item_response(i) for i in items],
        binding=binding,
    )


@router.post("", response_model=RegistryResponse, status_code=status.HTTP_201_CREATED)
async def create_registry_endpoint(
    body: RegistryCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RegistryResponse:
    """Create an empty registry."""
    record = await create_registry(session, body)
    return _registry_response(await get_registry(session, record.id))


@router.get("", response_model=RegistryListResponse)
async def list_registries_endpoint(
    session: Annotated[AsyncSession, Depends(get_session)],
    owner_id: Annotated[str | None, Query(max_length=200)] = None,
) -> RegistryListResponse:
    rows = await list_registries(session, owner_id)
    return RegistryListResponse(registries=[_registry_response(r) for r in rows])


@router.get("/{registry_id}", response_model=RegistryResponse)
async def get_registry_endpoint(
    registry_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RegistryResponse:
    return _registry_response(await get_registry(session, registry_id))


@router.delete("/{registry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_registry_endpoint(
    registry_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Response:
    """Delete a registry with its items and GitHub binding (the repository is kept)."""
    await delete_registry(session, registry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{registry_id}/items", response_model=ItemResponse, status_code=status.HTTP_201_CREATED
)
async def create_item_endpoint(
    registry_id: int,
    body: ItemCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ItemResponse:
    return _item_response(await create_item(session, registry_id, body))


@router.delete("/{registry_id}/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item_endpoint(
    registry_id: int,
    item_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Response:
    await delete_item(session, registry_id, item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{registry_id}/items/{item_id}/files", response_model=ItemResponse)
async def upsert_file_endpoint(
    registry_id: int,
    item_id: int,
    body: FileInput,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ItemResponse:
    """Create or replace one file of an item."""
    return _item_response(await upsert_file(session, registry_id, item_id, body))
