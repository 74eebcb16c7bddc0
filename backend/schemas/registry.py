"""Registry, item and file schemas."""

from __future__ import annotations

import re
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")
ITEM_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*$")

ITEM_TYPES = (
    "registry:lib",
    "registry:block",
    "registry:component",
    "registry:ui",
    "registry:hook",
    "registry:page",
    "registry:file",
    "registry:theme",
    "registry:style",
    "registry:item",
    "registry:example",
)
FILE_TYPES = (
    "registry:lib",
    "registry:block",
    "registry:component",
    "registry:ui",
    "registry:hook",
    "registry:page",
    "registry:file",
)

MAX_FILE_SIZE = 512 * 1024
MAX_FILES_PER_ITEM = 20
MAX_ITEMS_PER_REGISTRY = 500

RegistrySlug = Annotated[
    str, Field(min_length=2, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")
]
ItemName = Annotated[str, Field(min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")]


class FileInput(BaseModel):
    """A file submitted for a registry item."""

    path: str = Field(min_length=1, max_length=500)
    type: str = Field(default="registry:component")
    content: str
    target: str | None = Field(default=None, max_length=500)

    @field_validator("path")
    @classmethod
    def path_must_be_relative(cls, v: str) -> str:
        """Reject absolute paths and parent traversal."""
        _ = cls
        parts = v.replace("\\", "/").split("/")
        if v.startswith("/") or ".." in parts:
            raise ValueError("File path must be relative and must not contain '..'")
        return v

    @field_validator("type")
    @classmethod
    def type_must_be_known(cls, v: str) -> str:
        _ = cls
        if v not in FILE_TYPES:
            raise ValueError(f"Unknown file type: {v}")
        return v


class ItemCreate(BaseModel):
    """Request to add an item (with its files) to a registry."""

    name: ItemName
    type: str = Field(default="registry:component")
    title: str | None = None
    description: str | None = None
    docs: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    registry_dependencies: list[str] = Field(default_factory=list)
    dev_dependencies: list[str] = Field(default_factory=list)
    css_vars: dict[str, Any] = Field(default_factory=dict)
    css: dict[str, Any] | None = None
    env_vars: dict[str, str] = Field(default_factory=dict)
    categories: list[str] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)
    sort_order: int = 0
    files: list[FileInput] = Field(default_factory=list, max_length=MAX_FILES_PER_ITEM)

    @field_validator("type")
    @classmethod
    def type_must_be_known(cls, v: str) -> str:
        _ = cls
        if v not in ITEM_TYPES:
            raise ValueError(f"Unknown item type: {v}")
        return v


class RegistryCreate(BaseModel):
    """Request to create a registry."""

    owner_id: str = Field(min_length=1, max_length=200)
    name: str = Field(min_length=1, max_length=200)
    slug: RegistrySlug
    display_name: str | None = Field(default=None, max_length=200)
    homepage: str | None = Field(default=None, max_length=500)
    description: str | None = None
    is_public: bool = False


class FileResponse(BaseModel):
    id: int
    path: str
    type: str
    target: str | None = None
    content: str


class ItemResponse(BaseModel):
    """Registry item with its files."""

    id: int
    name: str
    type: str
    title: str | None = None
    description: str | None = None
    sort_order: int = 0
    files: list[FileResponse] = Field(default_factory=list)


class BindingResponse(BaseModel):
    """GitHub repository a registry publishes to."""

    repo_owner: str
    repo_name: str
    repo_url: str
    hosting_url: str | None = None
    branch: str
    last_commit_sha: str | None = None
    last_synced_at: str | None = None


class RegistryResponse(BaseModel):
    """Registry detail response."""

    id: int
    owner_id: str
    name: str
    slug: str
    display_name: str | None = None
    homepage: str | None = None
    description: str | None = None
    is_public: bool = False
    created_at: str | None = None
    updated_at: str | None = None
    items: list[ItemResponse] = Field(default_factory=list)
    binding: BindingResponse | None = None


class RegistryListResponse(BaseModel):
    registries: list[RegistryResponse]
