"""Registry, item and file models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base

if TYPE_CHECKING:
    from backend.models.sync import RepositoryBinding


class Registry(Base):
    """A named collection of publishable component items."""

    __tablename__ = "registries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    slug: Mapped[str] = mapped_column(String, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    homepage: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    items: Mapped[list[RegistryItem]] = relationship(
        back_populates="registry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="RegistryItem.sort_order",
    )
    binding: Mapped[RepositoryBinding | None] = relationship(
        back_populates="registry",
        cascade="all, delete-orphan",
        lazy="selectin",
        uselist=False,
    )

    __table_args__ = (UniqueConstraint("owner_id", "slug"),)


class RegistryItem(Base):
    """One installable item of a registry (component, hook, block, ...)."""

    __tablename__ = "registry_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    registry_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("registries.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    docs: Mapped[str | None] = mapped_column(Text, nullable=True)
    dependencies: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    registry_dependencies: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    dev_dependencies: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    css_vars: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    css: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    env_vars: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    categories: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    registry: Mapped[Registry] = relationship(back_populates="items")
    files: Mapped[list[RegistryFile]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="RegistryFile.id",
    )

    __table_args__ = (
        UniqueConstraint("registry_id", "name"),
        Index("idx_registry_items_sort", "registry_id", "sort_order"),
    )


class RegistryFile(Base):
    """Source file belonging to a registry item."""

    __tablename__ = "registry_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("registry_items.id", ondelete="CASCADE"), nullable=False
    )
    path: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    target: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    item: Mapped[RegistryItem] = relationship(back_populates="files")

    __table_args__ = (UniqueConstraint("item_id", "path"),)
