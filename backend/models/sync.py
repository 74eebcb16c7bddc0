"""Repository binding and sync snapshot model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base

if TYPE_CHECKING:
    from backend.models.registry import Registry


class RepositoryBinding(Base):
    """Link between a registry and the GitHub repository it publishes to.

    ``sync_snapshot`` is a JSON object mapping repository paths to the
    SHA-256 of the content last published, and ``last_commit_sha`` is the
    commit that snapshot corresponds to. Both are replaced together after a
    successful push and never edited piecemeal.
    """

    __tablename__ = "repository_bindings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    registry_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("registries.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    repo_owner: Mapped[str] = mapped_column(String, nullable=False)
    repo_name: Mapped[str] = mapped_column(String, nullable=False)
    repo_url: Mapped[str] = mapped_column(Text, nullable=False)
    hosting_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    branch: Mapped[str] = mapped_column(String, nullable=False, default="main")
    last_commit_sha: Mapped[str | None] = mapped_column(String(64), nullable=True)
    sync_snapshot: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    last_synced_at: Mapped[str | None] = mapped_column(Text, nullable=True)

    registry: Mapped[Registry] = relationship(back_populates="binding")
