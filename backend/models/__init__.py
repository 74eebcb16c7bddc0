"""SQLAlchemy ORM models for Registry Studio."""

from backend.models.base import Base
from backend.models.registry import Registry, RegistryFile, RegistryItem
from backend.models.sync import RepositoryBinding

__all__ = [
    "Base",
    "Registry",
    "RegistryFile",
    "RegistryItem",
    "RepositoryBinding",
]
