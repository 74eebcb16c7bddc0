"""Diff engine: content-addressed comparison of a desired file set against a snapshot."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import StrEnum


class ChangeType(StrEnum):
    """Kind of change a path undergoes between the snapshot and the desired set."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass
class Changeset:
    """Disjoint added/modified/deleted partition of the changed paths.

    ``added`` and ``modified`` map path to the new content, ``deleted`` lists
    paths to remove. All three are sorted by path.
    """

    added: dict[str, str] = field(default_factory=dict)
    modified: dict[str, str] = field(default_factory=dict)
    deleted: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted)

    @property
    def files_changed(self) -> int:
        return len(self.added) + len(self.modified) + len(self.deleted)

    @property
    def upserts(self) -> dict[str, str]:
        """Paths whose content must be uploaded (added and modified)."""
        merged = {**self.added, **self.modified}
        return {path: merged[path] for path in sorted(merged)}

    def change_type(self, path: str) -> ChangeType | None:
        if path in self.added:
            return ChangeType.ADDED
        if path in self.modified:
            return ChangeType.MODIFIED
        if path in self.deleted:
            return ChangeType.DELETED
        return None


def fingerprint(content: str) -> str:
    """Compute the SHA-256 hex digest of UTF-8 encoded content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def snapshot_of(desired: dict[str, str]) -> dict[str, str]:
    """Build the snapshot (path -> fingerprint) describing a desired file set."""
    return {path: fingerprint(desired[path]) for path in sorted(desired)}


def compute_changeset(desired: dict[str, str], snapshot: dict[str, str] | None) -> Changeset:
    """Compare the desired file set against the last published snapshot.

    Purely content based: a path whose fingerprint matches the snapshot is
    unchanged no matter how it got there. A missing snapshot is treated as
    empty, so every desired path is added.
    """
    previous = snapshot or {}
    changeset = Changeset()
    for path in sorted(desired):
        content = desired[path]
        recorded = previous.get(path)
        if recorded is None:
            changeset.added[path] = content
        elif recorded != fingerprint(content):
            changeset.modified[path] = content
    changeset.deleted = sorted(path for path in previous if path not in desired)
    return changeset


def full_changeset(desired: dict[str, str]) -> Changeset:
    """Changeset that lists every desired path as added."""
    return compute_changeset(desired, None)
