"""Tests for first-time export and later pushes of a registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fake_githost import FakeGitHost

from backend.exceptions import ConfigurationError
from backend.githost.base import GitHostAuthError, RepositoryNameCollisionError
from backend.schemas.registry import FileInput, ItemCreate, RegistryCreate
from backend.services.export_service import export_registry, push_registry, registry_sync_status
from backend.services.publish_service import PushOutcome
from backend.services.registry_service import (
    create_item,
    create_registry,
    load_registry_tree,
    upsert_file,
)
from backend.services.snapshot_service import get_binding

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from backend.config import Settings
    from backend.services.records import RegistryRecord


class TestExportRegistry:
    async def test_creates_repo_enables_pages_and_publishes_scaffold(
        self,
        db_session: AsyncSession,
        registry: RegistryRecord,
        fake_host: FakeGitHost,
        test_settings: Settings,
    ) -> None:
        result = await export_registry(
            db_session, fake_host, registry.id, "acme-ui", settings=test_settings
        )

        assert result.repo_url == "https://github.com/octo/acme-ui"
        assert result.hosting_url == "https://octo.github.io/acme-ui"
        assert ("octo", "acme-ui") in fake_host.pages
        files = fake_host.files_at(fake_host.head("octo", "acme-ui"))
        assert "registry/button/button.tsx" in files
        assert ".github/workflows/deploy.yml" in files
        assert "README.md" in files and "shadcn" in files["README.md"]
        commit = fake_host.commits[result.commit_sha]
        assert commit.message == test_settings.initial_commit_message

        binding = await get_binding(db_session, registry.id)
        assert binding is not None
        assert binding.last_commit_sha == result.commit_sha
        assert set(binding.snapshot) == set(files)

    async def test_org_owner(
        self,
        db_session: AsyncSession,
        registry: RegistryRecord,
        fake_host: FakeGitHost,
        test_settings: Settings,
    ) -> None:
        result = await export_registry(
            db_session, fake_host, registry.id, "ui", settings=test_settings, org="acme"
        )
        assert result.owner == "acme"

    async def test_registry_homepage_is_sent_to_host(
        self,
        db_session: AsyncSession,
        fake_host: FakeGitHost,
        test_settings: Settings,
    ) -> None:
        registry = await create_registry(
            db_session,
            RegistryCreate(
                owner_id="user-1", name="Docs", slug="docs", homepage="https://ui.acme.dev"
            ),
        )
        await create_item(
            db_session,
            registry.id,
            ItemCreate(name="card", files=[FileInput(path="card.tsx", content="x")]),
        )

        await export_registry(db_session, fake_host, registry.id, "docs", settings=test_settings)

        [(_, args)] = [c for c in fake_host.calls if c[0] == "create_repository"]
        assert args[-1] == "https://ui.acme.dev"

    async def test_name_collision_aborts_before_any_object(
        self,
        db_session: AsyncSession,
        registry: RegistryRecord,
        fake_host: FakeGitHost,
        test_settings: Settings,
    ) -> None:
        await fake_host.create_repository("taken", None, False)
        fake_host.calls.clear()

        with pytest.raises(RepositoryNameCollisionError, match="Choose a different name"):
            await export_registry(
                db_session, fake_host, registry.id, "taken", settings=test_settings
            )

        assert fake_host.write_count() == 0
        assert await get_binding(db_session, registry.id) is None

    async def test_pages_failure_aborts_before_any_object(
        self,
        db_session: AsyncSession,
        registry: RegistryRecord,
        fake_host: FakeGitHost,
        test_settings: Settings,
    ) -> None:
        fake_host.failures["enable_static_hosting"] = GitHostAuthError(403, "Forbidden")

        with pytest.raises(GitHostAuthError):
            await export_registry(db_session, fake_host, registry.id, "ui", settings=test_settings)

        assert fake_host.count("create_blob") == 0
        assert await get_binding(db_session, registry.id) is None

    async def test_colliding_file_names_abort_before_repository_creation(
        self, db_session: AsyncSession, fake_host: FakeGitHost, test_settings: Settings
    ) -> None:
        registry = await create_registry(
            db_session, RegistryCreate(owner_id="user-1", name="Dup", slug="dup")
        )
        await create_item(
            db_session,
            registry.id,
            ItemCreate(
                name="card",
                files=[
                    FileInput(path="a/x.tsx", content="a"),
                    FileInput(path="b/x.tsx", content="b"),
                ],
            ),
        )

        with pytest.raises(ValueError, match="two files published as"):
            await export_registry(db_session, fake_host, registry.id, "dup", settings=test_settings)

        assert fake_host.calls == []
        assert fake_host.repos == {}
        assert await get_binding(db_session, registry.id) is None

    async def test_refuses_registry_without_items(
        self, db_session: AsyncSession, fake_host: FakeGitHost, test_settings: Settings
    ) -> None:
        empty = await create_registry(
            db_session, RegistryCreate(owner_id="user-1", name="empty", slug="empty")
        )
        with pytest.raises(ValueError, match="no items"):
            await export_registry(db_session, fake_host, empty.id, "ui", settings=test_settings)
        assert fake_host.calls == []

    async def test_refuses_second_export(
        self,
        db_session: AsyncSession,
        registry: RegistryRecord,
        fake_host: FakeGitHost,
        test_settings: Settings,
    ) -> None:
        await export_registry(db_session, fake_host, registry.id, "ui", settings=test_settings)
        with pytest.raises(ValueError, match="already exported"):
            await export_registry(db_session, fake_host, registry.id, "ui2", settings=test_settings)


class TestPushRegistry:
    async def test_push_publishes_only_changed_files(
        self,
        db_session: AsyncSession,
        registry: RegistryRecord,
        fake_host: FakeGitHost,
        test_settings: Settings,
    ) -> None:
        await export_registry(db_session, fake_host, registry.id, "ui", settings=test_settings)
        _, items = await load_registry_tree(db_session, registry.id)
        await upsert_file(
            db_session,
            registry.id,
            items[0].id,
            FileInput(path="components/ui/button.tsx", type="registry:ui", content="changed"),
        )
        fake_host.calls.clear()

        result = await push_registry(db_session, fake_host, registry.id, settings=test_settings)

        assert result.outcome is PushOutcome.PUSHED
        assert result.files_changed == 1
        assert fake_host.count("create_blob") == 1
        assert fake_host.files_at(result.commit_sha)["registry/button/button.tsx"] == "changed"
        assert fake_host.commits[result.commit_sha].message == test_settings.commit_message

    async def test_push_without_changes(
        self,
        db_session: AsyncSession,
        registry: RegistryRecord,
        fake_host: FakeGitHost,
        test_settings: Settings,
    ) -> None:
        await export_registry(db_session, fake_host, registry.id, "ui", settings=test_settings)
        result = await push_registry(db_session, fake_host, registry.id, settings=test_settings)
        assert result.outcome is PushOutcome.ALREADY_UP_TO_DATE

    async def test_push_requires_binding(
        self,
        db_session: AsyncSession,
        registry: RegistryRecord,
        fake_host: FakeGitHost,
        test_settings: Settings,
    ) -> None:
        with pytest.raises(ConfigurationError):
            await push_registry(db_session, fake_host, registry.id, settings=test_settings)

    async def test_status_after_remote_edit(
        self,
        db_session: AsyncSession,
        registry: RegistryRecord,
        fake_host: FakeGitHost,
        test_settings: Settings,
    ) -> None:
        await export_registry(db_session, fake_host, registry.id, "ui", settings=test_settings)
        fake_host.commit_directly("octo", "ui", {"other.md": "x"})

        status = await registry_sync_status(db_session, fake_host, registry.id)

        assert status.has_remote_changes
