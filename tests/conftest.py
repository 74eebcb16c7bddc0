"""Shared test fixtures for Registry Studio."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from fake_githost import FakeGitHost
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from backend.config import Settings
from backend.database import SchemaGuard, create_engine
from backend.main import create_app
from backend.schemas.registry import FileInput, ItemCreate, RegistryCreate
from backend.services.registry_service import create_item, create_registry

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from backend.services.records import RegistryRecord

logger = logging.getLogger(__name__)

TEST_API_TOKEN = "test-api-token-with-at-least-32-characters"


@asynccontextmanager
async def create_test_client(
    settings: Settings, host: FakeGitHost | None = None
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan (engine and
    schema) because ASGITransport does not trigger it. ``host`` replaces the
    GitHub client for every request.
    """
    app = create_app(settings)
    settings.validate_runtime_security()

    engine, session_factory = create_engine(settings)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.schema_guard = SchemaGuard(engine)
    await app.state.schema_guard.ensure_ready()

    if host is not None:
        app.state.git_host_factory = lambda _settings: host

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {settings.api_token}"},
    ) as ac:
        yield ac

    await engine.dispose()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with a temporary database."""
    db_path = tmp_path / "test.db"
    return Settings(
        debug=True,
        api_token=TEST_API_TOKEN,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        github_token="ghp_test",
        _env_file=None,
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the schema in place."""
    engine, _ = create_engine(test_settings)
    await SchemaGuard(engine).ensure_ready()
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(
    db_engine: AsyncEngine,
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_host() -> FakeGitHost:
    return FakeGitHost()


async def make_registry(session: AsyncSession, slug: str = "acme-ui") -> RegistryRecord:
    """Create a registry with one button component."""
    registry = await create_registry(
        session,
        RegistryCreate(
            owner_id="user-1",
            name=slug,
            slug=slug,
            display_name="Acme UI",
            description="Acme's components",
        ),
    )
    await create_item(
        session,
        registry.id,
        ItemCreate(
            name="button",
            type="registry:ui",
            title="Button",
            dependencies=["@radix-ui/react-slot"],
            files=[
                FileInput(
                    path="components/ui/button.tsx",
                    type="registry:ui",
                    content="export function Button() { return <button />; }\n",
                )
            ],
        ),
    )
    return registry


@pytest.fixture
async def registry(db_session: AsyncSession) -> RegistryRecord:
    return await make_registry(db_session)


@pytest.fixture
def registry_factory(db_session: AsyncSession):  # type: ignore[no-untyped-def]
    """Create further registries in the test session: ``await registry_factory("slug")``."""

    async def factory(slug: str) -> RegistryRecord:
        return await make_registry(db_session, slug)

    return factory
