"""Shared API dependencies: settings, DB session, Git host, operator auth."""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import Settings
from backend.database import SchemaGuard
from backend.githost.base import GitHost

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session once the schema is ready."""
    schema_guard: SchemaGuard = request.app.state.schema_guard
    await schema_guard.ensure_ready()
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


async def get_git_host(request: Request) -> AsyncGenerator[GitHost]:
    """Yield a Git host client for this request and close it afterwards.

    Raises ConfigurationError (400) when no GitHub token is configured.
    """
    host: GitHost = request.app.state.git_host_factory(request.app.state.settings)
    try:
        yield host
    finally:
        await host.aclose()


def get_registry_lock(request: Request, registry_id: int) -> asyncio.Lock:
    """Per-registry lock serializing exports and pushes within this process."""
    locks: dict[int, asyncio.Lock] = request.app.state.registry_locks
    return locks.setdefault(registry_id, asyncio.Lock())


async def require_operator(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> None:
    """Require the operator API token. Raises 401 if missing or wrong.

    With no token configured (debug setups) every request is accepted.
    """
    settings: Settings = request.app.state.settings
    if not settings.api_token:
        return
    if credentials is None or not secrets.compare_digest(
        credentials.credentials.encode(), settings.api_token.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
