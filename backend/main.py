"""FastAPI application entry point."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import yaml
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.middleware.trustedhost import TrustedHostMiddleware

from backend.api.github import router as github_router
from backend.api.health import router as health_router
from backend.api.registries import router as registries_router
from backend.config import Settings
from backend.database import SchemaGuard, create_engine
from backend.exceptions import ConfigurationError, InternalServerError, NotFoundError
from backend.githost.base import (
    GitHostAuthError,
    GitHostError,
    GitHostRateLimitedError,
    GitHostUnavailableError,
    RepositoryNameCollisionError,
)
from backend.githost.github import create_git_host
from backend.version import __version__

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

    from starlette.responses import Response

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    settings.validate_runtime_security()
    _configure_logging(settings.debug)
    logger.info("Starting Registry Studio (debug=%s)", settings.debug)

    try:
        engine, session_factory = create_engine(settings)
        app.state.engine = engine
        app.state.session_factory = session_factory
    except Exception as exc:
        logger.critical(
            "Failed to initialize database: %s. Check database path and permissions.", exc
        )
        raise

    schema_guard = SchemaGuard(engine)
    app.state.schema_guard = schema_guard
    try:
        await schema_guard.ensure_ready()
    except Exception as exc:
        logger.critical("Failed to create database schema: %s.", exc)
        raise

    if not settings.github_token:
        logger.warning("GITHUB_TOKEN is not set; export and push are unavailable")

    yield

    try:
        await engine.dispose()
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("Registry Studio stopped")


def _error_response(
    request: Request, exc: Exception, status_code: int, detail: str, *, level: int = logging.ERROR
) -> JSONResponse:
    logger.log(
        level,
        "%s in %s %s: %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
    )
    return JSONResponse(status_code=status_code, content={"detail": detail})


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    docs_enabled = settings.debug or settings.expose_docs

    app = FastAPI(
        title="Registry Studio",
        description="Publishes component registries to GitHub repositories",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings
    app.state.git_host_factory = create_git_host
    app.state.registry_locks = {}

    app.add_middleware(GZipMiddleware, minimum_size=500)

    cors_origins = (
        settings.cors_origins
        if settings.cors_origins
        else (["http://localhost:5173", "http://localhost:8000"] if settings.debug else [])
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    trusted_hosts = settings.trusted_hosts or (
        ["localhost", "127.0.0.1", "::1", "test", "testserver"] if settings.debug else []
    )
    if trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=trusted_hosts)

    @app.middleware("http")
    async def security_headers(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        response = await call_next(request)
        if settings.security_headers_enabled:
            response.headers.setdefault("X-Content-Type-Options", "nosniff")
            response.headers.setdefault("X-Frame-Options", "DENY")
            response.headers.setdefault("Referrer-Policy", "no-referrer")
        return response

    app.include_router(health_router)
    app.include_router(registries_router)
    app.include_router(github_router)

    # Global exception handlers

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        return _error_response(request, exc, 400, str(exc), level=logging.WARNING)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error_response(request, exc, 404, str(exc) or "Not found", level=logging.INFO)

    @app.exception_handler(RepositoryNameCollisionError)
    async def name_collision_handler(
        request: Request, exc: RepositoryNameCollisionError
    ) -> JSONResponse:
        return _error_response(request, exc, 409, exc.message, level=logging.WARNING)

    @app.exception_handler(GitHostAuthError)
    async def git_host_auth_handler(request: Request, exc: GitHostAuthError) -> JSONResponse:
        detail = f"GitHub denied the request ({exc.status_code}): {exc.message}"
        return _error_response(request, exc, 403, detail, level=logging.WARNING)

    @app.exception_handler(GitHostRateLimitedError)
    async def git_host_rate_limited_handler(
        request: Request, exc: GitHostRateLimitedError
    ) -> JSONResponse:
        detail = f"GitHub rate limit exceeded: {exc.message}. Nothing was published; retry later."
        response = _error_response(request, exc, 429, detail, level=logging.WARNING)
        if exc.retry_after is not None:
            response.headers["Retry-After"] = str(exc.retry_after)
        return response

    @app.exception_handler(GitHostUnavailableError)
    async def git_host_unavailable_handler(
        request: Request, exc: GitHostUnavailableError
    ) -> JSONResponse:
        detail = f"{exc.message}. Nothing was published; retry the sync."
        return _error_response(request, exc, 503, detail)

    @app.exception_handler(GitHostError)
    async def git_host_error_handler(request: Request, exc: GitHostError) -> JSONResponse:
        detail = f"GitHub error ({exc.status_code}): {exc.message}"
        return _error_response(request, exc, 502, detail)

    @app.exception_handler(yaml.YAMLError)
    async def yaml_error_handler(request: Request, exc: yaml.YAMLError) -> JSONResponse:
        return _error_response(request, exc, 500, "Failed to render workflow")

    @app.exception_handler(json.JSONDecodeError)
    async def json_error_handler(request: Request, exc: json.JSONDecodeError) -> JSONResponse:
        return _error_response(request, exc, 500, "Data integrity error")

    @app.exception_handler(InternalServerError)
    async def internal_server_error_handler(
        request: Request, exc: InternalServerError
    ) -> JSONResponse:
        return _error_response(request, exc, 500, "Internal server error")

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error_response(request, exc, 422, str(exc) or "Invalid value")

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        return _error_response(request, exc, 503, "Database temporarily unavailable")

    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "backend.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
