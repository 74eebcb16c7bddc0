"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Registry Studio application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False
    expose_docs: bool = False
    api_token: str = ""

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/registry-studio.db"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # CORS
    cors_origins: list[str] = Field(default_factory=list)
    trusted_hosts: list[str] = Field(default_factory=list)

    # GitHub
    github_api_url: str = "https://api.github.com"
    github_token: str = ""
    github_timeout_seconds: float = Field(default=15.0, gt=0)
    github_blob_concurrency: int = Field(default=8, ge=1, le=64)
    github_branch: str = "main"
    github_auto_init: bool = True
    commit_message: str = "Update from Registry Studio"
    initial_commit_message: str = "Initial registry scaffold from Registry Studio"

    # Response hardening
    security_headers_enabled: bool = True

    def validate_runtime_security(self) -> None:
        """Validate security-critical production settings."""
        if self.debug:
            return

        violations: list[str] = []
        if len(self.api_token) < 32:
            violations.append("API_TOKEN must be set to a high-entropy value (>=32 chars)")
        if not self.trusted_hosts:
            violations.append("TRUSTED_HOSTS must be configured in production")
        if not self.github_api_url.startswith("https://"):
            violations.append("GITHUB_API_URL must use https in production")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Insecure production configuration: {joined}")
