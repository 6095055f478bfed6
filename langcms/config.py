"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """LangCMS application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    secret_key: str = "change-me-in-production"
    debug: bool = False
    expose_docs: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/langcms.db"
    db_query_timeout_seconds: float = Field(default=5.0, gt=0)

    # Cache (empty redis_url selects the in-process memory backend)
    redis_url: str = ""
    cache_namespace: str = "langcms"
    cache_content_ttl: int = Field(default=300, ge=1)
    cache_list_ttl: int = Field(default=60, ge=1)
    cache_warm_from_filesystem: bool = True

    # Filesystem source
    source_dir: Path = Path("./public")
    inline_asset_max_bytes: int = Field(default=1024 * 1024, ge=0)

    # Sync
    pump_lock_ttl_seconds: int = Field(default=600, ge=1)

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # CORS
    cors_origins: list[str] = Field(default_factory=list)
    trusted_hosts: list[str] = Field(default_factory=list)

    # Auth
    admin_username: str = "admin"
    admin_password: str = "admin"
    access_token_expire_minutes: int = Field(default=60, ge=1)
    auth_max_failures: int = Field(default=5, ge=1)
    auth_rate_limit_window_seconds: int = Field(default=300, ge=1)

    def validate_runtime_security(self) -> None:
        """Validate security-critical production settings."""
        if self.debug:
            return

        violations: list[str] = []
        if self.secret_key == "change-me-in-production" or len(self.secret_key) < 32:
            violations.append(
                "SECRET_KEY must be overridden with a high-entropy value (>=32 chars)"
            )
        if self.admin_password == "admin" or len(self.admin_password) < 12:
            violations.append("ADMIN_PASSWORD must be overridden with a strong value (>=12 chars)")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Insecure production configuration: {joined}")
