"""Application settings and configuration."""

from typing import Literal

from pydantic import Field  # type: ignore
from pydantic_settings import BaseSettings, SettingsConfigDict  # type: ignore


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


class Settings(BaseSettings):
    """Process settings loaded from environment variables.

    Watcher settings an admin edits at runtime (sampling rate, retention...) are
    not here; they live in the database and go through the settings store.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENV: Literal["dev", "staging", "prod", "test"] = Field(default="dev")
    PROJECT_NAME: str = Field(default="Admin Performance Watcher")
    SITE_URL: str = Field(default="http://localhost:8000")

    # API
    API_PREFIX: str = Field(default="/v1")

    # Database
    DATABASE_URL: str = Field(default="sqlite:///./perfwatch.db")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_JSON: bool = Field(default=True)

    # Security - JWT issued by the host application
    JWT_SECRET: str | None = Field(default=None)
    JWT_ALG: str = Field(default="HS256")
    ADMIN_ROLES: str = Field(default="administrator")

    # Monitored surface
    PERF_ADMIN_PATH_PREFIX: str = Field(default="/v1/admin")
    PERF_AJAX_PATH: str = Field(default="/v1/admin/ajax")
    PERF_HEARTBEAT_ACTION: str = Field(default="heartbeat")

    # Host capabilities
    PERF_QUERY_LOG_ENABLED: bool = Field(default=False)  # per-query timings, like SAVEQUERIES
    PERF_ACTIVE_PLUGINS: str = Field(default="")
    PERF_ACTIVE_THEME: str = Field(default="")

    @property
    def admin_roles(self) -> list[str]:
        return [role.lower() for role in _split_csv(self.ADMIN_ROLES)]

    @property
    def active_plugins(self) -> list[str]:
        return _split_csv(self.PERF_ACTIVE_PLUGINS)

    def __init__(self, **kwargs):
        """Validate settings on initialization."""
        super().__init__(**kwargs)
        # Fail fast in production if critical vars are missing
        if self.ENV == "prod":
            if not self.JWT_SECRET or self.JWT_SECRET == "change_me_super_secret":
                raise ValueError("JWT_SECRET must be set in production")
            if self.DATABASE_URL.startswith("sqlite"):
                raise ValueError("DATABASE_URL must point to a server database in production")


# Global settings instance
settings = Settings()
