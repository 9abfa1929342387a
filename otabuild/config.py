"""Configuration settings for otabuild.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RUNTIME_VERSION = "exposdk:52.0.0"


def _default_storage_dir() -> Path:
    """Return the default blob storage directory."""
    return Path.home() / ".local" / "share" / "otabuild" / "storage"


def _default_log_dir() -> Path:
    """Return the default directory for executor logs."""
    return Path.home() / ".local" / "share" / "otabuild" / "logs"


def _default_db_url() -> str:
    """Return the default database URL (SQLite)."""
    db_path = Path.home() / ".local" / "share" / "otabuild" / "db.sqlite"
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the OTABUILD_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="OTABUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    storage_dir: Path = Field(
        default_factory=_default_storage_dir,
        description="Root directory of the blob store",
    )
    db_url: str = Field(
        default_factory=_default_db_url,
        description="Database connection URL",
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Bind address for serve")
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port")
    public_url: str | None = Field(
        default=None,
        description="Externally reachable base URL used for executor callbacks",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    api_keys: list[str] = Field(
        default_factory=list,
        description="Accepted API keys for upload and build queries (empty = open)",
    )

    # Executor
    executor: Literal["process", "docker", "http"] = Field(
        default="process",
        description="Build executor variant",
    )
    executor_command: list[str] = Field(
        default_factory=lambda: ["otabuild-builder"],
        description="Command spawned by the process executor",
    )
    executor_image: str = Field(
        default="otabuild-builder",
        description="Container image used by the docker executor",
    )
    executor_url: str | None = Field(
        default=None,
        description="Remote builder endpoint used by the http executor",
    )
    executor_log_dir: Path = Field(
        default_factory=_default_log_dir,
        description="Directory for process/docker executor logs",
    )

    # Builds
    default_runtime_version: str = Field(
        default=DEFAULT_RUNTIME_VERSION,
        description="Runtime version used when a submission omits one",
    )
    max_archive_bytes: int = Field(
        default=100 * 1024 * 1024,
        ge=1,
        description="Maximum accepted source archive size",
    )
    verify_asset_hashes: bool = Field(
        default=False,
        description="Re-hash stored assets before accepting a successful build",
    )

    # Timeouts (in seconds)
    build_timeout: float = Field(
        default=900,
        gt=0,
        description="Time a build may stay in flight before it is failed",
    )
    dispatch_timeout: float = Field(
        default=30,
        gt=0,
        description="Timeout for handing a job to a remote executor",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    API keys are masked.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_copy(
        update={"api_keys": [f"{key[:8]}..." for key in settings.api_keys]}
    ).model_dump_json(indent=2)


__all__ = ["DEFAULT_RUNTIME_VERSION", "Settings", "get_settings", "print_settings_json"]
