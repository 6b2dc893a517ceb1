"""
Configuration management for the fsync client.

Uses pydantic-settings to load configuration from environment variables
(prefixed with ``FSYNC_``) and .env files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when the configuration is missing or invalid."""


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Sync Configuration
    sync_dir: Optional[Path] = None
    ignore_patterns: str = ".git,*.swp,*.tmp,__pycache__"

    # Worker Configuration
    queue_buffer_size: int = Field(default=100, ge=1)
    queue_workers: int = Field(default=2, ge=1)
    history_limit: Optional[int] = Field(default=None, ge=1)

    # Logging Configuration
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    log_rotation: str = "10 MB"
    log_retention: int = 5
    log_compression: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="FSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def get_ignore_patterns(self) -> list[str]:
        """Parse ignore patterns into list."""
        return [p.strip() for p in self.ignore_patterns.split(',') if p.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def validate_sync_dir(sync_dir: Optional[Path]) -> Path:
    """
    Check that the directory to watch is usable.

    Args:
        sync_dir: Configured sync directory

    Returns:
        The expanded directory path

    Raises:
        ConfigurationError: If the directory is unset, missing or not a directory
    """
    if sync_dir is None or str(sync_dir).strip() == "":
        raise ConfigurationError("A sync directory must be configured (FSYNC_SYNC_DIR or --sync-dir)")

    path = Path(sync_dir).expanduser()

    if not path.exists():
        raise ConfigurationError(f"Sync directory does not exist: {path}")

    if not path.is_dir():
        raise ConfigurationError(f"Sync directory is not a directory: {path}")

    return path
