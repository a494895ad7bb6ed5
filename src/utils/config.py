"""Centralized configuration management for Bank Value History.

This module provides application-level configuration from environment variables.

Features:
- Environment variable support via .env files
- Fallback priority: .env → hardcoded defaults
- Type-safe configuration using Pydantic
- Singleton pattern for global access

Usage:
    from utils import get_config

    config = get_config()
    interval = config.tracker.dedup_interval
"""

from __future__ import annotations

import threading
import tomllib
from datetime import timedelta
from logging import getLogger
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = getLogger(__name__)


def _read_pyproject() -> dict:
    """Read pyproject.toml and extract project metadata."""
    pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
    try:
        with open(pyproject_path, "rb") as f:
            project = tomllib.load(f).get("project", {})
            return {
                "name": project.get("name", "bank-value-history"),
                "version": project.get("version", "?.?.?"),
            }
    except Exception as e:
        # Fallback to defaults if pyproject.toml can't be read
        logger.debug(f"Could not read pyproject.toml: {e}")
        return {"name": "bank-value-history", "version": "?.?.?"}


# Read project metadata once at module load
_PROJECT_METADATA = _read_pyproject()


class AppConfig(BaseSettings):
    """Application-wide configuration."""

    name: str = Field(
        default_factory=lambda: _PROJECT_METADATA["name"],
        description="Application name (from pyproject.toml)",
    )
    version: str = Field(
        default_factory=lambda: _PROJECT_METADATA["version"],
        description="Application version (from pyproject.toml)",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )

    data_dir: Path = Field(
        default_factory=lambda: Path(__file__).parent.parent.parent / "data",
        description="Directory for the history database and log files",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def user_data_dir(self) -> Path:
        """Get user data directory for writable files.

        Returns:
            Path to directory for the database and logs (created on access).
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return self.data_dir


class TrackerConfig(BaseSettings):
    """Bank value tracking configuration."""

    enabled: bool = Field(
        default=True,
        description="Capture a snapshot whenever the bank interface is opened",
    )
    dedup_interval_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Minimum seconds between two stored snapshots of one account",
    )
    store_breakdown: bool = Field(
        default=True,
        description="Persist the per-item breakdown alongside the total value",
    )
    db_file: str = Field(
        default="bank_history.db",
        description="History database file (relative to user_data_dir)",
    )

    model_config = SettingsConfigDict(
        env_prefix="BANK_HISTORY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def dedup_interval(self) -> timedelta:
        """Minimum interval between stored snapshots as a timedelta."""
        return timedelta(seconds=self.dedup_interval_seconds)

    def db_path(self, user_data_dir: Path) -> Path:
        """Resolve the database path against the user data directory."""
        path = Path(self.db_file)
        if path.is_absolute():
            return path
        return user_data_dir / path


class Config:
    """Main configuration container."""

    def __init__(
        self, app: AppConfig | None = None, tracker: TrackerConfig | None = None
    ) -> None:
        """Initialize configuration from environment and defaults."""
        self.app = app or AppConfig()
        self.tracker = tracker or TrackerConfig()

    @property
    def db_path(self) -> Path:
        """Resolved path of the history database."""
        return self.tracker.db_path(self.app.user_data_dir)

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(\n  app={self.app},\n  tracker={self.tracker}\n)"


# Global configuration instance (singleton)
_config_instance: Config | None = None
_config_lock = threading.Lock()


def get_config(config: Config | None = None) -> Config:
    """Get the global configuration instance (lazy initialization).

    Args:
        config: Optional config instance to use instead of singleton.
                If provided, replaces the singleton.

    Returns:
        Global Config instance
    """
    global _config_instance  # noqa: PLW0603

    if config is not None:
        with _config_lock:
            _config_instance = config
        return _config_instance

    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = Config()

    assert _config_instance is not None
    return _config_instance


def reload_config() -> Config:
    """Reload configuration from environment.

    Returns:
        Reloaded Config instance
    """
    global _config_instance  # noqa: PLW0603
    with _config_lock:
        _config_instance = Config()
    return _config_instance


def reset_config() -> None:
    """Reset the global config instance.

    Primarily for testing.
    """
    global _config_instance  # noqa: PLW0603
    with _config_lock:
        _config_instance = None
