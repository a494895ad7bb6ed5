"""Utility functions and classes for Bank Value History."""

from .config import (
    AppConfig,
    Config,
    TrackerConfig,
    get_config,
    reload_config,
    reset_config,
)
from .exceptions import (
    BankHistoryError,
    ConfigurationError,
    InvalidSnapshotError,
    StoreError,
    StoreIOError,
    TrackerError,
)
from .logging_setup import setup_logging

__all__ = [
    "AppConfig",
    "BankHistoryError",
    "Config",
    "ConfigurationError",
    "InvalidSnapshotError",
    "StoreError",
    "StoreIOError",
    "TrackerConfig",
    "TrackerError",
    "get_config",
    "reload_config",
    "reset_config",
    "setup_logging",
]
