"""Custom exception hierarchy for Bank Value History.

Provides structured exception classes for different error scenarios.
"""

from __future__ import annotations


class BankHistoryError(Exception):
    """Base exception for all Bank Value History errors."""

    pass


class ConfigurationError(BankHistoryError):
    """Exception raised for configuration-related errors."""

    pass


class StoreError(BankHistoryError):
    """Base exception for history store errors."""

    pass


class StoreIOError(StoreError):
    """Exception raised when the store cannot durably write or read its data.

    Covers corruption, permission problems and device failures of the
    backing SQLite file.
    """

    pass


class InvalidSnapshotError(StoreError, ValueError):
    """Exception raised when a snapshot violates the store's constraints."""

    pass


class TrackerError(BankHistoryError):
    """Exception raised by the tracker service.

    Wraps the underlying store error so callers in the presentation layer
    only need to handle one type.
    """

    def __init__(self, message: str, cause: StoreError | None = None) -> None:
        super().__init__(message)
        self.cause = cause
