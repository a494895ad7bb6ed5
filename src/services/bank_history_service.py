"""Bank value history tracking service.

Records bank value snapshots for player accounts and serves the resulting
history to the presentation layer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from data.repositories import Repository, bank_history
from models.app import BankValueSeries, BankValueSnapshot
from utils import InvalidSnapshotError, StoreError, TrackerConfig, TrackerError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RecordResult(StrEnum):
    """Outcome of a successful record_snapshot call."""

    RECORDED = "recorded"
    DEDUPLICATED = "deduplicated"
    SKIPPED_NO_ACCOUNT = "skipped_no_account"


class BankHistoryService:
    """Track the bank value of player accounts over time.

    The service enforces the capture policy: a new snapshot is only stored
    when the previous one of the same account is older than the configured
    dedup interval. Captures for one account are serialized; captures for
    different accounts do not wait for each other.
    """

    def __init__(
        self,
        repository: Repository,
        config: TrackerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo = repository
        self._config = config or TrackerConfig()
        self._clock = clock or _utcnow
        self._account_locks: dict[str, asyncio.Lock] = {}

    @property
    def config(self) -> TrackerConfig:
        return self._config

    def _lock_for(self, account: str) -> asyncio.Lock:
        lock = self._account_locks.get(account)
        if lock is None:
            lock = asyncio.Lock()
            self._account_locks[account] = lock
        return lock

    async def record_snapshot(
        self,
        account: str,
        total_value: int,
        breakdown: dict[Any, Any] | None = None,
    ) -> RecordResult:
        """Capture the current bank value of an account.

        The value is checked before the account, so a negative value is
        reported even when no account is active.

        Args:
            account: Account identifier; empty means no account is active
            total_value: Total bank value, must not be negative
            breakdown: Optional item identifier to quantity/value mapping

        Returns:
            RecordResult describing whether a snapshot was stored

        Raises:
            TrackerError: If the value is invalid or the store fails
        """
        if total_value < 0:
            message = f"Bank value must be >= 0, got {total_value}"
            raise TrackerError(
                f"Rejected bank value snapshot for {account!r}: {message}",
                cause=InvalidSnapshotError(message),
            )

        if not account:
            logger.debug("No active account; bank value snapshot not recorded")
            return RecordResult.SKIPPED_NO_ACCOUNT

        try:
            snapshot = BankValueSnapshot(
                account=account,
                snapshot_time=self._clock(),
                total_value=total_value,
                breakdown=breakdown if self._config.store_breakdown else None,
            )
        except ValidationError as e:
            raise TrackerError(
                f"Rejected bank value snapshot for {account!r}: {e}",
                cause=InvalidSnapshotError(str(e)),
            ) from e

        async with self._lock_for(account):
            try:
                latest = await bank_history.get_latest_snapshot(self._repo, account)
                if latest is not None and (
                    snapshot.snapshot_time - latest.snapshot_time
                    < self._config.dedup_interval
                ):
                    logger.debug(
                        "Skipping snapshot for %s: last one taken at %s",
                        account,
                        latest.snapshot_time.isoformat(),
                    )
                    return RecordResult.DEDUPLICATED

                await bank_history.append_snapshot(self._repo, snapshot)
            except StoreError as e:
                raise TrackerError(
                    f"Failed to record bank value for {account!r}: {e}", cause=e
                ) from e

        return RecordResult.RECORDED

    async def get_available_users(self) -> set[str]:
        """Get every account that has recorded history.

        Raises:
            TrackerError: If the store cannot be read
        """
        try:
            return await bank_history.list_accounts(self._repo)
        except StoreError as e:
            raise TrackerError(f"Failed to list accounts: {e}", cause=e) from e

    async def has_account_data(self) -> bool:
        """Whether any account has recorded history."""
        return bool(await self.get_available_users())

    async def get_series_for(self, account: str | None) -> BankValueSeries:
        """Get the history of an account, oldest first.

        Unknown, empty or missing accounts yield an empty series.
        """
        if not account:
            return BankValueSeries(account="")
        snapshots = await bank_history.get_series(self._repo, account)
        return BankValueSeries(account=account, snapshots=snapshots)

    async def remove_account(self, account: str) -> None:
        """Delete the entire history of an account (idempotent).

        Raises:
            TrackerError: If the store fails to delete
        """
        async with self._lock_for(account):
            try:
                await bank_history.remove_account(self._repo, account)
            except StoreError as e:
                raise TrackerError(
                    f"Failed to remove account {account!r}: {e}", cause=e
                ) from e

    async def export_history(self) -> dict[str, Any]:
        """Export all histories as a JSON-serializable document."""
        try:
            return await bank_history.export_history(self._repo)
        except StoreError as e:
            raise TrackerError(f"Failed to export history: {e}", cause=e) from e

    async def import_history(self, payload: dict[str, Any]) -> int:
        """Import a document produced by export_history.

        Returns:
            Number of imported snapshots
        """
        try:
            return await bank_history.import_history(self._repo, payload)
        except StoreError as e:
            raise TrackerError(f"Failed to import history: {e}", cause=e) from e
