"""Composition root for Bank Value History.

Owns the single repository and tracker service of the running application
and translates host signals into explicit tracker calls.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import Any

from data.repositories import Repository
from services import BankHistoryService, RecordResult
from utils import Config, TrackerError, get_config, setup_logging

logger = logging.getLogger(__name__)


class PanelKind(StrEnum):
    """Which panel the host should display."""

    DEFAULT = "default"
    HISTORY = "history"


class BankHistoryApp:
    """Wire the history store and tracker service together.

    Usage:
        app = BankHistoryApp()
        await app.startup()
        await app.on_bank_opened("alice", 1_250_000)
        panel = await app.select_panel("alice")
        await app.shutdown()
    """

    def __init__(
        self, config: Config | None = None, repository: Repository | None = None
    ) -> None:
        self.config = config or get_config()
        self.repository = repository or Repository(self.config.db_path)
        self.tracker = BankHistoryService(self.repository, self.config.tracker)
        self.dataset_enabled = True

    async def startup(self) -> None:
        await self.repository.initialize()
        logger.info("Bank value history started (db=%s)", self.repository.db_path)

    async def shutdown(self) -> None:
        await self.repository.close()
        logger.info("Bank value history stopped")

    async def on_bank_opened(
        self,
        account: str,
        total_value: int,
        breakdown: dict[Any, Any] | None = None,
    ) -> bool:
        """Capture a snapshot when the bank interface has been opened.

        A failed capture is logged and otherwise ignored so the host keeps
        running.

        Returns:
            True if a new snapshot was stored
        """
        if not self.config.tracker.enabled:
            return False

        self.dataset_enabled = True
        try:
            result = await self.tracker.record_snapshot(account, total_value, breakdown)
        except TrackerError:
            logger.exception("Could not record bank value for %s", account)
            return False
        return result is RecordResult.RECORDED

    def on_connection_lost(self) -> None:
        """Disable the dataset action until the bank is opened again."""
        self.dataset_enabled = False

    async def select_panel(self, username: str | None) -> PanelKind:
        """Pick the history panel when there is an account or any stored data."""
        if username:
            return PanelKind.HISTORY
        try:
            has_data = await self.tracker.has_account_data()
        except TrackerError:
            logger.exception("Could not determine whether history exists")
            has_data = False
        if has_data:
            logger.debug("Setting the active panel to the bank history panel")
            return PanelKind.HISTORY
        logger.debug("Setting the active panel to the default panel")
        return PanelKind.DEFAULT

    async def summary(self) -> list[dict[str, Any]]:
        """Latest value and change since the first snapshot, per account."""
        rows = []
        for account in sorted(await self.tracker.get_available_users()):
            series = await self.tracker.get_series_for(account)
            latest = series.latest
            if latest is None:
                continue
            rows.append(
                {
                    "account": account,
                    "snapshots": len(series),
                    "latest_time": latest.snapshot_time,
                    "latest_value": latest.total_value,
                    "change": series.value_change,
                }
            )
        return rows


async def _run() -> int:
    app = BankHistoryApp()
    await app.startup()
    try:
        for row in await app.summary():
            print(
                f"{row['account']}: {row['latest_value']:,} "
                f"({row['change']:+,} over {row['snapshots']} snapshots, "
                f"last {row['latest_time']:%Y-%m-%d %H:%M})"
            )
    finally:
        await app.shutdown()
    return 0


def main() -> int:
    """Print the tracked accounts and their latest bank value."""
    setup_logging(save_to_file=False)
    return asyncio.run(_run())
