"""Repository functions for bank value history.

This module provides functions for appending, querying and removing the
per-account bank value snapshots, plus a JSON export/import used to back up
or migrate histories between databases.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from models.app import BankValueSnapshot
from utils import InvalidSnapshotError, StoreIOError

if TYPE_CHECKING:
    from .repository import Repository

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = 1

_SNAPSHOT_COLUMNS = "snapshot_id, account, snapshot_time, total_value, breakdown"


def _format_time(snapshot: BankValueSnapshot) -> str:
    return snapshot.snapshot_time.isoformat(timespec="microseconds")


def _encode_breakdown(breakdown: dict[str, Any] | None) -> str | None:
    if breakdown is None:
        return None
    return json.dumps(breakdown, sort_keys=True)


def _row_to_snapshot(row: Any) -> BankValueSnapshot:
    data = dict(row)
    raw_breakdown = data.get("breakdown")
    data["breakdown"] = json.loads(raw_breakdown) if raw_breakdown else None
    return BankValueSnapshot(**data)


def _validate_for_write(snapshot: BankValueSnapshot) -> None:
    # Models built with model_construct() skip pydantic validation
    if not snapshot.account:
        raise InvalidSnapshotError("Snapshot account must be non-empty")
    if snapshot.total_value < 0:
        raise InvalidSnapshotError(
            f"Snapshot total_value must be >= 0, got {snapshot.total_value}"
        )


async def append_snapshot(
    repo: Repository, snapshot: BankValueSnapshot
) -> BankValueSnapshot:
    """Append a snapshot to its account's series.

    The insert runs in its own transaction: either the whole row is committed
    before this coroutine returns, or nothing is written.

    Args:
        repo: Repository instance
        snapshot: Snapshot to store (its snapshot_id is ignored)

    Returns:
        The stored snapshot carrying its assigned snapshot_id

    Raises:
        InvalidSnapshotError: If the account is empty or the value negative
        StoreIOError: If the database write fails
    """
    _validate_for_write(snapshot)

    params = (
        snapshot.account,
        _format_time(snapshot),
        snapshot.total_value,
        _encode_breakdown(snapshot.breakdown),
    )

    def _insert(conn: sqlite3.Connection) -> int:
        cursor = conn.execute(
            """
            INSERT INTO bank_value_snapshots (
                account, snapshot_time, total_value, breakdown
            ) VALUES (?, ?, ?, ?)
            """,
            params,
        )
        if cursor.lastrowid is None:
            raise sqlite3.DatabaseError("No row id returned for bank value snapshot")
        return int(cursor.lastrowid)

    try:
        snapshot_id = await repo.run_in_transaction(_insert)
    except (sqlite3.Error, OSError) as e:
        logger.error(
            "Failed to store bank value snapshot for %s: %s", snapshot.account, e
        )
        raise StoreIOError(
            f"Could not store snapshot for account {snapshot.account!r}: {e}"
        ) from e

    logger.info(
        "Saved bank value snapshot %d for %s (value=%d)",
        snapshot_id,
        snapshot.account,
        snapshot.total_value,
    )
    return snapshot.model_copy(update={"snapshot_id": snapshot_id})


async def list_accounts(repo: Repository) -> set[str]:
    """Get every account with at least one stored snapshot.

    Args:
        repo: Repository instance

    Returns:
        Set of account identifiers

    Raises:
        StoreIOError: If the database cannot be read
    """
    try:
        rows = await repo.fetchall(
            "SELECT DISTINCT account FROM bank_value_snapshots"
        )
    except sqlite3.Error as e:
        raise StoreIOError(f"Could not list accounts: {e}") from e
    return {str(row["account"]) for row in rows}


async def get_series(repo: Repository, account: str) -> list[BankValueSnapshot]:
    """Get the full snapshot history of an account, oldest first.

    Snapshots with equal timestamps keep their insertion order. Unknown or
    empty accounts yield an empty list. Damaged rows are skipped and a failed
    read degrades to an empty list; both are logged so one broken account
    never prevents access to the others.

    Args:
        repo: Repository instance
        account: Account identifier

    Returns:
        List of BankValueSnapshot models in chronological order
    """
    if not account:
        return []

    try:
        rows = await repo.fetchall(
            f"""
            SELECT {_SNAPSHOT_COLUMNS}
            FROM bank_value_snapshots
            WHERE account = ?
            ORDER BY snapshot_time ASC, snapshot_id ASC
            """,
            (account,),
        )
    except sqlite3.Error:
        logger.error("Failed to read bank value history for %s", account, exc_info=True)
        return []

    series: list[BankValueSnapshot] = []
    for row in rows:
        try:
            series.append(_row_to_snapshot(row))
        except (ValueError, ValidationError):
            logger.warning(
                "Skipping unreadable snapshot %s for %s",
                row["snapshot_id"],
                account,
                exc_info=True,
            )
    return series


async def get_latest_snapshot(
    repo: Repository, account: str
) -> BankValueSnapshot | None:
    """Get the most recent snapshot of an account.

    Args:
        repo: Repository instance
        account: Account identifier

    Returns:
        BankValueSnapshot if found, None otherwise

    Raises:
        StoreIOError: If the database cannot be read
    """
    if not account:
        return None

    try:
        row = await repo.fetchone(
            f"""
            SELECT {_SNAPSHOT_COLUMNS}
            FROM bank_value_snapshots
            WHERE account = ?
            ORDER BY snapshot_time DESC, snapshot_id DESC
            LIMIT 1
            """,
            (account,),
        )
    except sqlite3.Error as e:
        raise StoreIOError(f"Could not read latest snapshot for {account!r}: {e}") from e

    if row is None:
        return None
    try:
        return _row_to_snapshot(row)
    except (ValueError, ValidationError):
        logger.warning(
            "Latest snapshot %s for %s is unreadable; using newest readable one",
            row["snapshot_id"],
            account,
            exc_info=True,
        )

    readable = await get_series(repo, account)
    return readable[-1] if readable else None


async def count_snapshots(repo: Repository, account: str) -> int:
    """Count the stored snapshots of an account."""
    try:
        row = await repo.fetchone(
            "SELECT COUNT(*) AS n FROM bank_value_snapshots WHERE account = ?",
            (account,),
        )
    except sqlite3.Error as e:
        raise StoreIOError(f"Could not count snapshots for {account!r}: {e}") from e
    return int(row["n"]) if row else 0


async def remove_account(repo: Repository, account: str) -> int:
    """Delete the entire history of an account.

    Removing an account that has no history is a no-op.

    Args:
        repo: Repository instance
        account: Account identifier

    Returns:
        Number of deleted snapshots

    Raises:
        StoreIOError: If the delete fails
    """

    def _delete(conn: sqlite3.Connection) -> int:
        cursor = conn.execute(
            "DELETE FROM bank_value_snapshots WHERE account = ?", (account,)
        )
        return cursor.rowcount

    try:
        deleted = await repo.run_in_transaction(_delete)
    except (sqlite3.Error, OSError) as e:
        raise StoreIOError(f"Could not remove account {account!r}: {e}") from e

    if deleted:
        logger.info("Removed %d bank value snapshots for %s", deleted, account)
    return deleted


async def export_history(repo: Repository) -> dict[str, Any]:
    """Export all histories as a JSON-serializable document.

    Returns:
        Dict of the form ``{"format_version": 1, "accounts": {account: [...]}}``
    """
    accounts: dict[str, list[dict[str, Any]]] = {}
    for account in sorted(await list_accounts(repo)):
        accounts[account] = [
            {
                "snapshot_time": _format_time(snapshot),
                "total_value": snapshot.total_value,
                "breakdown": snapshot.breakdown,
            }
            for snapshot in await get_series(repo, account)
        ]
    return {"format_version": EXPORT_FORMAT_VERSION, "accounts": accounts}


async def import_history(repo: Repository, payload: dict[str, Any]) -> int:
    """Append the snapshots of an exported document.

    The whole document is validated first and then written in one
    transaction, so a bad record leaves the store untouched.

    Args:
        repo: Repository instance
        payload: Document produced by export_history

    Returns:
        Number of imported snapshots

    Raises:
        InvalidSnapshotError: If the document or one of its records is invalid
        StoreIOError: If the write fails
    """
    version = payload.get("format_version")
    if version != EXPORT_FORMAT_VERSION:
        raise InvalidSnapshotError(f"Unsupported history export version: {version!r}")

    snapshots: list[BankValueSnapshot] = []
    try:
        for account, records in payload.get("accounts", {}).items():
            for record in records:
                snapshots.append(BankValueSnapshot(account=account, **record))
    except (TypeError, AttributeError, ValidationError) as e:
        raise InvalidSnapshotError(f"Invalid history export: {e}") from e

    params = [
        (
            s.account,
            _format_time(s),
            s.total_value,
            _encode_breakdown(s.breakdown),
        )
        for s in snapshots
    ]

    def _insert_all(conn: sqlite3.Connection) -> int:
        conn.executemany(
            """
            INSERT INTO bank_value_snapshots (
                account, snapshot_time, total_value, breakdown
            ) VALUES (?, ?, ?, ?)
            """,
            params,
        )
        return len(params)

    try:
        imported = await repo.run_in_transaction(_insert_all)
    except (sqlite3.Error, OSError) as e:
        raise StoreIOError(f"Could not import history: {e}") from e

    logger.info("Imported %d bank value snapshots", imported)
    return imported


__all__ = [
    "EXPORT_FORMAT_VERSION",
    "append_snapshot",
    "count_snapshots",
    "export_history",
    "get_latest_snapshot",
    "get_series",
    "import_history",
    "list_accounts",
    "remove_account",
]
