"""SQLite repository for bank value history.

This module owns the database connection and schema initialization. Access
methods for the stored snapshots live in ``bank_history.py`` and take the
repository as their first argument.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from utils import StoreIOError, get_config

from . import schemas

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Repository:
    """Repository for bank value history storage.

    This class manages the single SQLite database connection and provides
    core database operations. Every statement runs under one lock on a
    worker thread, so a reader never observes a half-applied write.

    Usage:
        repo = Repository()
        await repo.initialize()

        from data.repositories import bank_history
        stored = await bank_history.append_snapshot(repo, snapshot)
        series = await bank_history.get_series(repo, "alice")
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        """Initialize repository with database connection.

        Args:
            db_path: Path to the SQLite database file. If None, uses the
                configured location in the user data directory.
        """
        if db_path is None:
            db_path = get_config().db_path

        self.db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create a database connection.

        Returns:
            Active SQLite connection
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                isolation_level="DEFERRED",
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
            # FULL: a committed snapshot survives power loss
            self._conn.execute("PRAGMA synchronous = FULL")

        return self._conn

    async def fetchall(self, sql: str, parameters: tuple[Any, ...] = ()) -> list[Any]:
        """Execute query and fetch all results.

        Args:
            sql: SQL query to execute
            parameters: Parameters for the query

        Returns:
            List of result rows
        """
        async with self._lock:
            conn = self._get_connection()
            return await asyncio.to_thread(
                lambda: conn.execute(sql, parameters).fetchall()
            )

    async def fetchone(self, sql: str, parameters: tuple[Any, ...] = ()) -> Any | None:
        """Execute query and fetch one result.

        Args:
            sql: SQL query to execute
            parameters: Parameters for the query

        Returns:
            Single result row or None
        """
        async with self._lock:
            conn = self._get_connection()
            return await asyncio.to_thread(
                lambda: conn.execute(sql, parameters).fetchone()
            )

    async def run_in_transaction(self, work: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``work`` on the connection and commit, or roll back on failure.

        Args:
            work: Callable receiving the connection; all statements it issues
                are committed together.

        Returns:
            Whatever ``work`` returns
        """
        async with self._lock:
            conn = self._get_connection()

            def _run_with_transaction() -> T:
                try:
                    result = work(conn)
                    conn.commit()
                    return result
                except Exception:
                    conn.rollback()
                    raise

            return await asyncio.to_thread(_run_with_transaction)

    async def close(self) -> None:
        """Close the database connection."""
        async with self._lock:
            if self._conn:
                await asyncio.to_thread(self._conn.close)
                self._conn = None
                self._initialized = False

    async def initialize(self) -> None:
        """Initialize the repository and ensure schema is created.

        This is safe to call multiple times - it will only initialize once.

        Raises:
            StoreIOError: If the database file cannot be opened or is not a
                usable history database.
        """
        if self._initialized:
            return

        try:
            await self.initialize_schema()
        except sqlite3.Error as e:
            raise StoreIOError(
                f"Could not initialize history database at {self.db_path}: {e}"
            ) from e

        self._initialized = True

    async def initialize_schema(self) -> None:
        """Initialize database schema with all required tables."""
        logger.info("Initializing database schema at %s", self.db_path)

        row = await self.fetchone("PRAGMA user_version")
        stored_version = int(row[0]) if row else 0
        if stored_version > schemas.SCHEMA_VERSION:
            raise StoreIOError(
                f"History database schema version {stored_version} is newer "
                f"than supported version {schemas.SCHEMA_VERSION}"
            )

        def _apply_schema(conn: sqlite3.Connection) -> None:
            for sql_statement in schemas.ALL_TABLES:
                statements = [s.strip() for s in sql_statement.split(";") if s.strip()]
                for stmt in statements:
                    try:
                        conn.execute(stmt)
                    except sqlite3.Error as e:
                        logger.error("Failed to execute schema statement: %s", e)
                        logger.debug("Statement was: %s", stmt)
                        raise
            conn.execute(f"PRAGMA user_version = {schemas.SCHEMA_VERSION}")

        await self.run_in_transaction(_apply_schema)
        logger.info("Database schema initialized successfully")

    async def table_exists(self, table_name: str) -> bool:
        """Check if a table exists in the database.

        Args:
            table_name: Name of the table to check

        Returns:
            True if table exists, False otherwise
        """
        result = await self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None

    async def schema_version(self) -> int:
        """Return the schema version stamped in the database."""
        row = await self.fetchone("PRAGMA user_version")
        return int(row[0]) if row else 0


__all__ = ["Repository"]
