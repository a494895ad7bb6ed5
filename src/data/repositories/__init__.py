"""Repository layer for bank value history storage.

This package provides a SQLite repository with organized access methods:

- Repository: Single database connection and schema management
- bank_history: Functions for appending, querying and removing snapshots

Usage:
    from data.repositories import Repository, bank_history

    repo = Repository()
    await repo.initialize()

    stored = await bank_history.append_snapshot(repo, snapshot)
    accounts = await bank_history.list_accounts(repo)
"""

from __future__ import annotations

from . import bank_history
from .repository import Repository

__all__ = [
    "Repository",
    "bank_history",
]
