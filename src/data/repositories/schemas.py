"""SQLite database schemas for bank value history tracking.

Snapshots are stored one row per capture, partitioned by account. Timestamps
are ISO-8601 UTC strings with microsecond precision so that text ordering
matches chronological ordering. The optional breakdown is kept as JSON text.
"""

from __future__ import annotations

# Bumped whenever a table definition changes; stored in PRAGMA user_version.
SCHEMA_VERSION = 1

CREATE_BANK_VALUE_SNAPSHOTS_TABLE = """
CREATE TABLE IF NOT EXISTS bank_value_snapshots (
    snapshot_id INTEGER PRIMARY KEY AUTOINCREMENT,
    account TEXT NOT NULL CHECK(length(account) > 0),
    snapshot_time TEXT NOT NULL,
    total_value INTEGER NOT NULL CHECK(total_value >= 0),
    breakdown TEXT
);
"""

CREATE_BANK_VALUE_SNAPSHOTS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_bank_value_account_time
ON bank_value_snapshots(account, snapshot_time, snapshot_id);
"""

# All table creation statements in order
ALL_TABLES = [
    CREATE_BANK_VALUE_SNAPSHOTS_TABLE,
    CREATE_BANK_VALUE_SNAPSHOTS_INDEX,
]
