"""Bank value snapshot and history series models."""

from __future__ import annotations

import json
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BankValueSnapshot(BaseModel):
    """Represents the total bank value of one account at one instant.

    Snapshots are historical facts and therefore immutable once created.
    """

    model_config = ConfigDict(frozen=True)

    snapshot_id: int | None = Field(
        None, description="Store-assigned identifier (None until persisted)"
    )
    account: str = Field(..., min_length=1, description="Account the value belongs to")
    snapshot_time: datetime = Field(..., description="When the snapshot was taken")
    total_value: int = Field(..., ge=0, description="Total bank value")
    breakdown: dict[str, Any] | None = Field(
        None, description="Optional item identifier to quantity/value mapping"
    )

    @field_validator("breakdown", mode="before")
    @classmethod
    def stringify_breakdown_keys(cls, v: Any) -> Any:
        """Accept integer item ids; keys are stored as strings like JSON does."""
        if isinstance(v, dict):
            return {str(k): value for k, value in v.items()}
        return v

    @field_validator("breakdown")
    @classmethod
    def ensure_breakdown_serializable(
        cls, v: dict[str, Any] | None
    ) -> dict[str, Any] | None:
        if v is not None:
            try:
                json.dumps(v)
            except (TypeError, ValueError) as e:
                raise ValueError(f"breakdown must be JSON-serializable: {e}") from e
        return v

    @field_validator("snapshot_time")
    @classmethod
    def normalize_snapshot_time(cls, v: datetime) -> datetime:
        """Store every timestamp as an aware UTC datetime."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)


class BankValueSeries(BaseModel):
    """Ordered history of snapshots for one account (oldest first)."""

    account: str = Field("", description="Account the series belongs to")
    snapshots: list[BankValueSnapshot] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.snapshots)

    def __iter__(self) -> Iterator[BankValueSnapshot]:  # type: ignore[override]
        return iter(self.snapshots)

    def __getitem__(self, index: int) -> BankValueSnapshot:
        return self.snapshots[index]

    @property
    def is_empty(self) -> bool:
        return not self.snapshots

    @property
    def first(self) -> BankValueSnapshot | None:
        return self.snapshots[0] if self.snapshots else None

    @property
    def latest(self) -> BankValueSnapshot | None:
        return self.snapshots[-1] if self.snapshots else None

    @property
    def value_change(self) -> int:
        """Difference between the latest and the first recorded value."""
        if not self.snapshots:
            return 0
        return self.snapshots[-1].total_value - self.snapshots[0].total_value

    def points(self) -> list[tuple[datetime, int]]:
        """Return (time, value) pairs suitable for plotting."""
        return [(s.snapshot_time, s.total_value) for s in self.snapshots]
