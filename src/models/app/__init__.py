"""Application/business models (domain layer)."""

from .snapshot import BankValueSeries, BankValueSnapshot

__all__ = [
    "BankValueSeries",
    "BankValueSnapshot",
]
