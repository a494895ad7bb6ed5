"""Bank Value History data models (domain layer)."""

from .app import BankValueSeries, BankValueSnapshot

__all__ = [
    "BankValueSeries",
    "BankValueSnapshot",
]
