"""Service layer for Bank Value History.

Domain-oriented submodules:
    bank_history_service: snapshot capture policy & history queries

"""

from .bank_history_service import BankHistoryService, RecordResult

__all__ = [
    "BankHistoryService",
    "RecordResult",
]
