from .repositories import Repository, bank_history

__all__ = [
    "Repository",
    "bank_history",
]
