"""Entity repositories package."""

from finsync.repositories.base import CollectionRepository
from finsync.repositories.entities import (
    AssetRepository,
    CategoryRepository,
    GoalRepository,
    ProfileRepository,
    RecurringTransactionRepository,
    Repositories,
    TransactionRepository,
)

__all__ = [
    "AssetRepository",
    "CategoryRepository",
    "CollectionRepository",
    "GoalRepository",
    "ProfileRepository",
    "RecurringTransactionRepository",
    "Repositories",
    "TransactionRepository",
]
