"""
Per-entity repositories and the registry that wires them together.
"""

from datetime import date
from typing import Optional

import structlog

from finsync.models.entities import (
    DEFAULT_CATEGORIES,
    Asset,
    Category,
    EntityKind,
    Goal,
    RecurringTransaction,
    Transaction,
    TransactionType,
    UserProfile,
    default_profile,
)
from finsync.models.sync import OperationKind
from finsync.notifications import Notifier
from finsync.repositories.base import CollectionRepository
from finsync.store.interface import (
    KeyValueStore,
    StorageKeys,
    safe_get_item,
    safe_set_item,
)
from finsync.sync.queue import MutationQueue
from finsync.validation import validate_singleton


logger = structlog.get_logger(__name__)


class TransactionRepository(CollectionRepository[Transaction]):
    entity_kind = EntityKind.TRANSACTIONS
    model = Transaction
    storage_key = StorageKeys.TRANSACTIONS

    def by_type(self, transaction_type: TransactionType) -> list[Transaction]:
        return [t for t in self.get_all() if t.type is transaction_type]


class CategoryRepository(CollectionRepository[Category]):
    """Categories fall back to the built-in set when none are stored."""

    entity_kind = EntityKind.CATEGORIES
    model = Category
    storage_key = StorageKeys.CATEGORIES

    def _default_items(self) -> list[Category]:
        return [category.model_copy() for category in DEFAULT_CATEGORIES]


class GoalRepository(CollectionRepository[Goal]):
    entity_kind = EntityKind.GOALS
    model = Goal
    storage_key = StorageKeys.GOALS

    def toggle(self, entity_id: str) -> Optional[Goal]:
        """Flip a goal's completed flag."""
        goal = self.get(entity_id)
        if goal is None:
            return None
        return self.patch(entity_id, {"completed": not goal.completed})


class RecurringTransactionRepository(CollectionRepository[RecurringTransaction]):
    entity_kind = EntityKind.RECURRING_TRANSACTIONS
    model = RecurringTransaction
    storage_key = StorageKeys.RECURRING_TRANSACTIONS

    def active(self) -> list[RecurringTransaction]:
        return [rule for rule in self.get_all() if rule.is_active]

    def mark_generated(self, entity_id: str, generated_on: date) -> Optional[RecurringTransaction]:
        return self.patch(entity_id, {"last_generated_date": generated_on.isoformat()})


class AssetRepository(CollectionRepository[Asset]):
    entity_kind = EntityKind.ASSETS
    model = Asset
    storage_key = StorageKeys.ASSETS


class ProfileRepository:
    """
    Accessor for the profile singleton.

    A stored profile that fails validation is replaced by the default
    and the default is persisted. That repair is not enqueued: pushing
    it would overwrite the user's remote profile with defaults.
    """

    entity_kind = EntityKind.PROFILE
    storage_key = StorageKeys.PROFILE

    def __init__(
        self,
        store: KeyValueStore,
        queue: MutationQueue,
        notifier: Optional[Notifier] = None,
    ):
        self._store = store
        self._queue = queue
        self._notifier = notifier

    def get(self) -> UserProfile:
        fallback = default_profile()
        raw = safe_get_item(self._store, self.storage_key, None)
        if raw is None:
            return fallback

        outcome = validate_singleton(raw, UserProfile, fallback)
        if not outcome.is_valid:
            logger.warning("profile_reset", errors=outcome.errors)
            safe_set_item(self._store, self.storage_key, fallback.to_record())
            if self._notifier:
                self._notifier.profile_reset()
        return outcome.value

    def save(self, profile: UserProfile) -> None:
        """Persist the profile and enqueue an update."""
        if safe_set_item(self._store, self.storage_key, profile.to_record()):
            self._queue.enqueue(self.entity_kind, OperationKind.UPDATE, profile.to_record())

    def overwrite_from_remote(self, profile: UserProfile) -> bool:
        """Persist a pulled profile without enqueueing anything."""
        return safe_set_item(self._store, self.storage_key, profile.to_record())


class Repositories:
    """All repositories of one store, sharing one queue and notifier."""

    def __init__(
        self,
        store: KeyValueStore,
        queue: MutationQueue,
        notifier: Optional[Notifier] = None,
    ):
        self.transactions = TransactionRepository(store, queue, notifier)
        self.categories = CategoryRepository(store, queue, notifier)
        self.goals = GoalRepository(store, queue, notifier)
        self.recurring_transactions = RecurringTransactionRepository(store, queue, notifier)
        self.assets = AssetRepository(store, queue, notifier)
        self.profile = ProfileRepository(store, queue, notifier)

    def collections(self) -> dict[EntityKind, CollectionRepository]:
        """Collection repositories keyed by entity kind (profile excluded)."""
        return {
            EntityKind.TRANSACTIONS: self.transactions,
            EntityKind.CATEGORIES: self.categories,
            EntityKind.GOALS: self.goals,
            EntityKind.RECURRING_TRANSACTIONS: self.recurring_transactions,
            EntityKind.ASSETS: self.assets,
        }

    def collection(self, entity_kind: EntityKind) -> CollectionRepository:
        """
        Raises:
            KeyError: For the profile or an unknown kind
        """
        return self.collections()[EntityKind(entity_kind)]
