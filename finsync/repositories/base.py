"""
Collection Repository

Typed CRUD facade over one entity collection in the local store.
Repositories are the only code that writes entity keys.

EVERY READ goes through the Validation Gate. If any stored record fails
the current shape, the valid subset is written back immediately (the
store heals itself) and the user is told once per session.

EVERY EFFECTIVE WRITE enqueues exactly one PendingMutation. Writes that
change nothing (update or delete of an unknown id) enqueue nothing.
Writes coming from the sync engine (remote merge) and self-healing
writes do not enqueue, so the remote backend never receives echoes.
"""

from typing import Any, Generic, Optional, TypeVar

import structlog
from pydantic import ValidationError

from finsync.models.entities import EntityKind, StoredModel
from finsync.models.sync import OperationKind
from finsync.notifications import Notifier
from finsync.store.interface import KeyValueStore, safe_get_item, safe_set_item
from finsync.sync.queue import MutationQueue
from finsync.validation import validate_collection


logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=StoredModel)


class CollectionRepository(Generic[T]):
    """
    Base repository for a collection of records with string ids.

    Subclasses set entity_kind, model and storage_key, and may override
    _default_items() for collections that ship with defaults.
    """

    entity_kind: EntityKind
    model: type[T]
    storage_key: str

    def __init__(
        self,
        store: KeyValueStore,
        queue: MutationQueue,
        notifier: Optional[Notifier] = None,
    ):
        self._store = store
        self._queue = queue
        self._notifier = notifier

    def _default_items(self) -> list[T]:
        return []

    def _write(self, items: list[T]) -> bool:
        return safe_set_item(
            self._store,
            self.storage_key,
            [item.to_record() for item in items],
        )

    @staticmethod
    def _index_of(items: list[T], entity_id: str) -> Optional[int]:
        for index, item in enumerate(items):
            if item.id == entity_id:
                return index
        return None

    def _enqueue(self, operation: OperationKind, item_or_id: Any) -> None:
        if operation is OperationKind.DELETE:
            self._queue.enqueue(self.entity_kind, operation, entity_id=item_or_id)
        else:
            self._queue.enqueue(self.entity_kind, operation, item_or_id.to_record())

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_all(self) -> list[T]:
        """
        All valid records of this collection.

        Missing or malformed storage yields the collection default.
        """
        return self.stored_items() or self._default_items()

    def stored_items(self) -> list[T]:
        """Valid stored records, without falling back to defaults."""
        raw = safe_get_item(self._store, self.storage_key, None)
        if raw is None:
            return []

        outcome = validate_collection(raw, self.model)
        if outcome.has_invalid:
            logger.warning(
                "records_dropped",
                entity_kind=self.entity_kind.value,
                count=outcome.invalid_count,
            )
            self._write(outcome.valid)
            if self._notifier:
                self._notifier.records_dropped(self.entity_kind, outcome.invalid_count)

        return outcome.valid

    def get(self, entity_id: str) -> Optional[T]:
        for item in self.get_all():
            if item.id == entity_id:
                return item
        return None

    def __len__(self) -> int:
        return len(self.get_all())

    # -------------------------------------------------------------------------
    # User writes (enqueue)
    # -------------------------------------------------------------------------

    def add(self, item: T) -> None:
        """
        Append a record and enqueue a create.

        A record whose id already exists replaces the stored one in place,
        keeping ids unique.
        """
        items = self.get_all()
        index = self._index_of(items, item.id)
        if index is None:
            items.append(item)
        else:
            logger.warning("duplicate_id_replaced", entity_kind=self.entity_kind.value, entity_id=item.id)
            items[index] = item

        if self._write(items):
            self._enqueue(OperationKind.CREATE, item)

    def update(self, entity_id: str, item: T) -> None:
        """Replace the record with this id and enqueue an update. Unknown ids are a no-op."""
        items = self.get_all()
        index = self._index_of(items, entity_id)
        if index is None:
            logger.debug("update_unknown_id", entity_kind=self.entity_kind.value, entity_id=entity_id)
            return

        if item.id != entity_id:
            item = item.model_copy(update={"id": entity_id})
        items[index] = item

        if self._write(items):
            self._enqueue(OperationKind.UPDATE, item)

    def patch(self, entity_id: str, changes: dict[str, Any]) -> Optional[T]:
        """
        Apply partial changes to a record and enqueue an update.

        Changes are keyed by snake_case field name. Returns the
        updated record, or None if the id is unknown or the result would
        not be a valid record.
        """
        current = self.get(entity_id)
        if current is None:
            return None

        data = current.model_dump()
        data.update(changes)
        data["id"] = entity_id
        try:
            updated = self.model.model_validate(data)
        except ValidationError as e:
            logger.warning(
                "patch_rejected",
                entity_kind=self.entity_kind.value,
                entity_id=entity_id,
                errors=e.error_count(),
            )
            return None

        self.update(entity_id, updated)
        return updated

    def delete(self, entity_id: str) -> None:
        """Remove the record with this id and enqueue a delete. Unknown ids are a no-op."""
        items = self.get_all()
        remaining = [item for item in items if item.id != entity_id]
        if len(remaining) == len(items):
            logger.debug("delete_unknown_id", entity_kind=self.entity_kind.value, entity_id=entity_id)
            return

        if self._write(remaining):
            self._enqueue(OperationKind.DELETE, entity_id)

    def import_items(self, items: list[T], replace: bool = False) -> int:
        """
        Bulk import (backup restore).

        With replace=True the collection becomes exactly these items and
        every local id missing from them is enqueued as a delete, so the
        next pull does not bring it back. Otherwise only ids not already
        present are added. Every imported record is enqueued as a create.
        Returns the number imported.
        """
        dropped: list[str] = []
        if replace:
            incoming = {item.id for item in items}
            dropped = [item.id for item in self.stored_items() if item.id not in incoming]
            current: list[T] = []
            to_import = list(items)
        else:
            current = self.get_all()
            known = {item.id for item in current}
            to_import = []
            for item in items:
                if item.id not in known:
                    known.add(item.id)
                    to_import.append(item)

        if not self._write(current + to_import):
            return 0
        for item in to_import:
            self._enqueue(OperationKind.CREATE, item)
        for entity_id in dropped:
            self._enqueue(OperationKind.DELETE, entity_id)

        logger.info(
            "records_imported",
            entity_kind=self.entity_kind.value,
            count=len(to_import),
            removed=len(dropped),
            replace=replace,
        )
        return len(to_import)

    # -------------------------------------------------------------------------
    # Sync writes (no enqueue)
    # -------------------------------------------------------------------------

    def overwrite_from_remote(self, items: list[T]) -> bool:
        """Persist a merged collection without enqueueing anything."""
        return self._write(items)
