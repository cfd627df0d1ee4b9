"""
Mutation Queue

Every local create/update/delete is recorded here until the remote
backend has confirmed it.

GUARANTEES:
- Durable: the pending list lives in the local store, so it survives restarts
- At-least-once: a mutation is removed only after the apply function
  reported success; failures stay queued for the next drain
- Per-record order: if a mutation for (entity_kind, entity_id) fails,
  later mutations for the same record are not attempted in that drain
- One drain at a time: a drain requested while another is running
  returns immediately instead of applying mutations twice

Producers (repositories) only append; the consumer (sync engine) only
removes. Both run on one event loop, so no lock is needed.
"""

import inspect
from typing import Any, Awaitable, Callable, Optional, Union

import structlog
from pydantic import ValidationError

from finsync.models.entities import EntityKind
from finsync.models.sync import (
    PROFILE_ENTITY_ID,
    DrainResult,
    OperationKind,
    PendingMutation,
)
from finsync.store.interface import (
    KeyValueStore,
    StorageKeys,
    safe_get_item,
    safe_set_item,
)


logger = structlog.get_logger(__name__)

ApplyResult = Union[bool, Awaitable[bool]]
ApplyFn = Callable[[PendingMutation], ApplyResult]
QueueListener = Callable[[PendingMutation], None]


class MutationQueue:
    """FIFO of pending mutations persisted under one store key."""

    def __init__(self, store: KeyValueStore, key: str = StorageKeys.SYNC_QUEUE):
        self._store = store
        self._key = key
        self._draining = False
        self._listeners: list[QueueListener] = []

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load(self) -> list[PendingMutation]:
        raw = safe_get_item(self._store, self._key, [])
        if not isinstance(raw, list):
            logger.warning("sync_queue_not_a_list", raw_type=type(raw).__name__)
            return []

        mutations = []
        for item in raw:
            try:
                mutations.append(PendingMutation.model_validate(item))
            except ValidationError as e:
                logger.warning("sync_queue_entry_dropped", errors=e.error_count())
        return mutations

    def _save(self, mutations: list[PendingMutation]) -> bool:
        return safe_set_item(
            self._store,
            self._key,
            [m.model_dump(mode="json") for m in mutations],
        )

    def _remove(self, mutation_id: str) -> None:
        # Re-read: producers may have appended while we were awaiting
        mutations = self._load()
        remaining = [m for m in mutations if m.mutation_id != mutation_id]
        if len(remaining) != len(mutations):
            self._save(remaining)

    # -------------------------------------------------------------------------
    # Producers
    # -------------------------------------------------------------------------

    def add_listener(self, listener: QueueListener) -> None:
        """Call listener(mutation) after every enqueue."""
        self._listeners.append(listener)

    def enqueue(
        self,
        entity_kind: Union[EntityKind, str],
        operation_kind: Union[OperationKind, str],
        payload: Optional[dict[str, Any]] = None,
        entity_id: Optional[str] = None,
    ) -> PendingMutation:
        """
        Append a mutation.

        The entity id is taken from payload["id"] unless given; the
        profile singleton always uses "profile". Delete mutations keep
        only the id in their payload.

        Raises:
            ValueError: If no entity id can be determined
        """
        entity_kind = EntityKind(entity_kind)
        operation_kind = OperationKind(operation_kind)

        if entity_id is None:
            if entity_kind is EntityKind.PROFILE:
                entity_id = PROFILE_ENTITY_ID
            elif payload and payload.get("id") is not None:
                entity_id = str(payload["id"])
            else:
                raise ValueError(f"Cannot enqueue {entity_kind.value} mutation without an id")

        if operation_kind is OperationKind.DELETE:
            body = {"id": entity_id}
        else:
            body = dict(payload or {})

        mutation = PendingMutation(
            entity_kind=entity_kind,
            operation_kind=operation_kind,
            entity_id=entity_id,
            payload=body,
        )

        mutations = self._load()
        mutations.append(mutation)
        if not self._save(mutations):
            logger.error(
                "sync_queue_persist_failed",
                entity_kind=entity_kind.value,
                entity_id=entity_id,
            )

        logger.debug(
            "mutation_enqueued",
            mutation_id=mutation.mutation_id,
            entity_kind=entity_kind.value,
            operation_kind=operation_kind.value,
            entity_id=entity_id,
        )

        for listener in self._listeners:
            try:
                listener(mutation)
            except Exception:
                logger.exception("sync_queue_listener_failed")

        return mutation

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def pending(self) -> list[PendingMutation]:
        """All pending mutations in queue order."""
        return self._load()

    def pending_count(self) -> int:
        return len(self._load())

    def __len__(self) -> int:
        return self.pending_count()

    def pending_keys(self, entity_kind: EntityKind) -> set[str]:
        """Ids of records of this kind with at least one pending mutation."""
        return {m.entity_id for m in self._load() if m.entity_kind is entity_kind}

    def pending_deletes(self, entity_kind: EntityKind) -> set[str]:
        """Ids whose most recent pending mutation is a delete."""
        last_op: dict[str, OperationKind] = {}
        for m in self._load():
            if m.entity_kind is entity_kind:
                last_op[m.entity_id] = m.operation_kind
        return {entity_id for entity_id, op in last_op.items() if op is OperationKind.DELETE}

    @property
    def is_draining(self) -> bool:
        return self._draining

    def clear(self) -> None:
        """Drop every pending mutation."""
        self._store.remove(self._key)

    # -------------------------------------------------------------------------
    # Consumer
    # -------------------------------------------------------------------------

    async def drain(self, apply_fn: ApplyFn) -> DrainResult:
        """
        Offer each pending mutation to apply_fn, in order.

        apply_fn returns (or resolves to) True when the remote backend
        confirmed the mutation. False or an exception leaves it queued.
        There is no retry inside one drain.
        """
        if self._draining:
            logger.debug("sync_queue_drain_skipped")
            return DrainResult(skipped=True)

        self._draining = True
        try:
            result = DrainResult()
            blocked: set[tuple[EntityKind, str]] = set()

            for mutation in self._load():
                if mutation.key in blocked:
                    result.deferred += 1
                    continue

                try:
                    outcome = apply_fn(mutation)
                    if inspect.isawaitable(outcome):
                        outcome = await outcome
                    ok = bool(outcome)
                except Exception as e:
                    logger.warning(
                        "mutation_apply_failed",
                        mutation_id=mutation.mutation_id,
                        entity_kind=mutation.entity_kind.value,
                        error=str(e),
                    )
                    ok = False

                if ok:
                    self._remove(mutation.mutation_id)
                    result.succeeded += 1
                    if mutation.entity_kind not in result.succeeded_kinds:
                        result.succeeded_kinds.append(mutation.entity_kind)
                else:
                    result.failed += 1
                    blocked.add(mutation.key)
                    if mutation.entity_kind not in result.failed_kinds:
                        result.failed_kinds.append(mutation.entity_kind)

            if result.succeeded or result.failed:
                logger.info(
                    "sync_queue_drained",
                    succeeded=result.succeeded,
                    failed=result.failed,
                    deferred=result.deferred,
                )
            return result
        finally:
            self._draining = False
