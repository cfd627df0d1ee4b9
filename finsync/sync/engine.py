"""
Sync Engine

Reconciles the local store with the remote backend. It is the only
component that calls the remote backend on the write path.

ONE SYNC CYCLE:
    Idle -> Pulling -> Merging -> Draining -> Idle

- Pulling fetches every collection and the profile concurrently, each
  call bounded by a timeout. Any failure aborts the whole pull and the
  local store stays as it was.
- Merging unions the pulled records into the local store by id. Writes
  a flush pushed while the pull was in flight are newer than the pulled
  copies and are merged as if still pending.
- Draining replays the mutation queue against the remote backend.
  It runs even when the pull failed: push and pull degrade independently.

A cycle never raises. Callers get a SyncReport and keep working with
local data whatever happened.

Between cycles, each enqueue schedules a background flush (drain only)
when the engine is online.
"""

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Optional, Union

import structlog

from finsync.models.entities import EntityKind, StoredModel, UserProfile
from finsync.models.sync import (
    DrainResult,
    OperationKind,
    PendingMutation,
    SyncPhase,
    SyncReport,
    SyncState,
    utcnow,
)
from finsync.notifications import Notifier
from finsync.services.remote.interface import RemoteBackend
from finsync.store.interface import (
    KeyValueStore,
    StorageKeys,
    safe_get_item,
    safe_set_item,
)
from finsync.sync.merge import merge_collection
from finsync.sync.queue import MutationQueue
from finsync.validation import validate_collection, validate_singleton

if TYPE_CHECKING:
    from finsync.repositories import Repositories


logger = structlog.get_logger(__name__)

Payload = Union[StoredModel, dict[str, Any]]


class SyncEngine:
    """Pull/merge/drain orchestration for one user's store."""

    def __init__(
        self,
        store: KeyValueStore,
        repositories: "Repositories",
        queue: MutationQueue,
        remote: RemoteBackend,
        notifier: Optional[Notifier] = None,
        timeout_seconds: float = 10.0,
        interval_seconds: float = 900.0,
        flush_on_write: bool = True,
        failure_notice_threshold: int = 3,
    ):
        self._store = store
        self._repositories = repositories
        self._queue = queue
        self._remote = remote
        self._notifier = notifier
        # A call never times out before the backend finished its own retries
        self._timeout = max(timeout_seconds, remote.call_budget_seconds or 0)
        self._interval = interval_seconds
        self._failure_threshold = failure_notice_threshold

        self._state = SyncState(last_sync=self._load_last_sync())
        self._cycle_running = False
        self._periodic_task: Optional[asyncio.Task] = None
        self._flush_tasks: set[asyncio.Task] = set()
        self._consecutive_failures: dict[EntityKind, int] = {}
        # Mutations confirmed by a flush while a pull is in flight
        self._pushed_during_pull: Optional[list[PendingMutation]] = None

        if flush_on_write:
            queue.add_listener(self._on_enqueue)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        """Snapshot of the current sync state."""
        return self._state.model_copy(update={"pending_count": self._queue.pending_count()})

    @property
    def is_online(self) -> bool:
        return self._state.is_online

    @property
    def is_syncing(self) -> bool:
        return self._state.is_syncing

    @property
    def last_sync(self) -> Optional[datetime]:
        return self._state.last_sync

    @property
    def call_timeout(self) -> float:
        """Bound applied to each remote call."""
        return self._timeout

    def pending_count(self) -> int:
        return self._queue.pending_count()

    def _load_last_sync(self) -> Optional[datetime]:
        raw = safe_get_item(self._store, StorageKeys.LAST_SYNC, None)
        if not isinstance(raw, str):
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("last_sync_unreadable", raw=raw)
            return None

    def _mark_synced(self) -> None:
        now = utcnow()
        self._state.last_sync = now
        safe_set_item(self._store, StorageKeys.LAST_SYNC, now.isoformat())

    def set_online(self, online: bool) -> None:
        """Record connectivity. Coming back online schedules a flush."""
        was_online = self._state.is_online
        self._state.is_online = online
        logger.info("connectivity_changed", online=online)
        if online and not was_online:
            self._schedule_flush()

    # -------------------------------------------------------------------------
    # Remote calls
    # -------------------------------------------------------------------------

    async def _bounded(self, call: Awaitable[Any]) -> Any:
        return await asyncio.wait_for(call, timeout=self._timeout)

    async def _apply(self, mutation: PendingMutation) -> bool:
        """Map one mutation to its remote call. Timeout counts as failure."""
        kind = mutation.entity_kind
        payload = mutation.payload or {}

        if kind is EntityKind.PROFILE:
            if mutation.operation_kind is OperationKind.DELETE:
                logger.warning("profile_delete_unsupported", mutation_id=mutation.mutation_id)
                return False
            call = self._remote.save_profile(payload)
        elif mutation.operation_kind is OperationKind.DELETE:
            call = self._remote.delete(kind, mutation.entity_id)
        else:
            call = self._remote.upsert(kind, payload)

        try:
            applied = bool(await self._bounded(call))
        except asyncio.TimeoutError:
            logger.warning(
                "mutation_apply_timeout",
                mutation_id=mutation.mutation_id,
                entity_kind=kind.value,
            )
            return False

        if applied and self._pushed_during_pull is not None:
            self._pushed_during_pull.append(mutation)
        return applied

    # -------------------------------------------------------------------------
    # Pull and merge
    # -------------------------------------------------------------------------

    async def _pull(self, report: SyncReport) -> Optional[tuple[dict[EntityKind, Any], Any]]:
        kinds = list(self._repositories.collections())
        calls = [self._bounded(self._remote.fetch_collection(kind)) for kind in kinds]
        calls.append(self._bounded(self._remote.fetch_profile()))

        results = await asyncio.gather(*calls, return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            error = failures[0]
            message = str(error) or type(error).__name__
            logger.warning("sync_pull_failed", error=message, failures=len(failures))
            report.errors.append(f"pull: {message}")
            return None

        return dict(zip(kinds, results[:-1])), results[-1]

    def _merge(self, collections: dict[EntityKind, Any], profile: Any, report: SyncReport) -> None:
        # Writes pushed while the pull was in flight are newer than the pulled copies
        pushed = self._pushed_during_pull or []
        for kind, repository in self._repositories.collections().items():
            outcome = validate_collection(collections[kind], repository.model)
            pushed_ids = {m.entity_id for m in pushed if m.entity_kind is kind}
            pushed_deletes = {
                m.entity_id for m in pushed
                if m.entity_kind is kind and m.operation_kind is OperationKind.DELETE
            }
            merged, result = merge_collection(
                kind,
                repository.stored_items(),
                outcome.valid,
                self._queue.pending_keys(kind) | pushed_ids,
                self._queue.pending_deletes(kind) | pushed_deletes,
            )
            result.dropped_invalid = outcome.invalid_count
            if result.added or result.replaced:
                repository.overwrite_from_remote(merged)
            report.merges.append(result)

        profile_pushed = any(m.entity_kind is EntityKind.PROFILE for m in pushed)
        if profile is not None and not profile_pushed and not self._queue.pending_keys(EntityKind.PROFILE):
            outcome = validate_singleton(profile, UserProfile, self._repositories.profile.get())
            if outcome.is_valid:
                self._repositories.profile.overwrite_from_remote(outcome.value)

        logger.info(
            "sync_merge_complete",
            added=sum(m.added for m in report.merges),
            replaced=sum(m.replaced for m in report.merges),
        )

    # -------------------------------------------------------------------------
    # Drain
    # -------------------------------------------------------------------------

    def _record_drain(self, result: DrainResult) -> None:
        if result.skipped:
            return
        for kind in result.succeeded_kinds:
            if kind not in result.failed_kinds:
                self._consecutive_failures.pop(kind, None)
        for kind in result.failed_kinds:
            count = self._consecutive_failures.get(kind, 0) + 1
            self._consecutive_failures[kind] = count
            if count >= self._failure_threshold and self._notifier:
                self._notifier.sync_failures(kind, count)

    async def flush(self) -> DrainResult:
        """Drain the queue now, without pulling."""
        if not self._state.is_online:
            logger.debug("sync_flush_offline")
            return DrainResult(skipped=True)
        result = await self._queue.drain(self._apply)
        self._record_drain(result)
        return result

    def _on_enqueue(self, mutation: PendingMutation) -> None:
        if self._state.is_online:
            self._schedule_flush()

    def _schedule_flush(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop: the next cycle drains it
            return
        task = loop.create_task(self.flush())
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    # -------------------------------------------------------------------------
    # Cycles
    # -------------------------------------------------------------------------

    async def sync_on_load(self) -> SyncReport:
        """
        Run one full cycle: pull, merge, drain.

        Never raises. A cycle requested while another is running is
        skipped.
        """
        report = SyncReport()
        if self._cycle_running:
            logger.info("sync_cycle_skipped")
            report.skipped = True
            report.finished_at = utcnow()
            return report

        self._cycle_running = True
        self._state.is_syncing = True
        try:
            if not self._state.is_online:
                logger.info("sync_offline")
                report.skipped = True
                return report

            self._state.phase = SyncPhase.PULLING
            self._pushed_during_pull = []
            try:
                pulled = await self._pull(report)
                if pulled is not None:
                    self._state.phase = SyncPhase.MERGING
                    self._merge(*pulled, report)
                    report.pulled = True
                    self._mark_synced()
            finally:
                self._pushed_during_pull = None

            self._state.phase = SyncPhase.DRAINING
            report.drain = await self._queue.drain(self._apply)
            self._record_drain(report.drain)
        except Exception as e:
            logger.exception("sync_cycle_failed")
            report.errors.append(str(e))
        finally:
            self._state.phase = SyncPhase.IDLE
            self._state.is_syncing = False
            self._state.pending_count = self._queue.pending_count()
            self._cycle_running = False
            report.finished_at = utcnow()

        logger.info(
            "sync_cycle_complete",
            pulled=report.pulled,
            succeeded=report.drain.succeeded if report.drain else 0,
            failed=report.drain.failed if report.drain else 0,
            errors=len(report.errors),
        )
        return report

    async def sync_periodic(self) -> SyncReport:
        """Timer callback; same as sync_on_load."""
        logger.debug("sync_periodic")
        return await self.sync_on_load()

    async def _run_periodic(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.sync_periodic()

    def start_sync(self) -> None:
        """Start the periodic cadence on the running event loop."""
        if self._periodic_task is not None and not self._periodic_task.done():
            return
        self._periodic_task = asyncio.get_running_loop().create_task(self._run_periodic())
        logger.info("sync_started", interval_seconds=self._interval)

    def stop_sync(self) -> None:
        """Cancel the periodic cadence and any scheduled flushes."""
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            self._periodic_task = None
        for task in list(self._flush_tasks):
            task.cancel()
        logger.info("sync_stopped")

    # -------------------------------------------------------------------------
    # Queue pass-throughs
    # -------------------------------------------------------------------------

    def queue(
        self,
        entity_kind: Union[EntityKind, str],
        operation_kind: Union[OperationKind, str],
        payload: Payload,
    ) -> PendingMutation:
        """Enqueue a mutation directly, bypassing the repositories."""
        if isinstance(payload, StoredModel):
            payload = payload.to_record()
        return self._queue.enqueue(entity_kind, operation_kind, payload)

    def queue_transaction(self, operation_kind: Union[OperationKind, str], transaction: Payload) -> PendingMutation:
        return self.queue(EntityKind.TRANSACTIONS, operation_kind, transaction)

    def queue_category(self, operation_kind: Union[OperationKind, str], category: Payload) -> PendingMutation:
        return self.queue(EntityKind.CATEGORIES, operation_kind, category)

    def queue_goal(self, operation_kind: Union[OperationKind, str], goal: Payload) -> PendingMutation:
        return self.queue(EntityKind.GOALS, operation_kind, goal)

    def queue_profile(self, profile: Payload) -> PendingMutation:
        return self.queue(EntityKind.PROFILE, OperationKind.UPDATE, profile)

    def queue_asset(self, operation_kind: Union[OperationKind, str], asset: Payload) -> PendingMutation:
        return self.queue(EntityKind.ASSETS, operation_kind, asset)

    def queue_recurring_transaction(
        self,
        operation_kind: Union[OperationKind, str],
        recurring_transaction: Payload,
    ) -> PendingMutation:
        return self.queue(EntityKind.RECURRING_TRANSACTIONS, operation_kind, recurring_transaction)
