"""
Schema Migration Engine

Brings the local store from its on-disk schema version up to the version
this code expects. Must run once per session, before any repository reads.

HOW A RUN WORKS:
1. Read the stored version (absent marker = 0, pre-versioning data)
2. If already current, return immediately (the common case)
3. Snapshot every entity key and run each pending step, in order,
   against the in-memory snapshot
4. Write back only the keys whose content changed
5. Advance the version marker last

CRASH SAFETY: if a step fails nothing is written and the version stays
put, so the whole chain is retried on next start. If the process dies
between step 4 and step 5 the steps run again on data they already
transformed, which is why every step must be self-idempotent.

The engine is forward-only; there is no rollback.
"""

import copy
import json
from typing import Mapping, Optional

import structlog

from finsync.migrations.steps import MIGRATIONS, MigrationStep, StoreSnapshot
from finsync.models.sync import MigrationReport
from finsync.notifications import Notifier
from finsync.store.interface import (
    KeyValueStore,
    StorageError,
    StorageKeys,
    StorageParseError,
    load_json,
)


logger = structlog.get_logger(__name__)


class MigrationError(Exception):
    """Base exception for migration failures."""
    pass


class MigrationStepError(MigrationError):
    """A registered step raised while transforming the snapshot."""

    def __init__(self, version: int, cause: Exception):
        self.version = version
        self.cause = cause
        super().__init__(f"Migration to v{version} failed: {cause}")


class MigrationEngine:
    """
    Applies the migration registry to a key/value store.

    Generic over the registry: the current version is the highest
    registered step unless given explicitly.
    """

    def __init__(
        self,
        store: KeyValueStore,
        registry: Optional[Mapping[int, MigrationStep]] = None,
        current_version: Optional[int] = None,
        notifier: Optional[Notifier] = None,
        entity_keys: tuple[str, ...] = StorageKeys.ENTITY_KEYS,
    ):
        self._store = store
        self._registry = dict(MIGRATIONS if registry is None else registry)
        if current_version is None:
            current_version = max(self._registry, default=0)
        self._current_version = current_version
        self._notifier = notifier
        self._entity_keys = entity_keys

    @property
    def current_version(self) -> int:
        """Schema version this code expects."""
        return self._current_version

    def stored_version(self) -> int:
        """Schema version of the data on disk (0 if never versioned)."""
        raw = self._store.get(StorageKeys.SCHEMA_VERSION)
        if raw is None:
            return 0
        try:
            return int(raw.strip())
        except ValueError:
            logger.warning("schema_version_unreadable", raw=raw)
            return 0

    def needs_migration(self) -> bool:
        return self.stored_version() < self._current_version

    def upgrade_snapshot(self, snapshot: StoreSnapshot, from_version: int) -> StoreSnapshot:
        """
        Run every step after from_version on a detached snapshot.

        The input is never mutated.

        Raises:
            MigrationStepError: If any step raises
        """
        upgraded, _ = self._apply(snapshot, from_version)
        return upgraded

    def _apply(self, snapshot: StoreSnapshot, from_version: int) -> tuple[StoreSnapshot, list[int]]:
        current = copy.deepcopy(snapshot)
        applied = []
        for version in range(from_version + 1, self._current_version + 1):
            step = self._registry.get(version)
            if step is None:
                continue
            logger.info("migration_step_started", version=version)
            try:
                current = step(copy.deepcopy(current))
            except Exception as e:
                raise MigrationStepError(version, e) from e
            applied.append(version)
        return current, applied

    def _read_snapshot(self) -> tuple[StoreSnapshot, set[str]]:
        snapshot: StoreSnapshot = {}
        unreadable = set()
        for key in self._entity_keys:
            try:
                value = load_json(self._store, key)
            except StorageParseError as e:
                logger.warning("migration_key_unreadable", key=key, error=str(e))
                unreadable.add(key)
                continue
            if value is not None:
                snapshot[key] = value
        return snapshot, unreadable

    def run(self) -> MigrationReport:
        """
        Migrate the store to the current version.

        Never raises for a failing step: the failure is logged, reported,
        and the stored version is left untouched.
        """
        stored = self.stored_version()
        if stored >= self._current_version:
            return MigrationReport(from_version=stored, to_version=stored)

        logger.info(
            "migrations_started",
            from_version=stored,
            to_version=self._current_version,
        )

        snapshot, unreadable = self._read_snapshot()
        try:
            upgraded, applied = self._apply(snapshot, stored)
        except MigrationStepError as e:
            logger.error(
                "migration_step_failed",
                version=e.version,
                error=str(e.cause),
            )
            if self._notifier:
                self._notifier.migration_failed(e.version, str(e.cause))
            return MigrationReport(
                from_version=stored,
                to_version=stored,
                success=False,
                failed_step=e.version,
                error_message=str(e.cause),
            )

        changed = [
            key for key in upgraded
            if key not in unreadable and upgraded[key] != snapshot.get(key)
        ]
        removed = [key for key in snapshot if key not in upgraded]

        try:
            for key in changed:
                self._store.set(key, json.dumps(upgraded[key], ensure_ascii=False))
            for key in removed:
                self._store.remove(key)
            self._store.set(StorageKeys.SCHEMA_VERSION, str(self._current_version))
        except (StorageError, TypeError, ValueError) as e:
            logger.error("migration_write_failed", error=str(e))
            return MigrationReport(
                from_version=stored,
                to_version=stored,
                applied_steps=applied,
                success=False,
                error_message=str(e),
            )

        logger.info(
            "migrations_complete",
            version=self._current_version,
            changed_keys=changed,
        )
        return MigrationReport(
            from_version=stored,
            to_version=self._current_version,
            applied_steps=applied,
            changed_keys=changed + removed,
        )


def run_migrations(store: KeyValueStore, notifier: Optional[Notifier] = None) -> None:
    """Migrate the store with the default registry."""
    MigrationEngine(store, notifier=notifier).run()
