"""
Backup Service

Export and import of a user's complete data set as one JSON document.

FORMAT:
    {
      "version": <schema version of the data>,
      "exportedAt": <ISO timestamp>,
      "appName": "...",
      "data": {"transactions": [...], "categories": [...], "profile": {...}, ...}
    }

IMPORT RULES:
- A backup from an older schema is upgraded with the same migration
  steps the local store uses; a backup from a newer schema is rejected
- Every imported record passes the Validation Gate; bad ones are counted
  and skipped
- Imported records go through the repositories, so each one is enqueued
  and eventually reaches the remote backend
- "replace" makes each collection present in the backup exactly the
  backup's content; "merge" only adds ids not already present.
  The profile is restored only in replace mode
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from finsync.migrations import MigrationEngine, MigrationStepError
from finsync.models.entities import EntityKind, Transaction, TransactionType, UserProfile
from finsync.store.interface import StorageKeys
from finsync.validation import validate_collection, validate_singleton

if TYPE_CHECKING:
    from finsync.repositories import Repositories


logger = structlog.get_logger(__name__)

APP_NAME = "Controle Financeiro Pessoal"


class BackupError(Exception):
    """A backup cannot be imported."""
    pass


class ImportMode(str, Enum):
    REPLACE = "replace"
    MERGE = "merge"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BackupData(_CamelModel):
    """A parsed backup document. Section contents stay raw until import."""

    version: int = Field(..., ge=1)
    exported_at: str
    app_name: str = APP_NAME
    data: dict[str, Any]

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class BackupPreview(_CamelModel):
    """What an import would bring in, shown before the user confirms."""

    exported_at: str
    version: int
    counts: dict[str, int] = Field(default_factory=dict)
    totals: dict[str, float] = Field(
        default_factory=dict,
        description="Sum of transaction amounts per transaction type"
    )


class ImportResult(_CamelModel):
    success: bool
    message: str
    imported: dict[str, int] = Field(default_factory=dict)
    dropped: dict[str, int] = Field(default_factory=dict)


def _storage_keys(repositories: "Repositories") -> dict[EntityKind, str]:
    keys = {kind: repo.storage_key for kind, repo in repositories.collections().items()}
    keys[EntityKind.PROFILE] = StorageKeys.PROFILE
    return keys


def create_backup(repositories: "Repositories", version: int) -> BackupData:
    """Snapshot every collection plus the profile, as currently valid locally."""
    data: dict[str, Any] = {
        kind.value: [record.to_record() for record in repo.get_all()]
        for kind, repo in repositories.collections().items()
    }
    data[EntityKind.PROFILE.value] = repositories.profile.get().to_record()

    backup = BackupData(
        version=version,
        exported_at=datetime.now(timezone.utc).isoformat(),
        data=data,
    )
    logger.info("backup_created", version=version, sections=len(data))
    return backup


def parse_backup(content: str) -> Optional[BackupData]:
    """Parse a backup document. Returns None if it is not a usable backup."""
    try:
        parsed = json.loads(content)
    except ValueError:
        logger.warning("backup_not_json")
        return None

    if not isinstance(parsed, dict) or not isinstance(parsed.get("data"), dict):
        return None
    if not isinstance(parsed["data"].get(EntityKind.TRANSACTIONS.value), list):
        return None

    try:
        return BackupData.model_validate(parsed)
    except ValidationError as e:
        logger.warning("backup_invalid", errors=e.error_count())
        return None


def generate_backup_preview(backup: BackupData) -> BackupPreview:
    counts = {}
    for kind in EntityKind:
        section = backup.data.get(kind.value)
        if isinstance(section, list):
            counts[kind.value] = len(section)

    totals = {t.value: 0.0 for t in TransactionType}
    outcome = validate_collection(backup.data.get(EntityKind.TRANSACTIONS.value, []), Transaction)
    for transaction in outcome.valid:
        totals[transaction.type.value] += transaction.amount

    return BackupPreview(
        exported_at=backup.exported_at,
        version=backup.version,
        counts=counts,
        totals=totals,
    )


def upgrade_backup_data(backup: BackupData, engine: MigrationEngine, repositories: "Repositories") -> dict[EntityKind, Any]:
    """
    Bring backup sections to the current schema.

    Raises:
        BackupError: If the backup is newer than this code or a step fails
    """
    if backup.version > engine.current_version:
        raise BackupError(
            f"Backup version {backup.version} is newer than supported version {engine.current_version}"
        )

    keys = _storage_keys(repositories)
    snapshot = {
        keys[kind]: backup.data[kind.value]
        for kind in keys
        if kind.value in backup.data
    }
    try:
        upgraded = engine.upgrade_snapshot(snapshot, backup.version)
    except MigrationStepError as e:
        raise BackupError(f"Backup could not be upgraded: {e}") from e

    return {kind: upgraded[key] for kind, key in keys.items() if key in upgraded}


def import_backup(
    backup: BackupData,
    repositories: "Repositories",
    engine: MigrationEngine,
    mode: ImportMode = ImportMode.REPLACE,
) -> ImportResult:
    """Import a parsed backup through the repositories."""
    mode = ImportMode(mode)
    try:
        sections = upgrade_backup_data(backup, engine, repositories)
    except BackupError as e:
        logger.warning("backup_import_rejected", error=str(e))
        return ImportResult(success=False, message=str(e))

    result = ImportResult(success=True, message="")
    for kind, repo in repositories.collections().items():
        if kind not in sections:
            continue
        outcome = validate_collection(sections[kind], repo.model)
        result.imported[kind.value] = repo.import_items(outcome.valid, replace=mode is ImportMode.REPLACE)
        if outcome.invalid_count:
            result.dropped[kind.value] = outcome.invalid_count

    if mode is ImportMode.REPLACE and EntityKind.PROFILE in sections:
        current = repositories.profile.get()
        profile = validate_singleton(sections[EntityKind.PROFILE], UserProfile, current)
        if profile.is_valid:
            repositories.profile.save(profile.value)
        else:
            result.dropped[EntityKind.PROFILE.value] = 1

    result.message = "Backup restored" if mode is ImportMode.REPLACE else "Backup merged"
    logger.info(
        "backup_imported",
        mode=mode.value,
        imported=result.imported,
        dropped=result.dropped,
    )
    return result
