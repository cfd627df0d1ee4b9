"""
Sync Models for Finance Sync

Records owned by the mutation queue and the sync engine, plus the
result objects their operations return.

DESIGN DECISION: Results are plain data, not exceptions.
A sync cycle that half-failed is a normal outcome in an offline-first
app; callers inspect the report instead of catching errors.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from finsync.models.entities import EntityKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperationKind(str, Enum):
    """Kind of local write mirrored to the remote backend."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


PROFILE_ENTITY_ID = "profile"


class PendingMutation(BaseModel):
    """
    A local write waiting to be applied to the remote backend.

    Created by a repository write, removed only after the remote
    backend confirmed it.
    """

    mutation_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique id of this queue entry"
    )
    entity_kind: EntityKind
    operation_kind: OperationKind
    entity_id: str = Field(
        ...,
        description="Id of the affected record ('profile' for the singleton)"
    )
    payload: Optional[dict[str, Any]] = Field(
        default=None,
        description="Record body for create/update, None for delete"
    )
    enqueued_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> tuple[EntityKind, str]:
        """Ordering key: mutations sharing it must apply in queue order."""
        return (self.entity_kind, self.entity_id)


class DrainResult(BaseModel):
    """Outcome of one pass over the mutation queue."""

    succeeded: int = 0
    failed: int = 0
    deferred: int = Field(
        default=0,
        description="Not attempted because an earlier mutation for the same record failed"
    )
    skipped: bool = Field(
        default=False,
        description="True if another drain was already running"
    )
    failed_kinds: list[EntityKind] = Field(default_factory=list)
    succeeded_kinds: list[EntityKind] = Field(default_factory=list)


class MergeResult(BaseModel):
    """How a pulled remote collection changed the local one."""

    entity_kind: EntityKind
    added: int = 0
    replaced: int = 0
    kept_local: int = 0
    dropped_invalid: int = 0


class SyncPhase(str, Enum):
    IDLE = "idle"
    PULLING = "pulling"
    MERGING = "merging"
    DRAINING = "draining"


class SyncState(BaseModel):
    """Observable state of the sync engine."""

    phase: SyncPhase = SyncPhase.IDLE
    is_online: bool = True
    is_syncing: bool = False
    last_sync: Optional[datetime] = None
    pending_count: int = 0


class SyncReport(BaseModel):
    """Outcome of one pull -> merge -> drain cycle."""

    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    skipped: bool = False
    pulled: bool = False
    merges: list[MergeResult] = Field(default_factory=list)
    drain: Optional[DrainResult] = None
    errors: list[str] = Field(default_factory=list)


class MigrationReport(BaseModel):
    """Outcome of a migration run."""

    from_version: int
    to_version: int
    applied_steps: list[int] = Field(default_factory=list)
    success: bool = True
    failed_step: Optional[int] = None
    error_message: Optional[str] = None
    changed_keys: list[str] = Field(default_factory=list)
