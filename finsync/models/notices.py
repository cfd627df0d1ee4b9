"""
Notice Models for Finance Sync

The data layer never talks to the UI directly. When something happens
that the user should hear about (records dropped, profile reset, sync
failing repeatedly), it builds a Notice and hands it to the Notifier,
which decides whether and how to surface it.

DESIGN DECISION: Notices are informational. None of them block the user.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finsync.models.entities import EntityKind
from finsync.models.sync import utcnow


class NoticeType(str, Enum):
    """Things the data layer may want to tell the user."""
    RECORDS_DROPPED = "records_dropped"
    PROFILE_RESET = "profile_reset"
    MIGRATION_FAILED = "migration_failed"
    SYNC_FAILURES = "sync_failures"


class NoticeSeverity(str, Enum):
    """Severity level for notices."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notice(BaseModel):
    """
    A single user-facing notice.

    Carries structured facts (kind, count) so the presentation layer
    can localize the message itself.
    """

    notice_id: UUID = Field(
        default_factory=uuid4,
        description="Unique notice identifier"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the notice was raised (UTC)"
    )
    notice_type: NoticeType
    severity: NoticeSeverity = NoticeSeverity.WARNING

    entity_kind: Optional[EntityKind] = None
    count: int = Field(
        default=0,
        ge=0,
        description="Number of affected records or attempts"
    )

    message: str = Field(
        ...,
        max_length=500,
        description="Default English message"
    )
    details: dict[str, Any] = Field(default_factory=dict)
    dismissible: bool = True

    @property
    def dedupe_key(self) -> str:
        """Key under which the notice is shown at most once per session."""
        if self.entity_kind is None:
            return self.notice_type.value
        return f"{self.notice_type.value}:{self.entity_kind.value}"

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "notice_id": str(self.notice_id),
            "created_at": self.created_at.isoformat(),
            "notice_type": self.notice_type.value,
            "severity": self.severity.value,
            "entity_kind": self.entity_kind.value if self.entity_kind else None,
            "count": self.count,
            "message": self.message,
            "details": self.details,
        }


class NoticeBuilder:
    """
    Helper class to build notices with common patterns.

    Usage:
        notice = NoticeBuilder.records_dropped(EntityKind.GOALS, 2)
        notice = NoticeBuilder.migration_failed(2, "bad data")
    """

    @staticmethod
    def records_dropped(entity_kind: EntityKind, count: int) -> Notice:
        return Notice(
            notice_type=NoticeType.RECORDS_DROPPED,
            entity_kind=entity_kind,
            count=count,
            message=f"{count} corrupted {entity_kind.value} record(s) were removed",
        )

    @staticmethod
    def profile_reset() -> Notice:
        return Notice(
            notice_type=NoticeType.PROFILE_RESET,
            entity_kind=EntityKind.PROFILE,
            count=1,
            message="Your profile data was corrupted and has been reset to defaults",
        )

    @staticmethod
    def migration_failed(version: int, error_message: str) -> Notice:
        return Notice(
            notice_type=NoticeType.MIGRATION_FAILED,
            severity=NoticeSeverity.ERROR,
            message=f"Data upgrade to version {version} failed; it will be retried on next start",
            details={
                "version": version,
                "error": error_message,
            },
        )

    @staticmethod
    def sync_failures(entity_kind: EntityKind, attempts: int) -> Notice:
        return Notice(
            notice_type=NoticeType.SYNC_FAILURES,
            entity_kind=entity_kind,
            count=attempts,
            message=f"Changes to {entity_kind.value} could not be synced yet; they are kept and will be retried",
        )
