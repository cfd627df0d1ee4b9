"""
Data Models Package

This package contains all Pydantic models used by Finance Sync.
Every record read from the local store, the remote backend or a backup
must conform to these schemas.
"""

from finsync.models.entities import (
    DEFAULT_CATEGORIES,
    ENTITY_MODELS,
    Asset,
    AssetClass,
    Category,
    CategoryType,
    EntityKind,
    Frequency,
    Goal,
    Language,
    RecurringTransaction,
    StoredModel,
    Transaction,
    TransactionType,
    UserProfile,
    default_profile,
    new_entity_id,
)
from finsync.models.intents import (
    AssistantIntent,
    IntentOutcome,
    IntentType,
    ParsedQuery,
    ParsedTransaction,
    QueryPeriod,
    QueryResult,
    QueryType,
)
from finsync.models.legacy import (
    CategoryV1,
    CategoryV2,
    LegacyCategoryType,
    LegacyTransactionType,
    TransactionV1,
    TransactionV2,
)
from finsync.models.notices import (
    Notice,
    NoticeBuilder,
    NoticeSeverity,
    NoticeType,
)
from finsync.models.sync import (
    PROFILE_ENTITY_ID,
    DrainResult,
    MergeResult,
    MigrationReport,
    OperationKind,
    PendingMutation,
    SyncPhase,
    SyncReport,
    SyncState,
)

__all__ = [
    # Entities
    "DEFAULT_CATEGORIES",
    "ENTITY_MODELS",
    "Asset",
    "AssetClass",
    "Category",
    "CategoryType",
    "EntityKind",
    "Frequency",
    "Goal",
    "Language",
    "RecurringTransaction",
    "StoredModel",
    "Transaction",
    "TransactionType",
    "UserProfile",
    "default_profile",
    "new_entity_id",
    # Chat-bot intents
    "AssistantIntent",
    "IntentOutcome",
    "IntentType",
    "ParsedQuery",
    "ParsedTransaction",
    "QueryPeriod",
    "QueryResult",
    "QueryType",
    # Versioned shapes
    "CategoryV1",
    "CategoryV2",
    "LegacyCategoryType",
    "LegacyTransactionType",
    "TransactionV1",
    "TransactionV2",
    # Notices
    "Notice",
    "NoticeBuilder",
    "NoticeSeverity",
    "NoticeType",
    # Sync
    "PROFILE_ENTITY_ID",
    "DrainResult",
    "MergeResult",
    "MigrationReport",
    "OperationKind",
    "PendingMutation",
    "SyncPhase",
    "SyncReport",
    "SyncState",
]
