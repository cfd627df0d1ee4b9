"""Services package."""

from finsync.services.backup import (
    BackupData,
    BackupError,
    BackupPreview,
    ImportMode,
    ImportResult,
    create_backup,
    generate_backup_preview,
    import_backup,
    parse_backup,
)
from finsync.services.recurring import (
    GenerationReport,
    generate_due_transactions,
    should_generate,
)
from finsync.services.remote import (
    InMemoryRemoteBackend,
    RemoteAuthError,
    RemoteBackend,
    RemoteConnectionError,
    RemoteError,
    RestRemoteBackend,
)

__all__ = [
    # Backup
    "BackupData",
    "BackupError",
    "BackupPreview",
    "ImportMode",
    "ImportResult",
    "create_backup",
    "generate_backup_preview",
    "import_backup",
    "parse_backup",
    # Recurring
    "GenerationReport",
    "generate_due_transactions",
    "should_generate",
    # Remote backends
    "InMemoryRemoteBackend",
    "RemoteAuthError",
    "RemoteBackend",
    "RemoteConnectionError",
    "RemoteError",
    "RestRemoteBackend",
]
