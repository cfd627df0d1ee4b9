"""Schema migration package."""

from finsync.migrations.engine import (
    MigrationEngine,
    MigrationError,
    MigrationStepError,
    run_migrations,
)
from finsync.migrations.steps import (
    CURRENT_VERSION,
    MIGRATIONS,
    MigrationStep,
    StoreSnapshot,
)

__all__ = [
    "CURRENT_VERSION",
    "MIGRATIONS",
    "MigrationEngine",
    "MigrationError",
    "MigrationStep",
    "MigrationStepError",
    "StoreSnapshot",
    "run_migrations",
]
