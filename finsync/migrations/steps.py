"""
Migration Steps

Registry of schema migrations. When the stored data shape changes,
add a step here keyed by the version it produces; the engine picks up
the new current version automatically.

RULES FOR STEPS:
1. Pure: take a snapshot, return a new snapshot, touch nothing else
2. Self-idempotent: running a step on its own output changes nothing
3. Never throw on well-formed input of the previous version
4. Leave records that do not match the previous shape untouched;
   the Validation Gate decides what happens to them
"""

from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from finsync.models.legacy import CategoryV1, TransactionV1
from finsync.store.interface import StorageKeys


# Decoded JSON value per store key. Absent keys are absent from the dict.
StoreSnapshot = dict[str, Any]

MigrationStep = Callable[[StoreSnapshot], StoreSnapshot]


def _upgrade_collection(records: Any, shape: type[BaseModel]) -> Any:
    if not isinstance(records, list):
        return records
    return [_upgrade_record(item, shape) for item in records]


def _upgrade_record(item: Any, shape: type[BaseModel]) -> Any:
    if not isinstance(item, dict):
        return item
    try:
        legacy = shape.model_validate(item)
    except ValidationError:
        return item
    return legacy.upgrade().to_raw()


def initial_version(snapshot: StoreSnapshot) -> StoreSnapshot:
    """Version 1: first versioned schema. Marks legacy data, changes nothing."""
    return dict(snapshot)


def unexpected_type_to_flag(snapshot: StoreSnapshot) -> StoreSnapshot:
    """
    Version 2: replace the "unexpected" type with an isUnexpected flag.

    - Transactions of type "unexpected" become "expense" with isUnexpected=True
    - Every other transaction gets isUnexpected backfilled (False unless set)
    - Categories of type "unexpected" become "expense"
    """
    result = dict(snapshot)

    if StorageKeys.TRANSACTIONS in snapshot:
        result[StorageKeys.TRANSACTIONS] = _upgrade_collection(
            snapshot[StorageKeys.TRANSACTIONS], TransactionV1
        )

    if StorageKeys.CATEGORIES in snapshot:
        result[StorageKeys.CATEGORIES] = _upgrade_collection(
            snapshot[StorageKeys.CATEGORIES], CategoryV1
        )

    return result


MIGRATIONS: dict[int, MigrationStep] = {
    1: initial_version,
    2: unexpected_type_to_flag,
}

CURRENT_VERSION = max(MIGRATIONS)
