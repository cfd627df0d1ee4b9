"""Validation gate package."""

from finsync.validation.gate import (
    CollectionOutcome,
    RecordIssue,
    SingletonOutcome,
    validate_collection,
    validate_singleton,
)

__all__ = [
    "CollectionOutcome",
    "RecordIssue",
    "SingletonOutcome",
    "validate_collection",
    "validate_singleton",
]
