"""
Abstract Local Store Interface

DESIGN DECISION: The local store is a plain key/value store of strings.
Everything above it (migrations, validation, repositories, the queue)
receives the store explicitly at construction time. This allows us to:
1. Use an in-memory store in tests
2. Swap the on-disk format without touching business logic
3. Scope a physical store to one user

Values are UTF-8 JSON documents. JSON decoding lives in the helpers at
the bottom of this module so that a corrupt value degrades to a default
instead of propagating a parse exception.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, TypeVar

import structlog


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class StorageKeys:
    """Well-known keys of the local store namespace."""

    TRANSACTIONS = "finance_transactions"
    CATEGORIES = "finance_categories"
    PROFILE = "finance_profile"
    GOALS = "finance_goals"
    RECURRING_TRANSACTIONS = "finance_recurring_transactions"
    ASSETS = "finance_app_assets"
    SCHEMA_VERSION = "finance_data_version"
    SYNC_QUEUE = "finance_sync_queue"
    LAST_SYNC = "finance_last_sync"

    # Keys holding entity data (as opposed to bookkeeping)
    ENTITY_KEYS = (
        TRANSACTIONS,
        CATEGORIES,
        PROFILE,
        GOALS,
        RECURRING_TRANSACTIONS,
        ASSETS,
    )


class KeyValueStore(ABC):
    """
    Abstract interface for the client-resident durable store.

    Any implementation (JSON file, in-memory, OS keychain...) must
    implement these methods. Each call is atomic from the caller's
    point of view.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read the raw value stored under a key.

        Returns:
            The stored string, or None if the key is absent
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Store a raw value under a key, replacing any previous value.

        Raises:
            StorageError: If the value cannot be persisted
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a key. Removing an absent key is a no-op."""
        pass

    @abstractmethod
    def keys(self) -> Iterable[str]:
        """All keys currently present."""
        pass


class StorageError(Exception):
    """Base exception for local store operations."""
    pass


class StorageParseError(StorageError):
    """A stored value is not valid JSON."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"Malformed JSON under '{key}': {message}")


def load_json(store: KeyValueStore, key: str, default: Any = None) -> Any:
    """
    Decode the JSON stored under a key.

    Returns the default for an absent or empty key.

    Raises:
        StorageParseError: If the stored value is not valid JSON
    """
    raw = store.get(key)
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError as e:
        raise StorageParseError(key, str(e)) from e


def safe_get_item(store: KeyValueStore, key: str, default: T) -> T:
    """
    Decode the JSON stored under a key, falling back to the default.

    Malformed JSON is logged and treated as if the key were missing.
    """
    try:
        return load_json(store, key, default)
    except StorageParseError as e:
        logger.warning("storage_parse_failed", key=key, error=str(e))
        return default


def safe_set_item(store: KeyValueStore, key: str, value: Any) -> bool:
    """
    Encode a value as JSON and store it.

    Returns False (after logging) if the store refused the write.
    """
    try:
        store.set(key, json.dumps(value, ensure_ascii=False))
    except (StorageError, TypeError, ValueError) as e:
        logger.error("storage_write_failed", key=key, error=str(e))
        return False
    return True
