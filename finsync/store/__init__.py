"""
Local Store Package

Provides the abstract key/value interface, the well-known key namespace,
JSON helpers and concrete implementations (JSON file, in-memory).
"""

from finsync.store.interface import (
    KeyValueStore,
    StorageError,
    StorageKeys,
    StorageParseError,
    load_json,
    safe_get_item,
    safe_set_item,
)
from finsync.store.json_file import JsonFileStore
from finsync.store.memory import InMemoryStore

__all__ = [
    # Interface
    "KeyValueStore",
    "StorageKeys",
    "load_json",
    "safe_get_item",
    "safe_set_item",
    # Exceptions
    "StorageError",
    "StorageParseError",
    # Implementations
    "InMemoryStore",
    "JsonFileStore",
]
