"""Builders and raw-store accessors shared by the test modules."""

import json
from typing import Any

from finsync.models.entities import Transaction, TransactionType, new_entity_id
from finsync.store import KeyValueStore


def make_transaction(**overrides: Any) -> Transaction:
    fields = {
        "id": new_entity_id(),
        "type": TransactionType.EXPENSE,
        "amount": 100.0,
        "category": "alimentacao",
        "date": "2024-03-15",
    }
    fields.update(overrides)
    return Transaction(**fields)


def raw(store: KeyValueStore, key: str) -> Any:
    """Decoded JSON stored under a key (None if absent)."""
    value = store.get(key)
    return None if value is None else json.loads(value)


def put(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, json.dumps(value))
