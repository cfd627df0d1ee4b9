"""In-memory key/value store for tests and ephemeral sessions."""

from typing import Iterable, Mapping, Optional

from finsync.store.interface import KeyValueStore


class InMemoryStore(KeyValueStore):
    """Dictionary-backed store. Nothing survives the process."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterable[str]:
        return list(self._data)

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw contents."""
        return dict(self._data)
