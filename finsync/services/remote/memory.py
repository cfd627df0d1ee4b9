"""
In-memory remote backend.

Holds one dict of collections per user. Used by tests and by sessions
running without a configured server. Flip `available` to simulate an
outage: reads raise RemoteConnectionError and writes return False.
"""

import copy
from collections import defaultdict
from typing import Any, Optional

from finsync.models.entities import EntityKind
from finsync.services.remote.interface import (
    RemoteAuthError,
    RemoteBackend,
    RemoteConnectionError,
)


class InMemoryRemoteBackend(RemoteBackend):
    """Dict-backed RemoteBackend scoped to one user id."""

    def __init__(self, user_id: Optional[str] = "local-user"):
        self.user_id = user_id
        self.available = True
        self._collections: dict[str, dict[EntityKind, dict[str, dict[str, Any]]]] = defaultdict(
            lambda: defaultdict(dict)
        )
        self._profiles: dict[str, dict[str, Any]] = {}
        # Every write call, for assertions in tests
        self.calls: list[tuple[str, EntityKind, str]] = []

    def _check_read(self) -> str:
        if not self.available:
            raise RemoteConnectionError("Remote backend unavailable")
        if not self.user_id:
            raise RemoteAuthError("No authenticated user")
        return self.user_id

    def _can_write(self) -> bool:
        return self.available and bool(self.user_id)

    # Seeding helpers -------------------------------------------------------

    def seed(self, entity_kind: EntityKind, records: list[dict[str, Any]]) -> None:
        """Put records on the remote side directly, bypassing call tracking."""
        collection = self._collections[self.user_id][EntityKind(entity_kind)]
        for record in records:
            collection[str(record["id"])] = copy.deepcopy(record)

    def seed_profile(self, profile: dict[str, Any]) -> None:
        self._profiles[self.user_id] = copy.deepcopy(profile)

    def records(self, entity_kind: EntityKind) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._collections[self.user_id][EntityKind(entity_kind)].values()]

    def profile(self) -> Optional[dict[str, Any]]:
        return copy.deepcopy(self._profiles.get(self.user_id))

    # RemoteBackend ---------------------------------------------------------

    async def fetch_collection(self, entity_kind: EntityKind) -> list[dict[str, Any]]:
        user_id = self._check_read()
        return [copy.deepcopy(r) for r in self._collections[user_id][EntityKind(entity_kind)].values()]

    async def fetch_profile(self) -> Optional[dict[str, Any]]:
        user_id = self._check_read()
        return copy.deepcopy(self._profiles.get(user_id))

    async def upsert(self, entity_kind: EntityKind, record: dict[str, Any]) -> bool:
        if not self._can_write():
            return False
        entity_kind = EntityKind(entity_kind)
        record_id = str(record["id"])
        self._collections[self.user_id][entity_kind][record_id] = copy.deepcopy(record)
        self.calls.append(("upsert", entity_kind, record_id))
        return True

    async def delete(self, entity_kind: EntityKind, record_id: str) -> bool:
        if not self._can_write():
            return False
        entity_kind = EntityKind(entity_kind)
        self._collections[self.user_id][entity_kind].pop(record_id, None)
        self.calls.append(("delete", entity_kind, record_id))
        return True

    async def save_profile(self, profile: dict[str, Any]) -> bool:
        if not self._can_write():
            return False
        self._profiles[self.user_id] = copy.deepcopy(profile)
        self.calls.append(("save_profile", EntityKind.PROFILE, "profile"))
        return True
