"""
Abstract Remote Backend Interface

DESIGN DECISION: The sync engine talks to the remote store only through
this interface. This allows us to:
1. Run against an in-memory backend in tests and offline sessions
2. Swap the REST service for another provider later
3. Keep merge and drain logic decoupled from HTTP details

The interface is intentionally small: per entity kind, fetch everything,
upsert by id and delete by id, all scoped to the authenticated user.
Records cross this boundary as camelCase dicts, the same shape the
local store holds.

Writes are idempotent (upsert, delete-if-present) because the mutation
queue delivers at least once.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from finsync.models.entities import EntityKind


class RemoteBackend(ABC):
    """
    Abstract interface for the remote persistence service.

    Any implementation must implement these methods.
    """

    @property
    def call_budget_seconds(self) -> Optional[float]:
        """
        Longest one call may take, retries included.

        None means the backend does not bound its own calls and the
        caller's timeout alone applies.
        """
        return None

    @abstractmethod
    async def fetch_collection(self, entity_kind: EntityKind) -> list[dict[str, Any]]:
        """
        Fetch every record of one collection for the current user.

        Args:
            entity_kind: Any kind except PROFILE

        Returns:
            Raw records (camelCase dicts), not yet validated

        Raises:
            RemoteError: If the fetch fails
        """
        pass

    @abstractmethod
    async def fetch_profile(self) -> Optional[dict[str, Any]]:
        """
        Fetch the current user's profile.

        Returns:
            The raw profile, or None if the user has none yet

        Raises:
            RemoteError: If the fetch fails
        """
        pass

    @abstractmethod
    async def upsert(self, entity_kind: EntityKind, record: dict[str, Any]) -> bool:
        """
        Create or replace a record by id.

        Returns:
            True if the remote store confirmed the write
        """
        pass

    @abstractmethod
    async def delete(self, entity_kind: EntityKind, record_id: str) -> bool:
        """
        Delete a record by id. Deleting an absent record succeeds.

        Returns:
            True if the remote store confirmed the delete
        """
        pass

    @abstractmethod
    async def save_profile(self, profile: dict[str, Any]) -> bool:
        """
        Create or replace the current user's profile.

        Returns:
            True if the remote store confirmed the write
        """
        pass


class RemoteError(Exception):
    """Base exception for remote backend operations."""
    pass


class RemoteConnectionError(RemoteError):
    """Raised when the remote backend cannot be reached."""
    pass


class RemoteAuthError(RemoteError):
    """Raised when no user identity is available or the backend rejects it."""
    pass
