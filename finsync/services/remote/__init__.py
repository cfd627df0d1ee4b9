"""Remote backend package."""

from finsync.services.remote.interface import (
    RemoteAuthError,
    RemoteBackend,
    RemoteConnectionError,
    RemoteError,
)
from finsync.services.remote.memory import InMemoryRemoteBackend
from finsync.services.remote.rest import RestRemoteBackend

__all__ = [
    "InMemoryRemoteBackend",
    "RemoteAuthError",
    "RemoteBackend",
    "RemoteConnectionError",
    "RemoteError",
    "RestRemoteBackend",
]
