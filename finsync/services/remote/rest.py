"""
REST Remote Backend

Talks to a PostgREST-style HTTP API (one table per entity kind) through
a single requests.Session.

ROW FORMAT: the API stores snake_case columns plus a user_id column; the
app works with camelCase records. Conversion happens here and nowhere
else. Transactions and assets keep createdAt as epoch milliseconds
locally but as a timestamp remotely.

SCOPING: every request is filtered by the configured user id. Without a
user id, writes return False and reads raise RemoteAuthError.

RETRIES: connection errors, timeouts and 5xx responses are retried with
exponential backoff (tenacity). Everything else fails immediately.
HTTP calls block, so each public coroutine runs its request in a worker
thread.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional

import requests
import structlog
from pydantic.alias_generators import to_camel, to_snake
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finsync.models.entities import EntityKind
from finsync.services.remote.interface import (
    RemoteAuthError,
    RemoteBackend,
    RemoteConnectionError,
    RemoteError,
)


logger = structlog.get_logger(__name__)

TABLES = {
    EntityKind.TRANSACTIONS: "transactions",
    EntityKind.CATEGORIES: "categories",
    EntityKind.GOALS: "goals",
    EntityKind.ASSETS: "assets",
    EntityKind.RECURRING_TRANSACTIONS: "recurring_transactions",
    EntityKind.PROFILE: "profiles",
}

# Kinds whose local createdAt is epoch milliseconds
EPOCH_MS_KINDS = frozenset({EntityKind.TRANSACTIONS, EntityKind.ASSETS})

UPSERT_PREFER = "resolution=merge-duplicates,return=minimal"

# Upper bound of a single backoff sleep between attempts
MAX_BACKOFF_SECONDS = 5


def _ms_to_iso(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()
    return value


def _iso_to_ms(value: Any) -> Any:
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    return value


def record_to_row(entity_kind: EntityKind, record: dict[str, Any], user_id: str) -> dict[str, Any]:
    """camelCase record -> snake_case row owned by user_id."""
    row = {to_snake(key): value for key, value in record.items()}
    if entity_kind is EntityKind.PROFILE:
        row["id"] = user_id
    else:
        row["user_id"] = user_id
        if entity_kind in EPOCH_MS_KINDS and "created_at" in row:
            row["created_at"] = _ms_to_iso(row["created_at"])
    return row


def row_to_record(entity_kind: EntityKind, row: dict[str, Any]) -> dict[str, Any]:
    """snake_case row -> camelCase record; nulls and ownership columns are dropped."""
    record = {
        to_camel(key): value
        for key, value in row.items()
        if value is not None and key != "user_id"
    }
    if entity_kind is EntityKind.PROFILE:
        record.pop("id", None)
        record.setdefault("name", "")
    elif entity_kind in EPOCH_MS_KINDS and "createdAt" in record:
        record["createdAt"] = _iso_to_ms(record["createdAt"])
    return record


class RestRemoteBackend(RemoteBackend):
    """RemoteBackend over a PostgREST-style HTTP API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        backoff_multiplier: float = 0.5,
        session: Optional[requests.Session] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self.user_id = user_id
        self._timeout = timeout_seconds
        self._max_attempts = max_attempts
        self._backoff = backoff_multiplier
        self._session = session or requests.Session()
        self._session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        if api_key:
            self._session.headers.update({
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
            })

    @property
    def call_budget_seconds(self) -> float:
        """Every attempt at the request timeout plus the backoff sleeps between them."""
        sleeps = sum(
            min(self._backoff * 2 ** attempt, MAX_BACKOFF_SECONDS)
            for attempt in range(self._max_attempts - 1)
        )
        return self._timeout * self._max_attempts + sleeps

    # -------------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------------

    def _send(
        self,
        method: str,
        table: str,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> requests.Response:
        url = f"{self._base_url}/{table}"
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                timeout=self._timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RemoteConnectionError(f"{method} {table} failed: {e}") from e

        if response.status_code in (401, 403):
            raise RemoteAuthError(f"{method} {table} rejected: HTTP {response.status_code}")
        if response.status_code >= 500:
            raise RemoteConnectionError(f"{method} {table} failed: HTTP {response.status_code}")
        if response.status_code >= 400:
            raise RemoteError(f"{method} {table} failed: HTTP {response.status_code} {response.text}")
        return response

    def _request(self, method: str, table: str, **kwargs: Any) -> requests.Response:
        retryer = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff, max=MAX_BACKOFF_SECONDS),
            retry=retry_if_exception_type(RemoteConnectionError),
            reraise=True,
        )
        return retryer(self._send, method, table, **kwargs)

    def _require_user(self) -> str:
        if not self.user_id:
            raise RemoteAuthError("No authenticated user")
        return self.user_id

    @staticmethod
    def _rows(response: requests.Response) -> list[dict[str, Any]]:
        try:
            rows = response.json()
        except ValueError as e:
            raise RemoteError(f"Malformed response body: {e}") from e
        if not isinstance(rows, list):
            raise RemoteError("Expected a JSON array of rows")
        return [row for row in rows if isinstance(row, dict)]

    # -------------------------------------------------------------------------
    # Blocking operations
    # -------------------------------------------------------------------------

    def _fetch_collection_sync(self, entity_kind: EntityKind) -> list[dict[str, Any]]:
        user_id = self._require_user()
        response = self._request(
            "GET",
            TABLES[entity_kind],
            params={"select": "*", "user_id": f"eq.{user_id}"},
        )
        return [row_to_record(entity_kind, row) for row in self._rows(response)]

    def _fetch_profile_sync(self) -> Optional[dict[str, Any]]:
        user_id = self._require_user()
        response = self._request(
            "GET",
            TABLES[EntityKind.PROFILE],
            params={"select": "*", "id": f"eq.{user_id}"},
        )
        rows = self._rows(response)
        if not rows:
            return None
        return row_to_record(EntityKind.PROFILE, rows[0])

    def _write_sync(self, entity_kind: EntityKind, record: dict[str, Any]) -> bool:
        if not self.user_id:
            logger.warning("remote_write_without_user", entity_kind=entity_kind.value)
            return False
        try:
            self._request(
                "POST",
                TABLES[entity_kind],
                params={"on_conflict": "id"},
                json=[record_to_row(entity_kind, record, self.user_id)],
                headers={"Prefer": UPSERT_PREFER},
            )
        except RemoteError as e:
            logger.warning("remote_upsert_failed", entity_kind=entity_kind.value, error=str(e))
            return False
        return True

    def _delete_sync(self, entity_kind: EntityKind, record_id: str) -> bool:
        if not self.user_id:
            logger.warning("remote_write_without_user", entity_kind=entity_kind.value)
            return False
        try:
            self._request(
                "DELETE",
                TABLES[entity_kind],
                params={"id": f"eq.{record_id}", "user_id": f"eq.{self.user_id}"},
            )
        except RemoteError as e:
            logger.warning("remote_delete_failed", entity_kind=entity_kind.value, error=str(e))
            return False
        return True

    # -------------------------------------------------------------------------
    # RemoteBackend
    # -------------------------------------------------------------------------

    async def fetch_collection(self, entity_kind: EntityKind) -> list[dict[str, Any]]:
        entity_kind = EntityKind(entity_kind)
        if entity_kind is EntityKind.PROFILE:
            raise ValueError("Use fetch_profile() for the profile")
        return await asyncio.to_thread(self._fetch_collection_sync, entity_kind)

    async def fetch_profile(self) -> Optional[dict[str, Any]]:
        return await asyncio.to_thread(self._fetch_profile_sync)

    async def upsert(self, entity_kind: EntityKind, record: dict[str, Any]) -> bool:
        return await asyncio.to_thread(self._write_sync, EntityKind(entity_kind), record)

    async def delete(self, entity_kind: EntityKind, record_id: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, EntityKind(entity_kind), record_id)

    async def save_profile(self, profile: dict[str, Any]) -> bool:
        return await asyncio.to_thread(self._write_sync, EntityKind.PROFILE, profile)

    def close(self) -> None:
        self._session.close()
