"""
Shared fixtures
===============
- FakeSupabase: in-memory stand-in for the supabase-py client. Implements the
  slice of the postgrest builder the repositories use (select / eq / gte /
  in_ / order / limit / insert / update / upsert) so natural-key upserts and
  concurrent writes can be checked against real table contents.
- StubProvider: a WearableProvider that serves canned vendor payloads and
  counts refresh / revoke calls, for service tests that do not care about HTTP.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from collections import defaultdict
from typing import Any, Callable, Optional
from unittest.mock import MagicMock

import pytest

from artemis.config import Settings
from artemis.models.wearable import DataType, Provider, TokenSet
from artemis.services.providers.base import FetchWindow, WearableProvider


# ---------------------------------------------------------------------------
# Fake Supabase
# ---------------------------------------------------------------------------


class FakeResult:
    def __init__(self, data: list[dict]) -> None:
        self.data = data


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self._db = db
        self._table = table
        self._filters: list[Callable[[dict], bool]] = []
        self._op = "select"
        self._payload: Any = None
        self._on_conflict: Optional[str] = None
        self._order: Optional[tuple[str, bool]] = None
        self._limit: Optional[int] = None

    # ---- builders --------------------------------------------------------

    def select(self, *_columns: str, **_kwargs: Any) -> "FakeQuery":
        self._op = "select"
        return self

    def insert(self, rows: dict | list[dict]) -> "FakeQuery":
        self._op, self._payload = "insert", rows
        return self

    def update(self, values: dict) -> "FakeQuery":
        self._op, self._payload = "update", values
        return self

    def upsert(self, rows: dict | list[dict], on_conflict: str = "id") -> "FakeQuery":
        self._op, self._payload, self._on_conflict = "upsert", rows, on_conflict
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def gte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) is not None and row[column] >= value)
        return self

    def lte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) is not None and row[column] <= value)
        return self

    def in_(self, column: str, values: list) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    # ---- execution -------------------------------------------------------

    def _matches(self, row: dict) -> bool:
        return all(check(row) for check in self._filters)

    def execute(self) -> FakeResult:
        rows = self._db.tables[self._table]

        if self._op == "insert":
            inserted = [self._db._store(self._table, row) for row in _as_list(self._payload)]
            return FakeResult(copy.deepcopy(inserted))

        if self._op == "upsert":
            keys = [k.strip() for k in (self._on_conflict or "id").split(",")]
            written = []
            for row in _as_list(self._payload):
                existing = next((r for r in rows if all(r.get(k) == row.get(k) for k in keys)), None)
                if existing is not None:
                    existing.update(copy.deepcopy(row))
                    self._db.writes.append((self._table, copy.deepcopy(existing)))
                    written.append(existing)
                else:
                    written.append(self._db._store(self._table, row))
            return FakeResult(copy.deepcopy(written))

        if self._op == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    self._db.writes.append((self._table, copy.deepcopy(row)))
                    updated.append(row)
            return FakeResult(copy.deepcopy(updated))

        selected = [row for row in rows if self._matches(row)]
        if self._order:
            column, desc = self._order
            selected.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        if self._limit is not None:
            selected = selected[: self._limit]
        return FakeResult(copy.deepcopy(selected))


def _as_list(payload: dict | list[dict]) -> list[dict]:
    return payload if isinstance(payload, list) else [payload]


class FakeSupabase:
    def __init__(self) -> None:
        self.tables: defaultdict[str, list[dict]] = defaultdict(list)
        # Every committed write, in order: (table, row after write)
        self.writes: list[tuple[str, dict]] = []
        self.auth = MagicMock()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def _store(self, table: str, row: dict) -> dict:
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        self.tables[table].append(stored)
        self.writes.append((table, copy.deepcopy(stored)))
        return stored

    def seed(self, table: str, *rows: dict) -> None:
        for row in rows:
            self._store(table, row)

    def rows(self, table: str, **where: Any) -> list[dict]:
        return [r for r in self.tables[table] if all(r.get(k) == v for k, v in where.items())]

    def sign_in(self, user: dict) -> None:
        """Make any bearer token resolve to ``user`` and seed its profile row."""
        auth_response = MagicMock()
        auth_response.user.id = user["id"]
        self.auth.get_user.return_value = auth_response
        if not self.rows("users", id=user["id"]):
            self.seed("users", user)


# ---------------------------------------------------------------------------
# Stub provider
# ---------------------------------------------------------------------------


class StubProvider(WearableProvider):
    """Serves canned payloads per data type.

    ``payloads[data_type]`` is either a list of payloads returned on every
    call, or a list of such lists consumed one per call when
    ``sequential=True``. ``errors[data_type]`` is raised instead.
    """

    authorize_url = "https://provider.test/authorize"
    token_url = "https://provider.test/token"

    def __init__(
        self,
        provider: Provider,
        payloads: Optional[dict[DataType, list]] = None,
        errors: Optional[dict[DataType, Exception]] = None,
        sequential: bool = False,
    ) -> None:
        super().__init__("client-id", "client-secret", "https://app.test/callback")
        self.provider = provider
        self.payloads = payloads or {}
        self.errors = errors or {}
        self.sequential = sequential
        self.windows: list[tuple[DataType, FetchWindow]] = []
        self.refresh_calls = 0
        self.refresh_errors: list[Exception] = []
        self.refresh_result = TokenSet(access_token="new-access-token", refresh_token="new-refresh-token", expires_in=3600)
        self.revoked: list[str] = []
        self.revoke_error: Optional[Exception] = None

    async def refresh_token(self, refresh_token: str) -> TokenSet:
        self.refresh_calls += 1
        await asyncio.sleep(0)
        if self.refresh_errors:
            raise self.refresh_errors.pop(0)
        return self.refresh_result

    async def exchange_code(self, code: str) -> TokenSet:
        return self.refresh_result

    async def revoke_token(self, access_token: str) -> None:
        self.revoked.append(access_token)
        if self.revoke_error:
            raise self.revoke_error

    async def fetch_user_id(self, access_token: str) -> str:
        return f"{self.provider.value}-user-1"

    async def _serve(self, data_type: DataType, window: FetchWindow) -> list[dict]:
        self.windows.append((data_type, window))
        await asyncio.sleep(0)
        if data_type in self.errors:
            raise self.errors[data_type]
        served = self.payloads.get(data_type, [])
        if self.sequential:
            return served.pop(0) if served else []
        return list(served)

    async def fetch_recovery(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._serve(DataType.RECOVERY, window)

    async def fetch_sleep(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._serve(DataType.SLEEP, window)

    async def fetch_activity(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._serve(DataType.ACTIVITY, window)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="http://localhost:54321",
        supabase_service_key="test-service-key",
        whoop_client_id="whoop-id",
        whoop_client_secret="whoop-secret",
        oura_client_id="oura-id",
        oura_client_secret="oura-secret",
        fitbit_client_id="fitbit-id",
        fitbit_client_secret="fitbit-secret",
        fitbit_request_delay_ms=0,
        garmin_client_id="garmin-id",
        garmin_client_secret="garmin-secret",
        oauth_state_secret="test-state-secret",
        whoop_webhook_secret="",
        enable_background_sync=True,
    )


@pytest.fixture
def make_provider() -> Callable[..., StubProvider]:
    return StubProvider
