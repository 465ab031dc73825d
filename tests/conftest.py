"""Shared fixtures: fake clock, fake Airtable HTTP session, databases and adapters."""

import json as jsonlib
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

import pytest

from fleetsync.connectors.base import AdapterCapability, TableAdapter
from fleetsync.database.connection import DatabaseManager
from fleetsync.integrations.airtable.client import AirtableClient, format_remote_timestamp
from fleetsync.integrations.airtable.rate_limiter import RateLimiter
from fleetsync.integrations.airtable.retry import RetryPolicy
from fleetsync.models.sync import DomainRecord


class FakeClock:
    """Monotonic clock whose sleep advances time instead of blocking."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self.text = jsonlib.dumps(body) if body is not None else ""

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


class Call:
    def __init__(self, method: str, url: str, params: Optional[Dict[str, Any]], json: Optional[Dict[str, Any]]):
        self.method = method
        self.url = url
        self.params = params
        self.json = json

    @property
    def collection(self) -> str:
        return unquote(self.url.rsplit("/", 1)[-1])


class FakeAirtableSession:
    """Stands in for ``requests.Session`` and behaves like a small Airtable base.

    Scripted responses (or exceptions) queued with :meth:`queue` are returned
    first; once the queue is empty, requests are served from in-memory tables.
    """

    def __init__(self):
        self.headers: Dict[str, str] = {}
        self.calls: List[Call] = []
        self.scripted: List[Any] = []
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.created_time = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        self._counter = 0

    def queue(self, *responses: Any) -> None:
        self.scripted.extend(responses)

    def calls_for(self, method: str) -> List[Call]:
        return [call for call in self.calls if call.method == method]

    def request(self, method, url, params=None, json=None, timeout=None):
        call = Call(method, url, params, jsonlib.loads(jsonlib.dumps(json)) if json is not None else None)
        self.calls.append(call)

        if self.scripted:
            scripted = self.scripted.pop(0)
            if isinstance(scripted, Exception):
                raise scripted
            return scripted

        table = self.tables.setdefault(call.collection, [])
        if method == "POST":
            created = []
            for record in call.json["records"]:
                self._counter += 1
                stored = {
                    "id": f"rec{self._counter:014d}",
                    "fields": dict(record["fields"]),
                    "createdTime": format_remote_timestamp(self.created_time + timedelta(seconds=self._counter)),
                }
                table.append(stored)
                created.append(stored)
            return FakeResponse(200, {"records": created})
        if method == "PATCH":
            updated = []
            by_id = {stored["id"]: stored for stored in table}
            for record in call.json["records"]:
                stored = by_id.get(record["id"])
                if stored is None:
                    return FakeResponse(404, {"error": {"type": "NOT_FOUND", "message": record["id"]}})
                stored["fields"].update(record["fields"])
                updated.append(stored)
            return FakeResponse(200, {"records": updated})
        if method == "GET":
            return FakeResponse(200, {"records": list(table)})
        return FakeResponse(405, {"error": {"type": "METHOD_NOT_ALLOWED"}})


class InMemoryAdapter(TableAdapter):
    """Adapter over a list of dict rows, with full capabilities."""

    def __init__(self, table_name: str, rows: Optional[List[DomainRecord]] = None, **kwargs):
        self.table_name = table_name
        super().__init__(**kwargs)
        self.rows: List[DomainRecord] = rows or []
        self.backfills: List[tuple] = []
        self.upserts: List[tuple] = []
        self.on_list = None

    def get_capabilities(self) -> AdapterCapability:
        return AdapterCapability(can_list_modified=True, can_backfill_remote_id=True,
                                 can_upsert_from_remote=True)

    def _list_modified(self, since: datetime, force: bool) -> List[DomainRecord]:
        if self.on_list is not None:
            self.on_list()
        if force:
            return [dict(row) for row in self.rows]
        return [dict(row) for row in self.rows if row["updated_at"] > since]

    def _backfill_remote_id(self, local_id: Any, remote_id: str) -> None:
        self.backfills.append((local_id, remote_id))
        for row in self.rows:
            if row["id"] == local_id:
                row["remote_id"] = remote_id

    def _upsert_from_remote(self, remote_id: str, fields: Dict[str, Any]) -> None:
        self.upserts.append((remote_id, fields))
        for row in self.rows:
            if row.get("remote_id") == remote_id:
                row.update(fields)
                return
        self.rows.append({"id": len(self.rows) + 1, "remote_id": remote_id, **fields})

    def find_by_remote_id(self, remote_id: str) -> Optional[DomainRecord]:
        for row in self.rows:
            if row.get("remote_id") == remote_id:
                return dict(row)
        return None

    def count(self) -> int:
        return len(self.rows)


def make_client(session: FakeAirtableSession, clock: Optional[FakeClock] = None,
                max_attempts: int = 3, base_delay: float = 1.0) -> AirtableClient:
    clock = clock or FakeClock()
    return AirtableClient(
        api_key="pat-test",
        base_id="appTEST",
        rate_limiter=RateLimiter(min_interval=0.25, clock=clock, sleep=clock.sleep),
        retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay=base_delay, sleep=clock.sleep),
        session=session,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session() -> FakeAirtableSession:
    return FakeAirtableSession()


@pytest.fixture
def client(session, clock) -> AirtableClient:
    return make_client(session, clock)


@pytest.fixture
def database():
    db = DatabaseManager("sqlite://")
    db.create_all()
    yield db
    db.close()
