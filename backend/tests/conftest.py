"""Shared fixtures: fake clock, fresh limiter state, in-memory PostgREST stand-in."""
import copy
import uuid
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from compliancekit.login_guard import LoginGuard
from compliancekit.main import app
from compliancekit.rate_limit import RequestThrottle

ROUTE_MODULES = (
    "compliancekit.routes.auth",
    "compliancekit.routes.consents",
    "compliancekit.routes.widget",
    "compliancekit.routes.dsar_public",
    "compliancekit.routes.dsar",
)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def _matches(row: dict, filters: dict | None) -> bool:
    for column, expr in (filters or {}).items():
        op, _, value = expr.partition(".")
        if op == "eq":
            if str(row.get(column)) != value:
                return False
        elif op == "in":
            if str(row.get(column)) not in value.strip("()").split(","):
                return False
        else:
            raise NotImplementedError(op)
    return True


class FakeDB:
    """Just enough of the PostgREST helper for route tests."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}

    def rows(self, table: str) -> list[dict]:
        return self.tables.setdefault(table, [])

    async def select(self, table, columns="*", filters=None, order=None, limit=None, offset=None):
        rows = [copy.deepcopy(r) for r in self.rows(table) if _matches(r, filters)]
        return rows[:limit] if limit else rows

    async def select_one(self, table, filters, columns="*"):
        rows = await self.select(table, filters=filters, limit=1)
        return rows[0] if rows else None

    async def insert(self, table, data):
        items = data if isinstance(data, list) else [data]
        created = []
        for item in items:
            row = {"id": str(uuid.uuid4()), **item}
            self.rows(table).append(row)
            created.append(copy.deepcopy(row))
        return created

    async def update(self, table, data, filters):
        updated = []
        for row in self.rows(table):
            if _matches(row, filters):
                row.update(data)
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table, filters):
        kept = [r for r in self.rows(table) if not _matches(r, filters)]
        removed = [r for r in self.rows(table) if _matches(r, filters)]
        self.tables[table] = kept
        return removed

    async def count(self, table, filters=None):
        return len([r for r in self.rows(table) if _matches(r, filters)])


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_db():
    db = FakeDB()
    patches = [patch(f"{module}.get_db", return_value=db) for module in ROUTE_MODULES]
    for p in patches:
        p.start()
    yield db
    for p in patches:
        p.stop()


@pytest.fixture
def client(fake_db, clock):
    app.state.throttle = RequestThrottle(clock=clock)
    app.state.login_guard = LoginGuard(clock=clock)
    return TestClient(app)
