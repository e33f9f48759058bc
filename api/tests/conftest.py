"""Shared test fixtures."""

import os
import re


os.environ.setdefault("ENVIRONMENT", "testing")

from collections.abc import Callable  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import Any  # noqa: E402
from unittest.mock import AsyncMock, Mock  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
from cassandra.cluster import Session  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from hakgyo.auth.permissions import UserRole  # noqa: E402
from hakgyo.auth.schemas import UserResponse  # noqa: E402
from hakgyo.auth.security import create_access_token  # noqa: E402
from hakgyo.main import create_app  # noqa: E402


@pytest.fixture
def app() -> FastAPI:
    """Application without lifespan: no Cassandra, no Redis, no services."""
    return create_app()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Test client that does not run the lifespan."""
    return TestClient(app)


@pytest.fixture
def murid() -> UserResponse:
    """A learner."""
    return UserResponse(id=uuid4(), email="murid@example.com", role=UserRole.MURID)


@pytest.fixture
def guru() -> UserResponse:
    """A teacher."""
    return UserResponse(id=uuid4(), email="guru@example.com", role=UserRole.GURU)


@pytest.fixture
def admin() -> UserResponse:
    """An administrator."""
    return UserResponse(id=uuid4(), email="admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def auth_headers() -> Callable[[UserResponse], dict[str, str]]:
    """Build Authorization headers for a user."""

    def _headers(user: UserResponse) -> dict[str, str]:
        token = create_access_token(
            {"sub": str(user.id), "email": user.email, "role": user.role.value}
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


class FakeResult(list):
    """Stand-in for a driver ResultSet: iterable rows, ``one()``, ``was_applied``."""

    def __init__(self, rows=(), was_applied: bool = True):
        super().__init__(rows)
        self.was_applied = was_applied

    def one(self) -> Any:
        return self[0] if self else None


@pytest.fixture
def make_session() -> Callable[[Callable[[str, list], Any]], Mock]:
    """Build a mocked Cassandra session driven by ``handler(cql, params)``.

    Prepared statements are the CQL text with whitespace collapsed. The
    handler returns a list of rows, a bool (``was_applied`` of a conditional
    write) or None.
    """

    def _make(handler: Callable[[str, list], Any]) -> Mock:
        session = Mock(spec=Session)
        session.prepare = Mock(side_effect=lambda cql: " ".join(cql.split()))

        async def aexecute(statement: str, params: list | None = None) -> FakeResult:
            outcome = handler(statement, list(params or []))
            if isinstance(outcome, bool):
                return FakeResult(was_applied=outcome)
            return FakeResult(outcome or [])

        session.aexecute = AsyncMock(side_effect=aexecute)
        return session

    return _make


def executed(session: Mock, fragment: str) -> list[list]:
    """Params of every executed statement containing ``fragment``."""
    return [
        list(call.args[1]) if len(call.args) > 1 else []
        for call in session.aexecute.await_args_list
        if fragment in call.args[0]
    ]


@pytest.fixture
def statements_executed() -> Callable[[Mock, str], list[list]]:
    """Look up executed statements on a mocked session."""
    return executed


# ==============================================================================
# In-memory Cassandra
# ==============================================================================

PRIMARY_KEYS = {
    "kelas": ("id",),
    "kelas_members": ("kelas_id", "user_id"),
    "kelas_by_member": ("user_id", "kelas_id"),
    "materi": ("id",),
    "materi_by_kelas": ("kelas_id", "position", "materi_id"),
    "materi_completions": ("user_id", "kelas_id", "materi_id"),
    "materi_assessments": ("user_id", "kelas_id", "materi_id"),
    "user_game_stats": ("user_id",),
    "activity_log_by_user": ("user_id", "created_at", "activity_id"),
}

_SELECT = re.compile(
    r"SELECT .+? FROM \w+\.(\w+)(?: WHERE (.+?))?"
    r"(?: ORDER BY (\w+) (ASC|DESC))?(?: LIMIT (\?|\d+))?$"
)
_INSERT = re.compile(
    r"INSERT INTO \w+\.(\w+) \((.+?)\) VALUES \(.+?\)( IF NOT EXISTS)?$"
)
_UPDATE = re.compile(r"UPDATE \w+\.(\w+) SET (.+?) WHERE (.+?)(?: IF (.+))?$")
_DELETE = re.compile(r"DELETE FROM \w+\.(\w+) WHERE (.+)$")


def _literal(token: str, params: list) -> Any:
    if token == "?":
        return params.pop(0)
    return {"true": True, "false": False}[token]


def _conditions(clause: str | None, params: list) -> list[tuple[str, str, Any]]:
    conditions = []
    for part in clause.split(" AND ") if clause else []:
        column, operator, token = part.split(" ", 2)
        conditions.append((column, operator, _literal(token, params)))
    return conditions


def _matches(row: Any, conditions: list[tuple[str, str, Any]]) -> bool:
    for column, operator, value in conditions:
        actual = getattr(row, column)
        if operator == "IN" and actual not in value:
            return False
        if operator == "=" and actual != value:
            return False
    return True


class FakeCassandra:
    """Executes the statements the services prepare against dicts.

    Understands single-table SELECT/INSERT/UPDATE/DELETE with ``=``/``IN``
    conditions, ORDER BY, LIMIT and the two conditional write forms.
    """

    def __init__(self):
        self.tables: dict[str, dict[tuple, SimpleNamespace]] = {
            table: {} for table in PRIMARY_KEYS
        }

    def rows(self, table: str) -> list[SimpleNamespace]:
        return list(self.tables[table].values())

    def put(self, table: str, **columns: Any) -> SimpleNamespace:
        row = SimpleNamespace(**columns)
        key = tuple(getattr(row, c) for c in PRIMARY_KEYS[table])
        self.tables[table][key] = row
        return row

    def execute(self, cql: str, params: list) -> Any:
        params = list(params)
        if match := _SELECT.match(cql):
            return self._select(match, params)
        if match := _INSERT.match(cql):
            return self._insert(match, params)
        if match := _UPDATE.match(cql):
            return self._update(match, params)
        if match := _DELETE.match(cql):
            return self._delete(match, params)
        msg = f"unsupported statement: {cql}"
        raise AssertionError(msg)

    def _select(self, match: re.Match, params: list) -> list:
        table, where, order_by, direction, limit = match.groups()
        conditions = _conditions(where, params)
        rows = [r for r in self.rows(table) if _matches(r, conditions)]
        keys = PRIMARY_KEYS[table]
        rows.sort(key=lambda r: tuple(getattr(r, k) for k in keys[1:]))
        if order_by:
            rows.sort(key=lambda r: getattr(r, order_by), reverse=direction == "DESC")
        elif table == "activity_log_by_user":
            rows.sort(key=lambda r: r.created_at, reverse=True)
        if limit:
            rows = rows[: int(_literal(limit, params) if limit == "?" else limit)]
        return rows

    def _insert(self, match: re.Match, params: list) -> bool | None:
        table, columns, if_not_exists = match.groups()
        values = dict(zip(columns.split(", "), params, strict=True))
        key = tuple(values[c] for c in PRIMARY_KEYS[table])
        if if_not_exists:
            if key in self.tables[table]:
                return False
            self.put(table, **values)
            return True
        self.put(table, **values)
        return None

    def _update(self, match: re.Match, params: list) -> bool | None:
        table, assignments, where, condition = match.groups()
        changes = {}
        for part in assignments.split(", "):
            column, _, token = part.split(" ", 2)
            changes[column] = _literal(token, params)
        conditions = _conditions(where, params)
        key = tuple(value for _, _, value in conditions)
        row = self.tables[table].get(key)

        if condition:
            expected = _conditions(condition, params)
            if row is None or not _matches(row, expected):
                return False
            vars(row).update(changes)
            return True

        if row is None:
            self.put(table, **{c: v for c, _, v in conditions}, **changes)
        else:
            vars(row).update(changes)
        return None

    def _delete(self, match: re.Match, params: list) -> None:
        table, where = match.groups()
        conditions = _conditions(where, params)
        for key, row in list(self.tables[table].items()):
            if _matches(row, conditions):
                del self.tables[table][key]


@pytest.fixture
def fake_db() -> FakeCassandra:
    """Empty in-memory database."""
    return FakeCassandra()


@pytest.fixture
def db_session(fake_db: FakeCassandra, make_session) -> Mock:
    """Mocked session backed by ``fake_db``."""
    return make_session(fake_db.execute)
