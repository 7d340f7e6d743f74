"""Shared offline fixtures: an in-memory Supabase stand-in and a TestClient.

Nothing here talks to the network. The fake applies eq/neq/gte/in_ filters,
ordering, limits and the ``questions(*)`` embed, which is all the store uses.
"""
import os
import sys
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

# ── Ensure backend/ is importable when pytest runs from project root ──────────
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# ── Fake env vars BEFORE importing any settings-dependent modules ─────────────
os.environ.setdefault("SUPABASE_URL", "https://fake.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "fake-service-key")
os.environ.setdefault("OPENAI_API_KEY", "sk-fake-key-for-tests")

import pytest

# child table -> foreign key column pointing at the parent row
_EMBEDS = {"questions": "worksheet_id", "worksheets": "student_id"}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _FakeResult:
    def __init__(self, data):
        self.data = data


class _FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._op = "select"
        self._columns = "*"
        self._payload = None
        self._filters = []
        self._order = None
        self._limit = None

    # ── operations ────────────────────────────────────────────────────────
    def select(self, columns="*", **kw):
        self._op, self._columns = "select", columns
        return self

    def insert(self, rows, **kw):
        self._op, self._payload = "insert", rows
        return self

    def update(self, fields, **kw):
        self._op, self._payload = "update", fields
        return self

    def upsert(self, rows, **kw):
        self._op, self._payload = "upsert", rows
        return self

    def delete(self, **kw):
        self._op = "delete"
        return self

    # ── filters / modifiers ───────────────────────────────────────────────
    def eq(self, col, value):
        self._filters.append(lambda r: r.get(col) == value)
        return self

    def neq(self, col, value):
        self._filters.append(lambda r: r.get(col) != value)
        return self

    def gte(self, col, value):
        self._filters.append(lambda r: r.get(col) is not None and str(r.get(col)) >= str(value))
        return self

    def in_(self, col, values):
        self._filters.append(lambda r: r.get(col) in values)
        return self

    def order(self, col, desc=False):
        self._order = (col, desc)
        return self

    def limit(self, n):
        self._limit = n
        return self

    # ── execution ─────────────────────────────────────────────────────────
    def _rows(self):
        return self._db.tables.setdefault(self._table, [])

    def _matching(self):
        return [r for r in self._rows() if all(f(r) for f in self._filters)]

    def _project(self, row):
        parts = [p.strip() for p in self._columns.split(",")]
        out = dict(row) if "*" in parts else {}
        for part in parts:
            if part.endswith("(*)"):
                child = part[:-3]
                fk = _EMBEDS[child]
                out[child] = [dict(c) for c in self._db.tables.get(child, []) if c.get(fk) == row["id"]]
            elif part != "*":
                out[part] = row.get(part)
        return out

    def _new_row(self, row):
        row = dict(row)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", now_iso())
        self._rows().append(row)
        return dict(row)

    def execute(self):
        if self._op == "insert":
            rows = self._payload if isinstance(self._payload, list) else [self._payload]
            return _FakeResult([self._new_row(r) for r in rows])

        if self._op == "upsert":
            out = []
            for r in self._payload if isinstance(self._payload, list) else [self._payload]:
                existing = next((x for x in self._rows() if r.get("id") and x["id"] == r["id"]), None)
                if existing is None:
                    out.append(self._new_row(r))
                else:
                    existing.update(r)
                    out.append(dict(existing))
            return _FakeResult(out)

        if self._op == "update":
            matched = self._matching()
            for r in matched:
                r.update(self._payload)
            return _FakeResult([dict(r) for r in matched])

        if self._op == "delete":
            matched = self._matching()
            ids = {r["id"] for r in matched}
            self._db.tables[self._table] = [r for r in self._rows() if r["id"] not in ids]
            if self._table == "worksheets":
                self._db.tables["questions"] = [
                    q for q in self._db.tables.get("questions", []) if q["worksheet_id"] not in ids
                ]
            return _FakeResult([dict(r) for r in matched])

        rows = self._matching()
        if self._order:
            col, desc = self._order
            rows = sorted(rows, key=lambda r: str(r.get(col) or ""), reverse=desc)
        if self._limit is not None:
            rows = rows[: self._limit]
        return _FakeResult([self._project(r) for r in rows])


class _FakeAdmin:
    def __init__(self, auth: "_FakeAuth"):
        self._auth = auth
        self.updated: dict[str, dict] = {}
        self.deleted: list[str] = []

    def create_user(self, attrs):
        user = SimpleNamespace(
            id=str(uuid.uuid4()),
            email=attrs["email"],
            user_metadata=attrs.get("user_metadata", {}),
        )
        self._auth.users[user.id] = user
        return SimpleNamespace(user=user)

    def update_user_by_id(self, uid, attrs):
        self.updated.setdefault(uid, {}).update(attrs)
        return SimpleNamespace(user=self._auth.users.get(uid))

    def delete_user(self, uid):
        self.deleted.append(uid)
        self._auth.users.pop(uid, None)


class _FakeAuth:
    def __init__(self):
        self.users: dict[str, SimpleNamespace] = {}
        self.tokens: dict[str, str] = {}
        self.admin = _FakeAdmin(self)

    def get_user(self, token):
        uid = self.tokens.get(token)
        if uid is None:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=self.users[uid])


class FakeSupabase:
    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.auth = _FakeAuth()

    def table(self, name: str) -> _FakeQuery:
        return _FakeQuery(self, name)

    # ── seeding helpers ───────────────────────────────────────────────────
    def add_user(self, role: str, token: str, user_id: str | None = None, email: str = "") -> str:
        user_id = user_id or str(uuid.uuid4())
        self.auth.users[user_id] = SimpleNamespace(
            id=user_id, email=email or f"{user_id}@example.com", user_metadata={"role": role},
        )
        self.auth.tokens[token] = user_id
        return user_id

    def add_row(self, table: str, **row) -> dict:
        return _FakeQuery(self, table)._new_row(row)


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def fake_sb():
    return FakeSupabase()


@pytest.fixture
def client(fake_sb):
    from fastapi.testclient import TestClient
    from thinkdrills.core.deps import get_supabase_client
    from thinkdrills.main import app

    app.dependency_overrides[get_supabase_client] = lambda: fake_sb
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
