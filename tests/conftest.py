# tests/conftest.py
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional
import copy

import pytest
from starlette.testclient import TestClient

from src.backend import tables
from src.backend.tables import BackendError, DUPLICATE_KEY_ERRNO
from src.main import app
from src.services import config, security
from src.services.auth_service import TOKEN_COOKIE_NAME, create_access_token, identity_for


class FakeTables:
    """
    In-memory stand-in for src.backend.tables (same call signatures).
    ``unique`` maps table -> columns that reject duplicate values like a
    MySQL UNIQUE KEY (errno 1062).
    """

    def __init__(self, unique: Optional[Dict[str, List[str]]] = None) -> None:
        self.data: Dict[str, List[Dict[str, Any]]] = {}
        self.unique = unique or {}
        self.calls: List[tuple] = []
        self.fail_on: Dict[str, str] = {}

    # ---- seeding / inspection ----
    def seed(self, table: str, rows: Iterable[Dict[str, Any]]) -> None:
        for r in rows:
            self.insert_row(table, dict(r))
        self.calls.clear()

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.data.setdefault(table, [])

    def by(self, table: str, column: str, value: Any) -> Dict[str, Any]:
        return next(r for r in self.rows(table) if r.get(column) == value)

    def _check(self, table: str) -> None:
        if table in self.fail_on:
            raise BackendError(self.fail_on[table])

    def _check_unique(self, table: str, row: Dict[str, Any], skip_id: Any = None) -> None:
        for col in self.unique.get(table, []):
            value = row.get(col)
            if value is None:
                continue
            for other in self.rows(table):
                if other.get("id") != skip_id and other.get(col) == value:
                    raise BackendError(
                        f"Duplicate entry '{value}' for key '{table}.{col}'", code=DUPLICATE_KEY_ERRNO
                    )

    # ---- gateway API ----
    def select_rows(self, table, columns=None, where_in=None, not_null=None, order_by=None):
        self.calls.append(("select", table))
        self._check(table)
        out = []
        for r in self.rows(table):
            if any(r.get(c) not in list(v) for c, v in (where_in or {}).items()):
                continue
            if any(r.get(c) is None for c in (not_null or ())):
                continue
            out.append({c: r.get(c) for c in columns} if columns else copy.deepcopy(r))
        if order_by:
            out.sort(key=lambda x: (x.get(order_by) is None, x.get(order_by)))
        return out

    def find_one(self, table, column, value):
        self._check(table)
        for r in self.rows(table):
            if r.get(column) == value:
                return copy.deepcopy(r)
        return None

    def find_one_ci(self, table, column, value):
        self._check(table)
        for r in self.rows(table):
            if str(r.get(column) or "").lower() == str(value).lower():
                return copy.deepcopy(r)
        return None

    def update_rows(self, table, values, key_column, key_value):
        self.calls.append(("update", table, dict(values), key_column, key_value))
        self._check(table)
        n = 0
        for r in self.rows(table):
            if r.get(key_column) == key_value:
                self._check_unique(table, {**r, **values}, skip_id=r.get("id"))
                r.update(values)
                n += 1
        return n

    def insert_row(self, table, values):
        self.calls.append(("insert", table, dict(values)))
        self._check(table)
        self._check_unique(table, values)
        rows = self.rows(table)
        row = dict(values)
        row.setdefault("id", max([int(r.get("id") or 0) for r in rows] + [0]) + 1)
        rows.append(row)
        return row["id"]

    def delete_rows(self, table, key_column, key_value):
        self.calls.append(("delete", table, key_column, key_value))
        before = len(self.rows(table))
        self.data[table] = [r for r in self.rows(table) if r.get(key_column) != key_value]
        return before - len(self.data[table])

    def writes(self, table: Optional[str] = None) -> List[tuple]:
        return [c for c in self.calls if c[0] in ("update", "insert") and (table is None or c[1] == table)]


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    """Keep uploads, audit logs and rate-limit state out of the working tree."""
    monkeypatch.setattr(config, "STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setattr(config, "LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(config, "PUBLIC_BASE_URL", "http://files.test")
    monkeypatch.setattr(config, "RATE_LIMIT_DISABLED", False)
    monkeypatch.delenv("CSRF_DISABLED", raising=False)
    monkeypatch.delenv("TEST_MODE", raising=False)
    security.reset_all_limits()
    yield
    security.reset_all_limits()


@pytest.fixture
def fake_tables(monkeypatch) -> FakeTables:
    fake = FakeTables(unique={"users": ["user_id"]})
    for name in ("select_rows", "find_one", "find_one_ci", "update_rows", "insert_row", "delete_rows"):
        monkeypatch.setattr(tables, name, getattr(fake, name), raising=True)
    return fake


@pytest.fixture
def client(fake_tables):
    with TestClient(app) as c:
        c.fake = fake_tables
        yield c


def login_as(client: TestClient, role: str = "Admin", pages: Optional[List[str]] = None, user_id: str = "op1") -> str:
    """
    Sign in as ``user_id``: add (or refresh) its users row in the fake, put a
    signed access-token cookie on the client and return a CSRF token.
    Rows created here get ids from 901 up so they never clash with seeded users.
    """
    users = client.fake.rows("users")
    row = next((u for u in users if u.get("user_id") == user_id), None)
    if row is None:
        row = {"id": 901 + sum(1 for u in users if int(u.get("id") or 0) > 900), "user_id": user_id, "password_hash": "x"}
        users.append(row)
    row.update({
        "user_name": user_id.upper(),
        "role": role,
        "page_access": ",".join(pages or []),
        "status": "Active",
    })
    client.cookies.set(TOKEN_COOKIE_NAME, create_access_token(identity_for(row)))
    return client.get("/api/auth/csrf").json()["csrf_token"]


@pytest.fixture
def admin_client(client):
    client.csrf = login_as(client, "Admin")
    return client


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------
def portal_row(reg_id: str, **extra: Any) -> Dict[str, Any]:
    base = {
        "reg_id": reg_id,
        "serial_no": f"S-{reg_id}",
        "beneficiary_name": f"Beneficiary {reg_id}",
        "fathers_name": "Ram Lal",
        "village": "Rampur",
        "block": "Sadar",
        "district": "Sitapur",
        "pump_capacity": "3HP",
        "pump_source": "Borewell",
        "ip_name": "Rotomag",
    }
    base.update(extra)
    return base
