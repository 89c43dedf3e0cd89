# src/backend/tables.py
"""
Thin table gateway over the MySQL backend.

Every call opens its own connection and commits on success, so a bulk
submission that loops over rows gets one independent write per row.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pymysql

from src.backend import db

logger = logging.getLogger(__name__)

_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# MySQL ER_DUP_ENTRY
DUPLICATE_KEY_ERRNO = 1062


class BackendError(Exception):
    """A backend call failed; ``code`` is the MySQL error number when known."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def is_duplicate(self) -> bool:
        return self.code == DUPLICATE_KEY_ERRNO or "duplicate entry" in self.message.lower()

    @classmethod
    def from_driver(cls, exc: Exception) -> "BackendError":
        args = getattr(exc, "args", ()) or ()
        if len(args) >= 2 and isinstance(args[0], int):
            return cls(str(args[1]), code=args[0])
        return cls(str(exc))


def quote_ident(name: str) -> str:
    if not _IDENT.fullmatch(name or ""):
        raise ValueError(f"Invalid identifier: {name!r}")
    return f"`{name}`"


def _run(sql: str, args: Sequence[Any] = (), fetch: bool = False) -> Any:
    try:
        with db.connection() as conn:
            with conn.cursor() as cur:
                affected = cur.execute(sql, tuple(args))
                if fetch:
                    return list(cur.fetchall() or [])
                return cur.lastrowid if sql.lstrip().upper().startswith("INSERT") else affected
    except pymysql.MySQLError as e:
        raise BackendError.from_driver(e) from e
    except ValueError as e:
        # connection settings missing or malformed
        logger.error("database not configured: %s", e)
        raise BackendError(str(e)) from e


# -----------------------------------------------------------------------------
# Reads
# -----------------------------------------------------------------------------
def select_rows(
    table: str,
    columns: Optional[Iterable[str]] = None,
    where_in: Optional[Dict[str, Iterable[Any]]] = None,
    not_null: Optional[Iterable[str]] = None,
    order_by: Optional[str] = None,
) -> List[Dict[str, Any]]:
    cols = ", ".join(quote_ident(c) for c in columns) if columns else "*"
    clauses: List[str] = []
    args: List[Any] = []
    for col, values in (where_in or {}).items():
        vals = list(dict.fromkeys(values))
        if not vals:
            return []
        clauses.append(f"{quote_ident(col)} IN ({', '.join(['%s'] * len(vals))})")
        args.extend(vals)
    for col in not_null or ():
        clauses.append(f"{quote_ident(col)} IS NOT NULL")

    sql = f"SELECT {cols} FROM {quote_ident(table)}"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    if order_by:
        sql += f" ORDER BY {quote_ident(order_by)}"
    return _run(sql, args, fetch=True)


def find_one(table: str, column: str, value: Any) -> Optional[Dict[str, Any]]:
    rows = _run(
        f"SELECT * FROM {quote_ident(table)} WHERE {quote_ident(column)}=%s LIMIT 1",
        (value,),
        fetch=True,
    )
    return rows[0] if rows else None


def find_one_ci(table: str, column: str, value: str) -> Optional[Dict[str, Any]]:
    """Case-insensitive equality lookup (login names)."""
    rows = _run(
        f"SELECT * FROM {quote_ident(table)} WHERE LOWER({quote_ident(column)})=LOWER(%s) LIMIT 1",
        (value,),
        fetch=True,
    )
    return rows[0] if rows else None


# -----------------------------------------------------------------------------
# Writes
# -----------------------------------------------------------------------------
def update_rows(table: str, values: Dict[str, Any], key_column: str, key_value: Any) -> int:
    if not values:
        return 0
    sets = ", ".join(f"{quote_ident(k)}=%s" for k in values)
    sql = f"UPDATE {quote_ident(table)} SET {sets} WHERE {quote_ident(key_column)}=%s"
    return int(_run(sql, [*values.values(), key_value]) or 0)


def insert_row(table: str, values: Dict[str, Any]) -> Optional[int]:
    if not values:
        raise ValueError("insert_row needs at least one column")
    cols = ", ".join(quote_ident(k) for k in values)
    marks = ", ".join(["%s"] * len(values))
    return _run(f"INSERT INTO {quote_ident(table)} ({cols}) VALUES ({marks})", list(values.values()))


def delete_rows(table: str, key_column: str, key_value: Any) -> int:
    sql = f"DELETE FROM {quote_ident(table)} WHERE {quote_ident(key_column)}=%s"
    return int(_run(sql, (key_value,)) or 0)
