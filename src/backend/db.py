# src/backend/db.py
from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional
from urllib.parse import urlparse, unquote

import pymysql
from dotenv import load_dotenv

# Load .env if present (local/dev). Hosted deployments inject the variables directly.
load_dotenv()

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Optional SQL echo (DB_ECHO=1): SQL text, parameters and elapsed time.
# -----------------------------------------------------------------------------
_DB_ECHO = bool(int(os.getenv("DB_ECHO", "0")))
_echo_logger = logging.getLogger("pymysql.echo")


class EchoCursor(pymysql.cursors.DictCursor):
    """DictCursor that logs every statement when DB_ECHO=1."""

    def execute(self, query, args=None):
        _echo_logger.debug("SQL: %s", query)
        if args:
            _echo_logger.debug("ARGS: %r", args)
        start = time.perf_counter()
        try:
            return super().execute(query, args)
        finally:
            _echo_logger.debug("TIME: %.2f ms", (time.perf_counter() - start) * 1000.0)


# -----------------------------------------------------------------------------
# Settings resolution
# -----------------------------------------------------------------------------
def parse_mysql_url(url: str) -> Dict[str, Any]:
    """
    Split a MySQL URL into host/user/password/database/port.
    Accepts mysql://, mysql+pymysql:// or a bare user:pass@host/db.
    """
    raw = (url or "").strip()
    if not raw:
        raise ValueError("MYSQL_URL is empty")
    if raw.startswith("mysql+pymysql://"):
        raw = raw.replace("mysql+pymysql://", "mysql://", 1)
    parsed = urlparse(raw if "://" in raw else "mysql://" + raw)

    try:
        port = int(parsed.port) if parsed.port is not None else 3306
    except ValueError:
        port = 3306

    return {
        "host": parsed.hostname or "localhost",
        "user": unquote(parsed.username or "") or None,
        "password": unquote(parsed.password or "") or None,
        "database": parsed.path[1:] if parsed.path and len(parsed.path) > 1 else None,
        "port": port,
    }


def _env_int(name: str) -> Optional[int]:
    val = os.getenv(name)
    try:
        return int(val) if val is not None else None
    except ValueError:
        return None


def connection_settings() -> Dict[str, Any]:
    """
    Resolve connection parameters.

    Order of precedence (same as migrations/env.py):
      1) MYSQL_URL
      2) MYSQLUSER / MYSQLPASSWORD / MYSQLHOST / MYSQLPORT / MYSQLDATABASE
      3) DB_USER / DB_PASSWORD / DB_HOST / DB_PORT / DB_NAME
    """
    mysql_url = os.getenv("MYSQL_URL")
    if mysql_url:
        params = parse_mysql_url(mysql_url)
        if not params.get("database"):
            raise ValueError("MYSQL_URL must include a database name in the path")
    else:
        try:
            port = int(os.getenv("MYSQLPORT") or os.getenv("DB_PORT") or "3306")
        except ValueError:
            port = 3306
        params = {
            "user": os.getenv("MYSQLUSER") or os.getenv("DB_USER"),
            "password": os.getenv("MYSQLPASSWORD") or os.getenv("DB_PASSWORD"),
            "host": os.getenv("MYSQLHOST") or os.getenv("DB_HOST", "localhost"),
            "database": os.getenv("MYSQLDATABASE") or os.getenv("DB_NAME", "pumptrack"),
            "port": port,
        }

    if not params.get("user") or not params.get("password"):
        raise ValueError(
            "Database credentials not set. Provide either MYSQL_URL or "
            "MYSQL* / DB_* environment variables (user and password are required)."
        )
    return params


def _connect_kwargs(params: Dict[str, Any]) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        "host": params["host"],
        "user": params["user"],
        "password": params["password"],
        "database": params.get("database") or "",
        "port": params["port"],
        "charset": os.getenv("DB_CHARSET", "utf8mb4"),
        "autocommit": bool(int(os.getenv("DB_AUTOCOMMIT", "0"))),
        "cursorclass": EchoCursor if _DB_ECHO else pymysql.cursors.DictCursor,
    }
    for env_name, key in (
        ("DB_CONNECT_TIMEOUT", "connect_timeout"),
        ("DB_READ_TIMEOUT", "read_timeout"),
        ("DB_WRITE_TIMEOUT", "write_timeout"),
    ):
        val = _env_int(env_name)
        if val is not None:
            kwargs[key] = val

    ssl_ca = os.getenv("MYSQL_SSL_CA")
    if ssl_ca:
        kwargs["ssl"] = {"ca": ssl_ca}
    return kwargs


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------
def get_conn():
    """Return a new PyMySQL connection (DictCursor rows)."""
    if _DB_ECHO and _echo_logger.level == logging.NOTSET:
        _echo_logger.setLevel(logging.DEBUG)
    return pymysql.connect(**_connect_kwargs(connection_settings()))


@contextmanager
def connection() -> Iterator[Any]:
    """Connection that commits on success, rolls back on error and always closes."""
    conn = get_conn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def ping() -> None:
    """Raise if the database is unreachable."""
    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()
    finally:
        conn.close()


if __name__ == "__main__":
    try:
        ping()
        print("DB OK")
    except Exception as e:
        print("DB ERROR:", type(e).__name__, str(e))
        raise
