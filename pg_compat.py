"""PostgreSQL backend with the sqlite3 connection API.

database.get_db() hands out one of these wrappers when DATABASE is a
postgresql:// URL (a Supabase pooler string works), so the stores in
db_stores.py run the same SQL on both engines. Statements are written in
the SQLite dialect; translation covers the few places the two differ:

  ?                              -> %s
  INSERT OR IGNORE INTO t ...    -> INSERT INTO t ... ON CONFLICT DO NOTHING
  INSERT INTO t ...              -> ... RETURNING id   (feeds lastrowid)
  INTEGER PRIMARY KEY AUTOINCREMENT -> SERIAL PRIMARY KEY (DDL only)

INSERT ... ON CONFLICT (...) DO UPDATE is accepted by both as written.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import psycopg2
from psycopg2 import errors as pg_errors

logger = logging.getLogger(__name__)

# SQLSTATE class 23 = integrity constraint violation
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"
PG_CHECK_VIOLATION = "23514"

# Tables keyed by something other than a serial id
_NO_ID_TABLES = {"schema_version"}

_INSERT_OR_IGNORE = re.compile(r"INSERT\s+OR\s+IGNORE\s+INTO", re.IGNORECASE)
_INSERT_TABLE = re.compile(r"^\s*INSERT\s+(?:OR\s+IGNORE\s+)?INTO\s+(\w+)", re.IGNORECASE)

_DDL_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"(\w+)\s+INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT", re.IGNORECASE), r"\1 SERIAL PRIMARY KEY"),
    (re.compile(r"PRAGMA\s+\w+\s*=\s*\w+\s*;?", re.IGNORECASE), ""),
    (re.compile(r"--[^\n]*"), ""),
]

# Re-running the schema against an existing database raises these
_ALREADY_APPLIED = (pg_errors.DuplicateTable, pg_errors.DuplicateColumn, pg_errors.DuplicateObject)


class PgRow:
    """Row addressable by column name or position, like sqlite3.Row."""

    __slots__ = ("_index", "_values")

    def __init__(self, columns: list[str], values: tuple):
        self._index = {name: i for i, name in enumerate(columns)}
        self._values = tuple(values)

    def __getitem__(self, key: str | int) -> Any:
        if isinstance(key, int):
            return self._values[key]
        return self._values[self._index[key]]

    def __contains__(self, key: str) -> bool:
        return key in self._index

    def __iter__(self):
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def keys(self) -> list[str]:
        return list(self._index)

    def __repr__(self) -> str:
        return f"PgRow({dict(zip(self._index, self._values))})"


def _translate_sql(sql: str) -> str:
    """Rewrite one SQLite-dialect statement for PostgreSQL."""
    translated = sql.replace("?", "%s")
    if _INSERT_OR_IGNORE.search(translated):
        translated = _INSERT_OR_IGNORE.sub("INSERT INTO", translated)
        if "ON CONFLICT" not in translated.upper():
            translated = translated.rstrip().rstrip(";") + " ON CONFLICT DO NOTHING"
    return translated


def _translate_schema(sql: str) -> str:
    for pattern, replacement in _DDL_RULES:
        sql = pattern.sub(replacement, sql)
    return sql


def _wants_returning_id(sql: str) -> bool:
    match = _INSERT_TABLE.match(sql)
    if not match or "RETURNING" in sql.upper():
        return False
    return match.group(1).lower() not in _NO_ID_TABLES


class PgCursorWrapper:
    """psycopg2 cursor exposing lastrowid/rowcount/fetch* like sqlite3.Cursor."""

    def __init__(self, cursor):
        self._cursor = cursor
        self.lastrowid: int | None = None

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    @property
    def description(self):
        return self._cursor.description

    def execute(self, sql: str, params: tuple = ()) -> "PgCursorWrapper":
        translated = _translate_sql(sql)
        self.lastrowid = None
        if not _wants_returning_id(sql):
            self._cursor.execute(translated, params)
            return self
        self._cursor.execute(translated.rstrip().rstrip(";") + " RETURNING id", params)
        row = self._cursor.fetchone()
        self.lastrowid = row[0] if row else None
        return self

    def _wrap(self, rows: list[tuple]) -> list[PgRow]:
        columns = [desc[0] for desc in self._cursor.description]
        return [PgRow(columns, row) for row in rows]

    def fetchone(self) -> PgRow | None:
        if not self._cursor.description:
            return None
        row = self._cursor.fetchone()
        return self._wrap([row])[0] if row is not None else None

    def fetchall(self) -> list[PgRow]:
        if not self._cursor.description:
            return []
        return self._wrap(self._cursor.fetchall())

    def close(self) -> None:
        self._cursor.close()


class PgConnectionWrapper:
    """psycopg2 connection exposing execute/executescript/commit like sqlite3.Connection."""

    def __init__(self, conn):
        self._conn = conn
        self._conn.autocommit = False
        self.row_factory = None

    def cursor(self) -> PgCursorWrapper:
        return PgCursorWrapper(self._conn.cursor())

    def execute(self, sql: str, params: tuple = ()) -> PgCursorWrapper:
        return self.cursor().execute(sql, params)

    def executescript(self, sql: str) -> None:
        """Run DDL statement by statement, skipping objects that already exist."""
        statements = [s.strip() for s in _translate_schema(sql).split(";") if s.strip()]
        cursor = self._conn.cursor()
        try:
            for stmt in statements:
                cursor.execute("SAVEPOINT ddl")
                try:
                    cursor.execute(stmt)
                except _ALREADY_APPLIED as e:
                    cursor.execute("ROLLBACK TO SAVEPOINT ddl")
                    logger.debug("Skipping applied DDL: %s", e)
                else:
                    cursor.execute("RELEASE SAVEPOINT ddl")
        finally:
            cursor.close()

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


def connect_pg(database_url: str) -> PgConnectionWrapper:
    return PgConnectionWrapper(psycopg2.connect(database_url))


def is_postgres_url(url: str) -> bool:
    return url.startswith(("postgresql://", "postgres://"))


def pg_error_details(exc: Exception) -> tuple[str, str]:
    """Return (sqlstate, constraint_name) for a psycopg2 error, or ("", "")."""
    code = getattr(exc, "pgcode", None) or ""
    constraint = getattr(getattr(exc, "diag", None), "constraint_name", None) or ""
    return code, constraint
