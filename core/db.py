from __future__ import annotations

import contextlib
import logging
import re
import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence, Union

import streamlit as st

from core.errors import ConcurrentModification, ReadFailure, WriteFailure
from core.schema import SCHEMA_SQL

logger = logging.getLogger(__name__)

TABLES = frozenset({"products", "sales", "sale_items", "stock_purchases"})

_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# One cached connection is shared by every Streamlit session in the process.
# Statements and whole transactions run under this lock so sessions never
# interleave inside each other's transaction.
_LOCK = threading.RLock()


def connect(db_path: Path) -> sqlite3.Connection:
    # isolation_level=None: autocommit, transactions are opened explicitly by transaction()
    conn = sqlite3.connect(str(db_path), check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@st.cache_resource
def get_conn(db_path: Path) -> sqlite3.Connection:
    return connect(db_path)


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table});").fetchall()
    cols = [r["name"] for r in rows]
    return column in cols


def ensure_schema(conn: sqlite3.Connection) -> None:
    with _LOCK:
        # Create base schema (for new installs)
        conn.executescript(SCHEMA_SQL)

        # ---- migrations for existing installs ----
        # Optimistic concurrency counter on products
        if not _column_exists(conn, "products", "version"):
            conn.execute("ALTER TABLE products ADD COLUMN version INTEGER NOT NULL DEFAULT 1;")

        # Restock notes were added after the first release
        if not _column_exists(conn, "stock_purchases", "notes"):
            conn.execute("ALTER TABLE stock_purchases ADD COLUMN notes TEXT;")


@contextlib.contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    All-or-nothing scope for multi-table writes.

    BEGIN IMMEDIATE takes the database write lock up front, so two processes
    cannot interleave read-modify-write steps on the same rows. Nested calls
    join the outer transaction.
    """
    with _LOCK:
        if conn.in_transaction:
            yield conn
            return

        try:
            conn.execute("BEGIN IMMEDIATE;")
        except sqlite3.Error as exc:
            raise WriteFailure(f"Could not start a transaction: {exc}") from exc

        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK;")
            logger.warning("Transaction rolled back")
            raise

        try:
            conn.execute("COMMIT;")
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.execute("ROLLBACK;")
            raise WriteFailure(f"Could not commit: {exc}") from exc


def q(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
    with _LOCK:
        try:
            cur = conn.execute(sql, tuple(params or ()))
            rows = cur.fetchall()
        except sqlite3.Error as exc:
            raise ReadFailure(str(exc)) from exc
    cur.close()
    return rows


def _write(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
    with _LOCK:
        try:
            return conn.execute(sql, tuple(params or ()))
        except sqlite3.Error as exc:
            raise WriteFailure(str(exc)) from exc


def x(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> int:
    cur = _write(conn, sql, params)
    last = cur.lastrowid
    cur.close()
    return int(last or 0)


# -------------------------
# Generic table client
# -------------------------

def _check_table(table: str) -> str:
    if table not in TABLES:
        raise ValueError(f"Unknown table: {table!r}")
    return table


def _check_ident(name: str) -> str:
    if not isinstance(name, str) or not _IDENT.match(name):
        raise ValueError(f"Invalid column name: {name!r}")
    return name


def _where_clause(where: Optional[Mapping[str, Any]]) -> tuple[str, list[Any]]:
    """
    Equality filter. None matches NULL, a list/tuple/set becomes IN (...).
    """
    if not where:
        return "", []

    parts: list[str] = []
    params: list[Any] = []
    for col, val in where.items():
        _check_ident(col)
        if val is None:
            parts.append(f"{col} IS NULL")
        elif isinstance(val, (list, tuple, set, frozenset)):
            vals = list(val)
            if not vals:
                parts.append("0")
            else:
                parts.append(f"{col} IN ({', '.join('?' * len(vals))})")
                params.extend(vals)
        else:
            parts.append(f"{col} = ?")
            params.append(val)
    return " WHERE " + " AND ".join(parts), params


def _order_clause(order: Union[str, Sequence[str], None]) -> str:
    if not order:
        return ""
    terms = [order] if isinstance(order, str) else list(order)
    out: list[str] = []
    for term in terms:
        bits = str(term).split()
        if not bits or len(bits) > 2:
            raise ValueError(f"Invalid order term: {term!r}")
        col = _check_ident(bits[0])
        direction = bits[1].upper() if len(bits) == 2 else "ASC"
        if direction not in {"ASC", "DESC"}:
            raise ValueError(f"Invalid order direction: {term!r}")
        out.append(f"{col} {direction}")
    return " ORDER BY " + ", ".join(out)


def select(
    conn: sqlite3.Connection,
    table: str,
    columns: Union[str, Sequence[str]] = "*",
    where: Optional[Mapping[str, Any]] = None,
    order: Union[str, Sequence[str], None] = None,
    limit: Optional[int] = None,
) -> list[sqlite3.Row]:
    _check_table(table)
    if columns == "*":
        cols = "*"
    else:
        names = [columns] if isinstance(columns, str) else list(columns)
        cols = ", ".join(_check_ident(c) for c in names)

    where_sql, params = _where_clause(where)
    sql = f"SELECT {cols} FROM {table}{where_sql}{_order_clause(order)}"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))
    return q(conn, sql, params)


def select_one(
    conn: sqlite3.Connection,
    table: str,
    where: Mapping[str, Any],
    columns: Union[str, Sequence[str]] = "*",
) -> sqlite3.Row:
    rows = select(conn, table, columns, where, limit=1)
    if not rows:
        raise ReadFailure(f"No row in {table} matching {dict(where)}.")
    return rows[0]


def insert(
    conn: sqlite3.Connection,
    table: str,
    rows: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
) -> list[int]:
    _check_table(table)
    batch = [rows] if isinstance(rows, Mapping) else list(rows)
    if not batch:
        return []

    ids: list[int] = []
    with transaction(conn):
        for row in batch:
            cols = [_check_ident(c) for c in row.keys()]
            placeholders = ", ".join("?" * len(cols))
            sql = f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({placeholders})"
            ids.append(x(conn, sql, [row[c] for c in cols]))
    return ids


def update(
    conn: sqlite3.Connection,
    table: str,
    patch: Mapping[str, Any],
    where: Mapping[str, Any],
) -> int:
    _check_table(table)
    if not patch:
        raise ValueError("Nothing to update.")
    if not where:
        raise ValueError("Refusing to update without a filter.")

    sets = ", ".join(f"{_check_ident(c)} = ?" for c in patch.keys())
    where_sql, where_params = _where_clause(where)
    cur = _write(conn, f"UPDATE {table} SET {sets}{where_sql}", list(patch.values()) + where_params)
    n = cur.rowcount
    cur.close()
    return int(n)


def update_versioned(
    conn: sqlite3.Connection,
    table: str,
    row_id: int,
    expected_version: int,
    patch: Mapping[str, Any],
) -> int:
    """
    Compare-and-swap update on a table with a `version` column.
    Returns the new version; raises ConcurrentModification on a stale version.
    """
    new_version = int(expected_version) + 1
    n = update(
        conn,
        table,
        {**patch, "version": new_version},
        {"id": int(row_id), "version": int(expected_version)},
    )
    if n != 1:
        raise ConcurrentModification(
            f"{table} #{row_id} was changed by someone else (expected version {expected_version}). Reload and retry."
        )
    return new_version


def delete(conn: sqlite3.Connection, table: str, where: Mapping[str, Any]) -> int:
    """An empty `where` deletes every row."""
    _check_table(table)
    where_sql, params = _where_clause(where)
    cur = _write(conn, f"DELETE FROM {table}{where_sql}", params)
    n = cur.rowcount
    cur.close()
    return int(n)
