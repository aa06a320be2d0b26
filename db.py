"""SQLite persistence for tabs and their key/value pairs.

Tables:
- tabs: id, name
- key_values: id, tab_id, key, value (FK → tabs.id, ON DELETE CASCADE)

The connection runs in autocommit mode (isolation_level=None): every
statement commits on its own. Multi-step operations (delete_tab,
replace_key_values) are therefore not atomic; a failure part-way leaves the
earlier steps applied.

Rows are decoded through the pydantic models below; a row that fails
validation is skipped rather than failing the whole listing.
"""
from __future__ import annotations
import sqlite3, pathlib, contextlib, threading
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError

import settings
from app_logging import get_logger

log = get_logger('db')

# cursor.lastrowid and rowcount are taken from the connection as each statement
# finishes; writes on a shared connection go through _write under this lock.
_lock = threading.RLock()

DDL = [
    """CREATE TABLE IF NOT EXISTS tabs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS key_values (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        tab_id INTEGER NOT NULL,
        key TEXT NOT NULL,
        value TEXT NOT NULL,
        FOREIGN KEY(tab_id) REFERENCES tabs(id) ON DELETE CASCADE
    )""",
]


class Tab(BaseModel):
    id: int
    name: str


class KeyValue(BaseModel):
    id: int
    tab_id: int
    key: str
    value: str


def connect(db_path: Optional[pathlib.Path] = None) -> sqlite3.Connection:
    path = db_path or settings.DB_PATH
    # Shared by the request threadpool; sqlite serializes access internally.
    conn = sqlite3.connect(str(path), check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    return conn


def init(db_path: Optional[pathlib.Path] = None) -> None:
    with contextlib.closing(connect(db_path)) as conn:
        for stmt in DDL:
            conn.execute(stmt)


def _write(conn: sqlite3.Connection, sql: str, params=()) -> sqlite3.Cursor:
    with _lock:
        return conn.execute(sql, params)


def _decode(model, rows) -> list:
    out = []
    for row in rows:
        try:
            out.append(model.model_validate(dict(row)))
        except ValidationError as e:
            log.debug('Skipping undecodable %s row: %s', model.__name__, e)
    return out


# Tabs ---------------------------------------------------------------------

def list_tabs(conn: sqlite3.Connection) -> List[Tab]:
    return _decode(Tab, conn.execute("SELECT id, name FROM tabs").fetchall())


def create_tab(conn: sqlite3.Connection, name: str) -> Tab:
    cur = _write(conn, "INSERT INTO tabs (name) VALUES (?)", (name,))
    return Tab(id=cur.lastrowid, name=name)


def delete_tab(conn: sqlite3.Connection, tab_id: int) -> None:
    # Children first, then the tab row; not wrapped in a transaction.
    _write(conn, "DELETE FROM key_values WHERE tab_id = ?", (tab_id,))
    _write(conn, "DELETE FROM tabs WHERE id = ?", (tab_id,))


def rename_tab(conn: sqlite3.Connection, tab_id: int, name: str) -> int:
    """Returns the number of rows updated (0 for an unknown id)."""
    return _write(conn, "UPDATE tabs SET name = ? WHERE id = ?", (name, tab_id)).rowcount


# Key values ---------------------------------------------------------------

def get_key_values(conn: sqlite3.Connection, tab_id: Union[int, str]) -> List[KeyValue]:
    rows = conn.execute(
        "SELECT id, tab_id, key, value FROM key_values WHERE tab_id = ?", (tab_id,)
    ).fetchall()
    return _decode(KeyValue, rows)


def replace_key_values(conn: sqlite3.Connection, tab_id: int, key_values: Dict[str, str]) -> int:
    _write(conn, "DELETE FROM key_values WHERE tab_id = ?", (tab_id,))
    for key, value in key_values.items():
        _write(
            conn,
            "INSERT INTO key_values (tab_id, key, value) VALUES (?, ?, ?)",
            (tab_id, key, value),
        )
    return len(key_values)
