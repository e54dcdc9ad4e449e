"""
Holder Field Store

Uses SQLite to persist the named text fields of a holder session (public key,
token, digest, blinding factor, blind signature, signature) so a session can
be resumed after a restart. Every value is stored as hex text under the
field's name.
"""

import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

DB_PATH = Path(os.environ.get("HOLDER_DB", Path.cwd() / "holder_session.db"))

# Thread-local connection cache
_local = threading.local()


def get_connection() -> sqlite3.Connection:
    if not hasattr(_local, "conn") or _local.conn is None:
        _local.conn = sqlite3.connect(str(DB_PATH), check_same_thread=False)
        _local.conn.row_factory = sqlite3.Row
        _local.conn.execute("PRAGMA journal_mode=WAL")
    return _local.conn


def close_connection():
    if getattr(_local, "conn", None) is not None:
        _local.conn.close()
        _local.conn = None


@contextmanager
def get_db():
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def init_db():
    """Create tables if they do not exist."""
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS fields (
                name        TEXT PRIMARY KEY,
                value       TEXT NOT NULL,
                updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
            );
        """)


# ---------------------------------------------------------------------------
# Field operations
# ---------------------------------------------------------------------------

_UPSERT = """INSERT INTO fields (name, value) VALUES (?, ?)
              ON CONFLICT(name) DO UPDATE
              SET value=excluded.value, updated_at=datetime('now')"""


def set_field(name: str, value: str):
    with get_db() as conn:
        conn.execute(_UPSERT, (name, value))


def set_fields(values: dict):
    """Write several fields in one transaction; all or none are stored."""
    with get_db() as conn:
        conn.executemany(_UPSERT, list(values.items()))


def get_field(name: str):
    """Return the stored value, or None if the field was never written."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT value FROM fields WHERE name = ?", (name,)
        ).fetchone()
        return None if row is None else row["value"]


def load_fields() -> dict:
    with get_db() as conn:
        rows = conn.execute("SELECT name, value FROM fields").fetchall()
        return {row["name"]: row["value"] for row in rows}


def delete_fields(names: list):
    with get_db() as conn:
        conn.executemany(
            "DELETE FROM fields WHERE name = ?", [(name,) for name in names]
        )

