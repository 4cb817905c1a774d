"""
LeetMentor Store - durable key-value storage

Holds the hint ledger, the hint cache and the user settings as whole
JSON values in a single SQLite table. Session activity is never stored
here; it is rebuilt from zero on every start.

Thread Safety:
- SQLite in WAL mode
- One connection per MentorStore instance
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from leetmentor.exceptions import PersistenceError

logger = logging.getLogger(__name__)

# Storage keys
HINT_COUNTS_KEY = "hint_counts"
HINT_CACHE_KEY = "hint_cache"
SETTINGS_KEY = "settings"


class MentorStore:
    """
    Key-value store backed by SQLite.

    Usage:
        with MentorStore(path) as store:
            store.set("settings", {"allowSendToServer": False})
            store.get("settings", {})
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> MentorStore:
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get database connection, initializing if needed."""
        if self._conn is None:
            self.initialize()
        return self._conn  # type: ignore

    def initialize(self) -> None:
        """
        Open the database and apply the schema.

        Raises:
            PersistenceError: If the file cannot be opened or the schema applied
        """
        if self._conn is not None:
            return

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                isolation_level=None,  # Autocommit, explicit transactions only
            )
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            schema_sql = (Path(__file__).parent / "schema.sql").read_text()
            conn.executescript(schema_sql)
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(
                "Failed to open LeetMentor store",
                {"db_path": str(self.db_path), "error": str(e)},
            )

        self._conn = conn
        logger.info(f"Initialized LeetMentor store at {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """
        Execute operations in a transaction.

        Usage:
            with store.transaction() as cursor:
                cursor.execute(...)
        """
        cursor = self.conn.cursor()
        try:
            cursor.execute("BEGIN")
            yield cursor
            cursor.execute("COMMIT")
        except Exception:
            cursor.execute("ROLLBACK")
            raise
        finally:
            cursor.close()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read a JSON value.

        Raises:
            PersistenceError: If the read fails or the stored value is not JSON
        """
        try:
            row = self.conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read '{key}'", {"error": str(e)})

        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupt value for '{key}'", {"error": str(e)})

    def set(self, key: str, value: Any) -> None:
        """Overwrite a JSON value."""
        try:
            self.conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), datetime.now().isoformat()),
            )
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write '{key}'", {"error": str(e)})

    def remove(self, *keys: str) -> None:
        """Delete keys; missing keys are ignored."""
        if not keys:
            return
        try:
            with self.transaction() as cursor:
                cursor.executemany("DELETE FROM kv_store WHERE key = ?", [(k,) for k in keys])
        except sqlite3.Error as e:
            raise PersistenceError("Failed to remove keys", {"keys": list(keys), "error": str(e)})

    def keys(self) -> list[str]:
        """List stored keys."""
        try:
            rows = self.conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        except sqlite3.Error as e:
            raise PersistenceError("Failed to list keys", {"error": str(e)})
        return [r[0] for r in rows]
