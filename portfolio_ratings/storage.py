"""
Durable local storage: the on-device side of the ratings store.

Uses SQLite: one small key/value table in a file under STORAGE_DIR.
Each store instance gets its own key namespace, so two stores pointed at
the same file never see each other's keys.

The only thing kept here today is the visitor's user id. Ratings
themselves live on the remote API; the local copy is in memory.
"""

import os
import sqlite3
from typing import Optional

from portfolio_ratings.config import STORAGE_DIR, STORE_NAMESPACE


class LocalStorage:
    """A namespaced string -> string store backed by a single SQLite file."""

    def __init__(self, db_path: Optional[str] = None, namespace: str = STORE_NAMESPACE):
        self.db_path = db_path or os.path.join(STORAGE_DIR, "local_storage.db")
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _get_connection(self) -> sqlite3.Connection:
        """
        Open a connection and make sure the table exists.
        'IF NOT EXISTS' makes this safe to run on every call.
        """
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("""
            CREATE TABLE IF NOT EXISTS local_storage (
                key         TEXT PRIMARY KEY,
                value       TEXT NOT NULL,
                updated_at  TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)
        return conn

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key was never set."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "SELECT value FROM local_storage WHERE key = ?",
                (self._key(key),)
            )
            row = cursor.fetchone()
        finally:
            conn.close()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        """Insert or overwrite one key."""
        conn = self._get_connection()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO local_storage (key, value) VALUES (?, ?)",
                (self._key(key), value)
            )
            conn.commit()
        finally:
            conn.close()
