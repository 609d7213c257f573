import sqlite3
from typing import Dict, Optional

from finance_tracker.database.connection import DatabaseManager
from finance_tracker.repositories.base import KeyValueStore, StorageReadError, StorageWriteError

UPSERT_SQL = """
    INSERT INTO storage (key, value, updated_at)
    VALUES (?, ?, CURRENT_TIMESTAMP)
    ON CONFLICT(key) DO UPDATE SET
        value = excluded.value,
        updated_at = excluded.updated_at
"""

class SQLiteKeyValueStore(KeyValueStore):
    """
    SQLite implementation of the KeyValueStore.

    Stores every collection as one row of the `storage` table.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def get(self, key: str) -> Optional[str]:
        """Read a value, or None if the key doesn't exist"""
        try:
            conn = self.db.get_connection()
            cursor = conn.execute(
                "SELECT value FROM storage WHERE key = ?",
                (key,)
            )
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageReadError(f"Could not read '{key}': {e}") from e

        if row is None:
            return None

        return row["value"]

    def set(self, key: str, value: str) -> None:
        """Insert or replace a value in a single transaction"""
        try:
            with self.db.transaction() as conn:
                conn.execute(UPSERT_SQL, (key, value))
        except sqlite3.Error as e:
            raise StorageWriteError(f"Could not write '{key}': {e}") from e

    def set_many(self, items: Dict[str, str]) -> None:
        """All values in one transaction: either every key is written or none"""
        try:
            with self.db.transaction() as conn:
                conn.executemany(UPSERT_SQL, list(items.items()))
        except sqlite3.Error as e:
            raise StorageWriteError(f"Could not write {sorted(items)}: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM storage WHERE key = ?",
                    (key,)
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageWriteError(f"Could not delete '{key}': {e}") from e
