"""
Municipal Ingestion - Database Manager
SQLite-backed collection store for imported records and ingestion logs

This module provides:
- Database connection management with automatic commit/rollback
- Schemaless collections: one row per record, JSON payload
- Generated UUID ids and created/updated timestamps
- Bulk insert of a whole batch in one transaction

Security Features:
- SQL injection prevention via parameterized queries
- Collection names validated against a strict identifier pattern
"""

import json
import logging
import re
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .logic.errors import StorageError

logger = logging.getLogger(__name__)


# Default database path (overridden by config `database_path`)
DB_PATH = Path.cwd() / "muni_ingest.db"

_TABLE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,63}$")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS records (
    id TEXT PRIMARY KEY,
    collection TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_records_collection ON records(collection, created_at);
"""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_default(value: Any) -> Any:
    """JSON encoder fallback for dates and enum-like values."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    if hasattr(value, "item"):
        # numpy scalars
        return value.item()
    return str(value)


class SQLiteCollectionStore:
    """
    CollectionStore over a single SQLite file.

    Each record is stored as a JSON payload tagged with its collection name,
    so new record types need no migration.

    Args:
        db_path: Path to the SQLite file (created on first use)
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = str(db_path or DB_PATH)
        self._ensure_schema()

    def _ensure_schema(self):
        """Create the records table if it doesn't exist."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self.get_connection() as conn:
            conn.executescript(SCHEMA_SQL)

    @contextmanager
    def get_connection(self):
        """
        Get database connection with automatic commit/rollback.

        Usage:
            with store.get_connection() as conn:
                conn.execute("SELECT COUNT(*) FROM records")
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def _check_table(table: str) -> str:
        if not isinstance(table, str) or not _TABLE_NAME_PATTERN.match(table):
            raise StorageError(f"Invalid collection name: {table!r}")
        return table

    @staticmethod
    def _to_record(row: sqlite3.Row) -> Dict[str, Any]:
        record = json.loads(row["payload"])
        record["id"] = row["id"]
        record["created_at"] = row["created_at"]
        record["updated_at"] = row["updated_at"]
        return record

    # ========================================================================
    # COLLECTION OPERATIONS
    # ========================================================================

    def insert(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Insert rows into a collection in one transaction.

        Args:
            table: Collection name
            rows: Record payloads; an "id" key is ignored, ids are generated

        Returns:
            Inserted records with id/created_at/updated_at

        Raises:
            StorageError: the transaction failed, nothing was inserted
        """
        table = self._check_table(table)
        now = _utc_now()
        inserted = []
        params = []
        for row in rows:
            payload = {k: v for k, v in row.items() if k not in ("id", "created_at", "updated_at")}
            record_id = str(uuid.uuid4())
            params.append((record_id, table, json.dumps(payload, default=_json_default, ensure_ascii=False), now, now))
            inserted.append({**payload, "id": record_id, "created_at": now, "updated_at": now})

        try:
            with self.get_connection() as conn:
                conn.executemany(
                    "INSERT INTO records (id, collection, payload, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                    params,
                )
        except sqlite3.Error as e:
            raise StorageError(f"Insert into '{table}' failed: {e}") from e

        logger.debug(f"Inserted {len(inserted)} records into '{table}'")
        return inserted

    def update(self, table: str, record_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge values into an existing record.

        Raises:
            StorageError: the record doesn't exist or the write failed
        """
        table = self._check_table(table)
        try:
            with self.get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM records WHERE id = ? AND collection = ?", (record_id, table)
                ).fetchone()
                if row is None:
                    raise StorageError(f"Record {record_id} not found in '{table}'")

                payload = json.loads(row["payload"])
                payload.update({k: v for k, v in values.items() if k not in ("id", "created_at", "updated_at")})
                now = _utc_now()
                conn.execute(
                    "UPDATE records SET payload = ?, updated_at = ? WHERE id = ?",
                    (json.dumps(payload, default=_json_default, ensure_ascii=False), now, record_id),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Update of '{table}/{record_id}' failed: {e}") from e

        return {**payload, "id": record_id, "created_at": row["created_at"], "updated_at": now}

    def delete_all(self, table: str) -> int:
        """Delete every record of a collection; returns the number removed."""
        table = self._check_table(table)
        try:
            with self.get_connection() as conn:
                cursor = conn.execute("DELETE FROM records WHERE collection = ?", (table,))
                deleted = cursor.rowcount
        except sqlite3.Error as e:
            raise StorageError(f"Delete from '{table}' failed: {e}") from e

        logger.debug(f"Deleted {deleted} records from '{table}'")
        return deleted

    def count(self, table: str) -> int:
        table = self._check_table(table)
        try:
            with self.get_connection() as conn:
                row = conn.execute("SELECT COUNT(*) FROM records WHERE collection = ?", (table,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Count of '{table}' failed: {e}") from e
        return int(row[0])

    def select(self, table: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Records of a collection, newest first."""
        table = self._check_table(table)
        query = "SELECT * FROM records WHERE collection = ? ORDER BY created_at DESC, rowid DESC"
        params: tuple = (table,)
        if limit is not None:
            query += " LIMIT ?"
            params = (table, int(limit))
        try:
            with self.get_connection() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Select from '{table}' failed: {e}") from e
        return [self._to_record(row) for row in rows]

    def get(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        table = self._check_table(table)
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM records WHERE id = ? AND collection = ?", (record_id, table)
            ).fetchone()
        return self._to_record(row) if row else None


# Global instance
_store_instance = None


def get_store(db_path: Optional[Union[str, Path]] = None) -> SQLiteCollectionStore:
    """Get or create the global collection store."""
    global _store_instance
    if _store_instance is None or (db_path and str(db_path) != _store_instance.db_path):
        _store_instance = SQLiteCollectionStore(db_path)
    return _store_instance
