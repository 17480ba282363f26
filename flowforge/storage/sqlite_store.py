from __future__ import annotations

import json
import os
import sqlite3
import threading
from contextlib import closing
from datetime import datetime, timezone
from typing import Any

from flowforge.errors import StorageError
from flowforge.storage.base import Store


class SqliteStore(Store):
    def __init__(self, db_path: str = "data/flowforge.db") -> None:
        self.db_path = db_path
        self._opened = False
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        if not self._opened:
            raise StorageError("store is not open")
        return sqlite3.connect(self.db_path)

    def open(self) -> None:
        try:
            db_dir = os.path.dirname(self.db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
            with closing(sqlite3.connect(self.db_path)) as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS documents (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        namespace TEXT NOT NULL,
                        key TEXT NOT NULL,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        UNIQUE(namespace, key)
                    )
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_documents_namespace ON documents(namespace, seq)"
                )
                conn.commit()
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"failed to open sqlite store at {self.db_path}: {exc}") from exc
        self._opened = True

    def close(self) -> None:
        self._opened = False

    def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        try:
            with self._lock, closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT value FROM documents WHERE namespace = ? AND key = ?",
                    (namespace, key),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to read {namespace}/{key}: {exc}") from exc
        return json.loads(row[0]) if row else None

    def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        try:
            serialized = json.dumps(value, sort_keys=True)
        except TypeError as exc:
            raise StorageError(f"value for {namespace}/{key} is not JSON serializable") from exc

        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            with self._lock, closing(self._connect()) as conn:
                conn.execute(
                    """
                    INSERT INTO documents (namespace, key, value, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(namespace, key)
                    DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                    """,
                    (namespace, key, serialized, timestamp),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to write {namespace}/{key}: {exc}") from exc

    def list(self, namespace: str) -> list[dict[str, Any]]:
        try:
            with self._lock, closing(self._connect()) as conn:
                rows = conn.execute(
                    "SELECT value FROM documents WHERE namespace = ? ORDER BY seq ASC",
                    (namespace,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to list {namespace}: {exc}") from exc
        return [json.loads(row[0]) for row in rows]

    def delete(self, namespace: str, key: str) -> bool:
        try:
            with self._lock, closing(self._connect()) as conn:
                cursor = conn.execute(
                    "DELETE FROM documents WHERE namespace = ? AND key = ?",
                    (namespace, key),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to delete {namespace}/{key}: {exc}") from exc
        return cursor.rowcount > 0
