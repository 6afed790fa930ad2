"""
manuals/metadata_index.py
-------------------------
SQLite table of per-owner manual statistics.

The JSON record is the source of truth; this table only mirrors its counts
so other services can list manuals without reading every record file.

Table schema:
  manuals(
    owner_id TEXT PRIMARY KEY,
    owner_type TEXT NOT NULL,
    file_count INTEGER NOT NULL,
    chunk_count INTEGER NOT NULL,
    embedded_chunks INTEGER NOT NULL,
    updated_at TEXT NOT NULL
  )
"""

import sqlite3
from pathlib import Path
from typing import Any, Dict, List

from manuals.models import ManualCacheRecord


class ManualIndex:
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA journal_mode=WAL;")
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS manuals (
                    owner_id TEXT PRIMARY KEY,
                    owner_type TEXT NOT NULL,
                    file_count INTEGER NOT NULL,
                    chunk_count INTEGER NOT NULL,
                    embedded_chunks INTEGER NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def upsert(self, record: ManualCacheRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO manuals (owner_id, owner_type, file_count, chunk_count, embedded_chunks, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(owner_id) DO UPDATE SET
                  owner_type = excluded.owner_type,
                  file_count = excluded.file_count,
                  chunk_count = excluded.chunk_count,
                  embedded_chunks = excluded.embedded_chunks,
                  updated_at = excluded.updated_at
                """,
                (
                    record.owner_id,
                    record.owner_type.value,
                    record.file_count,
                    record.chunk_count,
                    record.embedded_chunks,
                    record.updated_at,
                ),
            )
            conn.commit()

    def delete(self, owner_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM manuals WHERE owner_id = ?", (owner_id,))
            conn.commit()

    def list_manuals(self) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                "SELECT * FROM manuals ORDER BY updated_at DESC, owner_id"
            ).fetchall()
        return [dict(row) for row in rows]
