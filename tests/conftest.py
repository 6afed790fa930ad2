"""
Shared fixtures: a deterministic in-process embedder, a seeded conversation
database, and a fully wired ManualService over a temporary storage dir.
"""

import logging
import sqlite3
import threading
import time
import zlib
from pathlib import Path
from typing import List, Optional

import pytest

from app import build_service
from manuals.embedder import sanitize
from manuals.errors import UpstreamError
from manuals.owners import SqliteConversationDirectory

EMBED_DIM = 16


class FakeEmbedder:
    """Bag-of-words hashing embedder; no network, same text → same vector."""

    def __init__(self, fail_after: Optional[int] = None, delay: float = 0.0):
        self.fail_after = fail_after
        self.delay      = delay
        self.calls      = 0
        self.texts: List[str] = []
        self._lock = threading.Lock()

    def embed(self, text: str) -> List[float]:
        words = sanitize(text).lower().split()
        if not words:
            return []
        with self._lock:
            self.calls += 1
            self.texts.append(text)
            call_no = self.calls
        if self.fail_after is not None and call_no > self.fail_after:
            raise UpstreamError("embedding model timed out")
        if self.delay:
            time.sleep(self.delay)
        vector = [0.0] * EMBED_DIM
        for word in words:
            vector[zlib.crc32(word.encode("utf-8")) % EMBED_DIM] += 1.0
        return vector


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def app_db(tmp_path: Path) -> Path:
    """
    Conversations database:
      proj-1 (alice) ← conv-p1, conv-p2
      conv-solo (bob), standalone
    """
    db_path = tmp_path / "app.db"
    SqliteConversationDirectory(db_path).ensure_schema()
    with sqlite3.connect(db_path) as conn:
        conn.execute("INSERT INTO projects(id, user_id) VALUES (?, ?)", ("proj-1", "alice"))
        conn.executemany(
            "INSERT INTO conversations(id, user_id, project_id) VALUES (?, ?, ?)",
            [
                ("conv-p1", "alice", "proj-1"),
                ("conv-p2", "alice", "proj-1"),
                ("conv-solo", "bob", None),
            ],
        )
        conn.commit()
    return db_path


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    return tmp_path / "storage"


@pytest.fixture
def service(storage_dir: Path, app_db: Path, embedder: FakeEmbedder):
    return build_service(storage_dir, app_db, embedder)


@pytest.fixture
def manual_logs(caplog):
    """caplog wired to the 'manuals' logger, which does not propagate to root."""
    logger = logging.getLogger("manuals")
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger="manuals")
    yield caplog
    logger.removeHandler(caplog.handler)
