"""
manuals/vector_store.py
-----------------------
Per-owner in-memory vector store with JSON-file persistence.

Cosine similarity is computed over a dense NumPy matrix of the owner's
embeddings, giving exact nearest-neighbour ranking. The store never talks to
the embedding model: it receives pre-computed vectors on write and a
pre-computed query vector on read.

Persistence: a single JSON document `{ownerId: [VectorDocument, ...]}`,
loaded eagerly at construction and rewritten atomically (temp file +
os.replace) after every mutation.
"""

import json
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

from manuals.logging_config import get_logger
from manuals.models import VectorDocument
from manuals.selector import build_documents

log = get_logger(__name__)


# ── Similarity ─────────────────────────────────────────────────────────────────

def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector is empty or all-zero, or when their
    dimensions differ. Never NaN.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.size == 0 or vb.size == 0 or va.shape != vb.shape:
        return 0.0
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(va @ vb) / norm


def _score_documents(query: np.ndarray, documents: List[VectorDocument]) -> np.ndarray:
    """Scores every document against `query`; mismatched dimensions score 0."""
    scores = np.zeros(len(documents), dtype=np.float64)
    query_norm = float(np.linalg.norm(query))
    if query_norm == 0.0:
        return scores

    idx = [i for i, doc in enumerate(documents) if len(doc.embedding) == query.size]
    if not idx:
        return scores

    corpus = np.asarray([documents[i].embedding for i in idx], dtype=np.float64)
    norms  = np.linalg.norm(corpus, axis=1) * query_norm
    dots   = corpus @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / np.where(norms > 0, norms, 1.0), 0.0)
    scores[idx] = sims
    return scores


# ── Store ──────────────────────────────────────────────────────────────────────

class VectorStore:
    """Holds, per owner id, the embedded chunks of that owner's manual."""

    def __init__(self, storage_file: Path):
        self.storage_file = Path(storage_file)
        self._documents: Dict[str, List[VectorDocument]] = {}
        self._lock = threading.RLock()
        self._load()

    def _load(self) -> None:
        self.storage_file.parent.mkdir(parents=True, exist_ok=True)
        if not self.storage_file.exists():
            return
        try:
            raw = json.loads(self.storage_file.read_text(encoding="utf-8"))
            self._documents = {
                owner_id: [VectorDocument.model_validate(doc) for doc in docs]
                for owner_id, docs in raw.items()
            }
        except (OSError, ValueError) as exc:
            log.error("Failed to load vector store %s, starting fresh: %s",
                      self.storage_file, exc)
            self._documents = {}
            return
        log.info("Loaded %d vectors across %d owner(s)",
                 self.document_count(), len(self._documents))

    def _persist(self) -> None:
        payload = {
            owner_id: [doc.model_dump(by_alias=True) for doc in docs]
            for owner_id, docs in self._documents.items()
        }
        tmp = self.storage_file.with_suffix(self.storage_file.suffix + ".tmp")
        tmp.write_text(json.dumps(payload), encoding="utf-8")
        os.replace(tmp, self.storage_file)
        log.debug("Persisted %d vectors across owners", self.document_count())

    def _swap(self, owner_id: str, documents: Optional[List[VectorDocument]]) -> List[VectorDocument]:
        """Sets (or drops, for None) an owner's documents; rolls back if the write fails."""
        with self._lock:
            previous = self._documents.get(owner_id, [])
            if documents is None:
                self._documents.pop(owner_id, None)
            else:
                self._documents[owner_id] = list(documents)
            try:
                self._persist()
            except OSError:
                if previous:
                    self._documents[owner_id] = previous
                else:
                    self._documents.pop(owner_id, None)
                raise
            return previous

    # ── Mutations ──────────────────────────────────────────────────────────────

    def put_documents(self, owner_id: str, documents: List[VectorDocument]) -> List[VectorDocument]:
        """
        Overwrites all documents for `owner_id` with already-built documents.

        Returns:
            The documents that were replaced, so a caller can restore them.
        """
        return self._swap(owner_id, documents)

    def replace(
        self,
        owner_id: str,
        chunks: Sequence[str],
        embeddings: Sequence[Sequence[float]],
    ) -> List[VectorDocument]:
        """Overwrites all documents for `owner_id` with fresh ids."""
        return self.put_documents(owner_id, build_documents(chunks, embeddings))

    def restore(self, owner_id: str, documents: List[VectorDocument]) -> None:
        """Puts back documents returned by an earlier `put_documents`."""
        self._swap(owner_id, documents if documents else None)

    def clear(self, owner_id: str) -> None:
        with self._lock:
            if owner_id not in self._documents:
                return
            self._swap(owner_id, None)
        log.info("Cleared vector documents for owner %s", owner_id)

    # ── Reads ──────────────────────────────────────────────────────────────────

    def documents(self, owner_id: str) -> List[VectorDocument]:
        with self._lock:
            return list(self._documents.get(owner_id, []))

    def document_count(self, owner_id: Optional[str] = None) -> int:
        with self._lock:
            if owner_id is not None:
                return len(self._documents.get(owner_id, []))
            return sum(len(docs) for docs in self._documents.values())

    def query(
        self,
        owner_id: str,
        query_embedding: Sequence[float],
        top_k: int = 3,
    ) -> List[str]:
        """
        Returns the contents of the `top_k` documents most similar to the query.

        Ties keep insertion order. An owner without documents or an empty
        query embedding yields [] rather than an error.
        """
        documents = self.documents(owner_id)
        if not documents or len(query_embedding) == 0 or top_k <= 0:
            return []

        query  = np.asarray(query_embedding, dtype=np.float64)
        scores = _score_documents(query, documents)
        order  = np.argsort(-scores, kind="stable")[:top_k]

        log.debug("Query for owner %s — top scores %s",
                  owner_id, [round(float(scores[i]), 4) for i in order])
        return [documents[i].content for i in order]
