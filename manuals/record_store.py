"""
manuals/record_store.py
-----------------------
Authoritative per-owner manual records and their rebuild lifecycle.

A record holds the owner's ordered sources plus everything derived from
them (flattened text, chunk counts, embed ratio). Every change to the
sources goes through a full rebuild:

    sources → flatten → chunk → select prefix → embed → vector store → record

Rebuilds are staged in memory; nothing is written until all embeddings are
in hand. Mutations for one owner are serialized by a per-owner lock, while
different owners rebuild in parallel. Readers never take the lock: the
record file is swapped atomically, so they always see the last completed
rebuild.

Storage: one JSON file per owner under `manual_dir` (`<ownerId>.json`).
"""

import json
import math
import os
import sqlite3
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError as SchemaError

from manuals.chunker import WINDOW_OVERLAP, WINDOW_SIZE, chunk_text
from manuals.embedder import DEFAULT_WORKERS, Embedder, embed_many
from manuals.errors import BadRequest, NotFound
from manuals.ingestion import flatten_sources
from manuals.legacy import legacy_source_id, reconstruct_sources
from manuals.logging_config import get_logger
from manuals.metadata_index import ManualIndex
from manuals.models import (
    ManualCacheRecord,
    ManualSource,
    Owner,
    SourceKind,
    utc_now_iso,
)
from manuals.selector import build_documents, clamp_embed_ratio, embedded_chunk_count, select_chunks
from manuals.vector_store import VectorStore
from validator.json_validator import (
    PREVIEW_LENGTH,
    ManualStatus,
    ManualSummary,
    validate_status,
    validate_summary,
)

log = get_logger(__name__)


class MergeMode(str, Enum):
    APPEND  = "append"
    REPLACE = "replace"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MergeMode":
        """'replace' replaces; anything else (including None) appends."""
        return cls.REPLACE if value == cls.REPLACE.value else cls.APPEND


def merge_sources(
    mode: MergeMode,
    existing: Optional[ManualCacheRecord],
    new_sources: Sequence[ManualSource],
) -> List[ManualSource]:
    """
    Combines an owner's current sources with newly ingested ones.

    Raises:
        BadRequest: If the merged list is empty.
    """
    kept = list(existing.sources) if (existing and mode == MergeMode.APPEND) else []
    merged = kept + list(new_sources)
    if not merged:
        raise BadRequest("Please upload a file or add instructions.")
    return merged


def to_summary(record: ManualCacheRecord) -> ManualSummary:
    """Summary view of a record; instruction sources get a 200-char preview."""
    sources = []
    for source in record.sources:
        entry: Dict[str, Any] = {
            "id":        source.id,
            "type":      source.kind.value,
            "label":     source.label,
            "createdAt": source.created_at,
        }
        if source.kind == SourceKind.INSTRUCTION:
            entry["preview"] = source.text[:PREVIEW_LENGTH]
        sources.append(entry)

    return validate_summary({
        "fileCount":      record.file_count,
        "chunkCount":     record.chunk_count,
        "embeddedChunks": record.embedded_chunks,
        "updatedAt":      record.updated_at,
        "embedRatio":     record.embed_ratio,
        "sources":        sources,
    })


def _stored_number(value: Any, kind: Callable[[Any], Any]) -> Optional[Any]:
    """Coerces a stored counter; None when it is missing or not a finite number."""
    if value is None or isinstance(value, (dict, list)):
        return None
    try:
        number = kind(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


class ManualRecordStore:
    def __init__(
        self,
        manual_dir: Path,
        vector_store: VectorStore,
        embedder: Embedder,
        index: Optional[ManualIndex] = None,
        window_size: int = WINDOW_SIZE,
        overlap: int = WINDOW_OVERLAP,
        embed_workers: int = DEFAULT_WORKERS,
    ):
        self.manual_dir    = Path(manual_dir)
        self.vector_store  = vector_store
        self.embedder      = embedder
        self.index         = index
        self.window_size   = window_size
        self.overlap       = overlap
        self.embed_workers = embed_workers

        self.manual_dir.mkdir(parents=True, exist_ok=True)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ── Locking ────────────────────────────────────────────────────────────────

    def lock_for(self, owner_id: str) -> threading.Lock:
        """The mutex serializing rebuilds of one owner."""
        with self._locks_guard:
            lock = self._locks.get(owner_id)
            if lock is None:
                lock = self._locks[owner_id] = threading.Lock()
            return lock

    # ── Persistence ────────────────────────────────────────────────────────────

    def _record_path(self, owner_id: str) -> Path:
        if not owner_id or owner_id in (".", "..") or "/" in owner_id or "\\" in owner_id:
            raise BadRequest(f"Invalid owner id: {owner_id!r}")
        return self.manual_dir / f"{owner_id}.json"

    def _write(self, record: ManualCacheRecord) -> None:
        target = self._record_path(record.owner_id)
        tmp = target.with_suffix(".json.tmp")
        tmp.write_text(
            json.dumps(record.to_json_dict(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        os.replace(tmp, target)

    def _index_upsert(self, record: ManualCacheRecord) -> None:
        if self.index is None:
            return
        try:
            self.index.upsert(record)
        except sqlite3.Error as exc:
            log.warning("Failed to upsert manual metadata for %s: %s", record.owner_id, exc)

    def _index_delete(self, owner_id: str) -> None:
        if self.index is None:
            return
        try:
            self.index.delete(owner_id)
        except sqlite3.Error as exc:
            log.warning("Failed to delete manual metadata for %s: %s", owner_id, exc)

    def get(self, owner: Owner) -> Optional[ManualCacheRecord]:
        """Reads an owner's record; a missing or unreadable file means no manual."""
        target = self._record_path(owner.owner_id)
        try:
            raw = json.loads(target.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            log.warning("Failed to load manual for %s: %s", owner.owner_id, exc)
            return None
        if not isinstance(raw, dict):
            log.warning("Manual file for %s is not a JSON object", owner.owner_id)
            return None
        return self._normalize(raw, owner)

    def get_or_raise(self, owner: Owner) -> ManualCacheRecord:
        record = self.get(owner)
        if record is None:
            raise NotFound("No manuals found for this conversation.")
        return record

    def _normalize(self, raw: Dict[str, Any], owner: Owner) -> Optional[ManualCacheRecord]:
        """
        Fills in fields that older record files lack.

        Stored counters that are missing or unusable are recomputed from
        `manualText`. The owner type always comes from the resolved owner.
        """
        manual_text = raw.get("manualText")
        if not isinstance(manual_text, str) or not manual_text.strip():
            return None

        updated_at = raw.get("updatedAt")
        if not isinstance(updated_at, str) or not updated_at.strip():
            updated_at = utc_now_iso()
        sources = self._load_sources(raw.get("sources"), updated_at, owner)
        if sources is None:
            log.info("Reconstructing sources for legacy manual of %s", owner)
            sources = reconstruct_sources(manual_text, updated_at)

        embed_ratio = clamp_embed_ratio(_stored_number(raw.get("embedRatio"), float))
        chunk_count = _stored_number(raw.get("chunkCount"), int)
        if not chunk_count or chunk_count < 0:
            chunk_count = len(chunk_text(manual_text, self.window_size, self.overlap))
        embedded = _stored_number(raw.get("embeddedChunks"), int)
        if not embedded or embedded < 0 or embedded > chunk_count:
            embedded = embedded_chunk_count(chunk_count, embed_ratio)

        return ManualCacheRecord(
            manual_text     = manual_text,
            chunk_count     = chunk_count,
            embedded_chunks = embedded,
            file_count      = sum(1 for s in sources if s.kind == SourceKind.FILE),
            updated_at      = updated_at,
            embed_ratio     = embed_ratio,
            sources         = sources,
            owner_id        = owner.owner_id,
            owner_type      = owner.owner_type,
        )

    @staticmethod
    def _load_sources(
        raw_sources: Any,
        updated_at: str,
        owner: Owner,
    ) -> Optional[List[ManualSource]]:
        if not raw_sources or not isinstance(raw_sources, list):
            return None
        try:
            return [
                ManualSource.model_validate({
                    **item,
                    "id":        item.get("id") or legacy_source_id(str(item.get("text")), position),
                    "createdAt": item.get("createdAt") or updated_at,
                })
                for position, item in enumerate(raw_sources)
            ]
        except (SchemaError, AttributeError, TypeError) as exc:
            log.warning("Stored sources for %s are malformed, falling back to manual text: %s",
                        owner, exc)
            return None

    # ── Rebuild ────────────────────────────────────────────────────────────────

    def _rebuild(
        self,
        owner: Owner,
        sources: Sequence[ManualSource],
        embed_ratio: Optional[float],
    ) -> ManualSummary:
        """Caller must hold `lock_for(owner.owner_id)`."""
        if not sources:
            raise BadRequest("There is no material to build a manual from.")

        manual_text = flatten_sources(sources)
        if not manual_text.strip():
            raise BadRequest("The extracted text is empty.")

        chunks = chunk_text(manual_text, self.window_size, self.overlap)
        if not chunks:
            raise BadRequest("Splitting the manual text produced no chunks.")

        ratio    = clamp_embed_ratio(embed_ratio)
        selected = select_chunks(chunks, ratio)
        log.info("Rebuilding manual for %s — %d source(s), %d chunk(s), embedding %d (ratio %.2f)",
                 owner, len(sources), len(chunks), len(selected), ratio)

        embeddings = embed_many(self.embedder, selected, self.embed_workers)
        documents  = build_documents(selected, embeddings)

        record = ManualCacheRecord(
            manual_text     = manual_text,
            chunk_count     = len(chunks),
            embedded_chunks = len(selected),
            file_count      = sum(1 for s in sources if s.kind == SourceKind.FILE),
            updated_at      = utc_now_iso(),
            embed_ratio     = ratio,
            sources         = list(sources),
            owner_id        = owner.owner_id,
            owner_type      = owner.owner_type,
        )
        summary = to_summary(record)

        previous = self.vector_store.put_documents(owner.owner_id, documents)
        try:
            self._write(record)
        except OSError:
            log.error("Failed to persist manual for %s — restoring previous vectors", owner)
            self.vector_store.restore(owner.owner_id, previous)
            raise

        self._index_upsert(record)
        log.info("Manual for %s persisted — %d file(s), %d/%d chunk(s) embedded",
                 owner, record.file_count, record.embedded_chunks, record.chunk_count)
        return summary

    def rebuild(
        self,
        owner: Owner,
        sources: Sequence[ManualSource],
        embed_ratio: Optional[float],
    ) -> ManualSummary:
        """Recomputes the owner's record and vectors from `sources`."""
        with self.lock_for(owner.owner_id):
            return self._rebuild(owner, sources, embed_ratio)

    # ── Operations ─────────────────────────────────────────────────────────────

    def ingest(
        self,
        owner: Owner,
        new_sources: Sequence[ManualSource],
        embed_ratio: Optional[float],
        mode: MergeMode = MergeMode.APPEND,
    ) -> ManualSummary:
        """
        Merges new sources into the owner's manual and rebuilds it.

        Raises:
            BadRequest:    If nothing would remain to persist.
            UpstreamError: If embedding fails; stored state is left untouched.
        """
        with self.lock_for(owner.owner_id):
            existing = self.get(owner) if mode == MergeMode.APPEND else None
            merged   = merge_sources(mode, existing, new_sources)
            return self._rebuild(owner, merged, embed_ratio)

    def remove_source(self, owner: Owner, source_id: str) -> ManualStatus:
        """
        Drops one source and rebuilds with the stored embed ratio.

        Removing the last source deletes the whole manual.

        Raises:
            BadRequest: If source_id is blank.
            NotFound:   If the owner has no manual or no such source.
        """
        if not (source_id or "").strip():
            raise BadRequest("sourceId is required.")

        with self.lock_for(owner.owner_id):
            record = self.get(owner)
            if record is None:
                raise NotFound("There is no material to delete.")

            remaining = [s for s in record.sources if s.id != source_id]
            if len(remaining) == len(record.sources):
                raise NotFound("The requested source could not be found.")

            if not remaining:
                self._delete(owner.owner_id)
                return validate_status({"hasManual": False})

            summary = self._rebuild(owner, remaining, record.embed_ratio)
        return validate_status({"hasManual": True, "stats": summary})

    def _delete(self, owner_id: str) -> None:
        target = self._record_path(owner_id)
        try:
            target.unlink()
        except FileNotFoundError:
            pass
        self.vector_store.clear(owner_id)
        self._index_delete(owner_id)
        log.info("Deleted manual for owner %s", owner_id)

    def delete(self, owner_id: str) -> None:
        """Removes an owner's record, vectors and metadata; a no-op if absent."""
        with self.lock_for(owner_id):
            self._delete(owner_id)

    def status(self, owner: Owner) -> ManualStatus:
        record = self.get(owner)
        if record is None:
            return validate_status({"hasManual": False})
        return validate_status({"hasManual": True, "stats": to_summary(record)})
