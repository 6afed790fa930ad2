"""
app.py
------
Configuration and assembly for the manual ingestion engine, plus a small
command-line driver.

  INGESTION  — text files / instructions → sources → rebuild → persisted record
    files → create_sources() → chunk_text() → select_chunks() → embed → VectorStore

  RETRIEVAL  — per-owner semantic lookup used to ground dialogue
    query → embed → VectorStore.query() → ranked chunk texts

Every constant below can be overridden with an environment variable of the
same name prefixed by MANUALS_ (e.g. MANUALS_STORAGE_DIR=/var/lib/manuals).

CLI usage:
    python app.py ingest <conversationId> docs/*.txt [--instruction TEXT] [--ratio 0.5] [--replace]
    python app.py status <conversationId>
    python app.py remove <conversationId> <sourceId>
    python app.py query  <ownerId> "How do I issue a refund?"
"""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from manuals.embedder import get_embedder
from manuals.errors import ManualError
from manuals.logging_config import get_logger
from manuals.metadata_index import ManualIndex
from manuals.models import ExtractedFile, IngestRequest
from manuals.owners import OwnerResolver, SqliteConversationDirectory
from manuals.record_store import ManualRecordStore
from manuals.retrieval import RetrievalFacade
from manuals.service import ManualService
from manuals.vector_store import VectorStore

log = get_logger(__name__)


def _env(name: str, default: str) -> str:
    return os.environ.get(f"MANUALS_{name}", default)


# ── Configuration ───────────────────────────────────────────────────────────────

STORAGE_DIR    = Path(_env("STORAGE_DIR", str(Path.cwd() / "storage")))
DATABASE_PATH  = Path(_env("DATABASE_PATH", str(STORAGE_DIR / "app.db")))
OLLAMA_URL     = _env("OLLAMA_URL", "http://localhost:11434")
EMBED_MODEL    = _env("EMBED_MODEL", "nomic-embed-text")
EMBED_TIMEOUT  = float(_env("EMBED_TIMEOUT", "60"))
EMBED_WORKERS  = int(_env("EMBED_WORKERS", "4"))
WINDOW_SIZE    = int(_env("WINDOW_SIZE", "800"))
WINDOW_OVERLAP = int(_env("WINDOW_OVERLAP", "100"))
TOP_K          = int(_env("TOP_K", "3"))


# ── Assembly ────────────────────────────────────────────────────────────────────

def build_service(
    storage_dir: Path = STORAGE_DIR,
    database_path: Optional[Path] = None,
    embedder=None,
) -> ManualService:
    """
    Wires the engine together over `storage_dir`.

    Layout:
        storage_dir/manuals/<ownerId>.json   one record per owner
        storage_dir/vector-store.json        vector documents for all owners
        storage_dir/manuals.db               manual statistics index

    Args:
        storage_dir:   Root directory for persisted state.
        database_path: Application database holding conversations/projects.
        embedder:      Embedding collaborator; defaults to the shared
                       Ollama embedder, created on first use.
    """
    storage_dir = Path(storage_dir)
    if embedder is None:
        embedder = get_embedder(OLLAMA_URL, EMBED_MODEL, EMBED_TIMEOUT)

    directory    = SqliteConversationDirectory(database_path or DATABASE_PATH)
    resolver     = OwnerResolver(directory)
    vector_store = VectorStore(storage_dir / "vector-store.json")
    record_store = ManualRecordStore(
        manual_dir    = storage_dir / "manuals",
        vector_store  = vector_store,
        embedder      = embedder,
        index         = ManualIndex(storage_dir / "manuals.db"),
        window_size   = WINDOW_SIZE,
        overlap       = WINDOW_OVERLAP,
        embed_workers = EMBED_WORKERS,
    )
    retrieval = RetrievalFacade(vector_store, embedder, record_store, resolver, top_k=TOP_K)
    log.info("Manual engine ready — storage=%s model=%s", storage_dir, EMBED_MODEL)
    return ManualService(resolver, record_store, retrieval)


def load_text_files(paths: List[Path]) -> List[ExtractedFile]:
    """Plain-text extraction for the CLI; other formats need their own adapter."""
    files = []
    for path in paths:
        raw = path.read_bytes()
        files.append(
            ExtractedFile(
                raw_text   = raw.decode("utf-8", errors="replace"),
                label      = path.name,
                size_bytes = len(raw),
                mime_type  = "text/plain",
            )
        )
    return files


# ── Entry point ─────────────────────────────────────────────────────────────────

def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manual ingestion and retrieval engine")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="add text files / instructions to a manual")
    ingest.add_argument("conversation_id")
    ingest.add_argument("files", nargs="*", type=Path)
    ingest.add_argument("--instruction", default=None)
    ingest.add_argument("--ratio", type=float, default=1.0)
    ingest.add_argument("--replace", action="store_true")

    status = sub.add_parser("status", help="show a conversation's manual")
    status.add_argument("conversation_id")

    remove = sub.add_parser("remove", help="remove one source and rebuild")
    remove.add_argument("conversation_id")
    remove.add_argument("source_id")

    query = sub.add_parser("query", help="retrieve the best-matching chunks")
    query.add_argument("owner_id")
    query.add_argument("text")
    query.add_argument("--top-k", type=int, default=TOP_K)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)
    service = build_service()

    try:
        if args.command == "ingest":
            request = IngestRequest(
                conversation_id  = args.conversation_id,
                embed_ratio      = args.ratio,
                mode             = "replace" if args.replace else "append",
                instruction_text = args.instruction,
                files            = load_text_files(args.files),
            )
            result = service.ingest(request)
        elif args.command == "status":
            result = service.status(args.conversation_id)
        elif args.command == "remove":
            result = service.remove_source(args.conversation_id, args.source_id)
        else:
            result = service.retrieve(args.owner_id, args.text, args.top_k)
    except ManualError as exc:
        print(f"[ERROR {exc.status_code}] {exc.message}", file=sys.stderr)
        return 1
    except ValidationError as exc:
        print(f"[INVALID REQUEST] {exc}", file=sys.stderr)
        return 2
    except OSError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
