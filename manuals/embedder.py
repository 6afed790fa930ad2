"""
manuals/embedder.py
-------------------
Vector encoding adapter for the manual engine.

Converts chunk and query text into dense embeddings via Ollama's
/api/embeddings endpoint. The engine only depends on the `Embedder`
protocol (`embed(text) -> List[float]`); `OllamaEmbedder` is the production
implementation, shared process-wide through `get_embedder()`.

Prerequisite:
    ollama pull nomic-embed-text
    ollama serve
"""

import re
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Protocol, Sequence

from manuals._http import ollama_post
from manuals.errors import UpstreamError
from manuals.logging_config import get_logger

log = get_logger(__name__)

# ── Constants ──────────────────────────────────────────────────────────────────
DEFAULT_OLLAMA_URL  = "http://localhost:11434"
DEFAULT_EMBED_MODEL = "nomic-embed-text"
DEFAULT_TIMEOUT     = 60
DEFAULT_WORKERS     = 4
# ──────────────────────────────────────────────────────────────────────────────

_WHITESPACE = re.compile(r"\s+")


class Embedder(Protocol):
    def embed(self, text: str) -> List[float]:
        ...


def sanitize(text: str) -> str:
    """Collapses whitespace runs to single spaces and strips the ends."""
    return _WHITESPACE.sub(" ", text or "").strip()


class OllamaEmbedder:
    """Embeds text with a local Ollama embedding model."""

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_EMBED_MODEL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.url     = base_url.rstrip("/") + "/api/embeddings"
        self.model   = model
        self.timeout = timeout

    def embed(self, text: str) -> List[float]:
        """
        Embeds a single string.

        Returns:
            The embedding as a list of floats, or [] for blank input
            (no request is made in that case).

        Raises:
            UpstreamError: If Ollama is unreachable, times out, or answers
                           without an 'embedding' key.
        """
        sanitized = sanitize(text)
        if not sanitized:
            return []

        try:
            response = ollama_post(
                self.url,
                {"model": self.model, "prompt": sanitized},
                timeout=self.timeout,
            )
        except (ConnectionError, RuntimeError) as exc:
            raise UpstreamError(f"Embedding request failed: {exc}") from exc

        if "embedding" not in response:
            raise UpstreamError(
                f"Ollama embedding response missing 'embedding' key.\n"
                f"Got: {response}"
            )
        return [float(x) for x in response["embedding"]]


def embed_many(
    embedder: Embedder,
    texts: Sequence[str],
    max_workers: int = DEFAULT_WORKERS,
) -> List[List[float]]:
    """
    Embeds several strings concurrently, preserving input order.

    The first failure fails the whole batch; remaining results are discarded.

    Raises:
        UpstreamError: If any single embedding call fails.
    """
    if not texts:
        return []

    try:
        if max_workers <= 1 or len(texts) == 1:
            vectors = [embedder.embed(text) for text in texts]
        else:
            with ThreadPoolExecutor(max_workers=min(max_workers, len(texts))) as pool:
                vectors = list(pool.map(embedder.embed, texts))
    except UpstreamError:
        raise
    except Exception as exc:
        raise UpstreamError(f"Embedding failed: {exc}") from exc

    if any(len(vector) == 0 for vector in vectors):
        raise UpstreamError("Embedding collaborator returned an empty vector for a chunk.")

    log.debug("Embedded %d text(s) with %d worker(s)", len(vectors), max_workers)
    return vectors


# ── Process-wide singleton ─────────────────────────────────────────────────────

_embedder: Optional[OllamaEmbedder] = None
_embedder_lock = threading.Lock()


def get_embedder(
    base_url: str = DEFAULT_OLLAMA_URL,
    model: str = DEFAULT_EMBED_MODEL,
    timeout: float = DEFAULT_TIMEOUT,
) -> OllamaEmbedder:
    """
    Returns the shared embedder, creating it on first use.

    Arguments only apply to the first call; later calls return the
    already-initialised instance unchanged.
    """
    global _embedder
    if _embedder is not None:
        return _embedder

    with _embedder_lock:
        # Another thread may have finished initialisation while we waited.
        if _embedder is None:
            log.info("Initialising embedding model '%s' at %s", model, base_url)
            _embedder = OllamaEmbedder(base_url=base_url, model=model, timeout=timeout)
    return _embedder


def reset_embedder() -> None:
    """Drops the shared embedder so the next `get_embedder()` rebuilds it."""
    global _embedder
    with _embedder_lock:
        _embedder = None
