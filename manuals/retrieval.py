"""
manuals/retrieval.py
--------------------
Single entry point for the dialogue orchestrator: "given an owner and a
query string, return the best-matching manual chunks".

The query is embedded with the same embedder used at ingestion, then ranked
against the owner's vector documents by cosine similarity. An owner without
vectors, or a blank query, yields no chunks rather than an error.
"""

from typing import List, Optional

from manuals.embedder import Embedder
from manuals.logging_config import get_logger
from manuals.owners import OwnerResolver
from manuals.record_store import ManualRecordStore
from manuals.vector_store import VectorStore

log = get_logger(__name__)

DEFAULT_TOP_K          = 3
FALLBACK_EXCERPT_CHARS = 1200


class RetrievalFacade:
    def __init__(
        self,
        vector_store: VectorStore,
        embedder: Embedder,
        record_store: ManualRecordStore,
        resolver: OwnerResolver,
        top_k: int = DEFAULT_TOP_K,
    ):
        self.vector_store = vector_store
        self.embedder     = embedder
        self.record_store = record_store
        self.resolver     = resolver
        self.top_k        = top_k

    def retrieve(self, owner_id: str, query_text: str, top_k: Optional[int] = None) -> List[str]:
        """
        Ranked chunk texts for `query_text` within one owner's manual.

        Raises:
            UpstreamError: If the query cannot be embedded.
        """
        query_embedding = self.embedder.embed(query_text or "")
        if not query_embedding:
            return []
        chunks = self.vector_store.query(owner_id, query_embedding, top_k or self.top_k)
        log.debug("Retrieved %d chunk(s) for owner %s", len(chunks), owner_id)
        return chunks

    def build_context(
        self,
        conversation_id: str,
        query_text: str,
        top_k: Optional[int] = None,
    ) -> List[str]:
        """
        Chunks grounding a reply in one conversation.

        The orchestrator has already authorised the caller, so the owner is
        resolved without a principal check.

        Raises:
            NotFound: If the conversation's owner has no manual.
        """
        owner = self.resolver.resolve(conversation_id)
        self.record_store.get_or_raise(owner)
        return self.retrieve(owner.owner_id, query_text, top_k)

    def grounding_text(
        self,
        conversation_id: str,
        query_text: str,
        top_k: Optional[int] = None,
        fallback_chars: int = FALLBACK_EXCERPT_CHARS,
    ) -> str:
        """
        Retrieved chunks joined by newlines, or the opening of the manual
        when retrieval finds nothing.
        """
        owner  = self.resolver.resolve(conversation_id)
        record = self.record_store.get_or_raise(owner)
        chunks = self.retrieve(owner.owner_id, query_text, top_k)
        if chunks:
            return "\n".join(chunks)
        log.info("No retrieved context for %s — falling back to manual excerpt", owner)
        return record.manual_text[:fallback_chars]
