"""
manuals/service.py
------------------
Entry points of the manual engine.

Each call resolves its owner exactly once and passes it explicitly to the
record store:

    ingest(request, principal)        conversation-scoped upload
    ingest_for_project(project, ...)  project-scoped upload
    status / remove_source            conversation-scoped reads and removals
    *_for_project                     project-scoped variants
    delete_manual_data(owner_id)      cascade hook for project/conversation deletion
    retrieval                         `RetrievalFacade` for the dialogue orchestrator
"""

from typing import List, Optional

from manuals.errors import BadRequest
from manuals.ingestion import create_sources
from manuals.logging_config import get_logger
from manuals.models import IngestRequest, ManualCacheRecord, Owner
from manuals.owners import OwnerResolver
from manuals.record_store import ManualRecordStore, MergeMode
from manuals.retrieval import RetrievalFacade
from validator.json_validator import ManualStatus, ManualSummary

log = get_logger(__name__)


class ManualService:
    def __init__(
        self,
        resolver: OwnerResolver,
        record_store: ManualRecordStore,
        retrieval: RetrievalFacade,
    ):
        self.resolver     = resolver
        self.record_store = record_store
        self.retrieval    = retrieval

    # ── Ingestion ──────────────────────────────────────────────────────────────

    def ingest(self, request: IngestRequest, principal: Optional[str] = None) -> ManualSummary:
        """
        Adds material to the manual of the request's conversation owner.

        Raises:
            BadRequest:    Missing conversationId, or nothing to persist.
            NotFound:      Unknown conversation for an authenticated caller.
            Forbidden:     Conversation belongs to another user.
            UpstreamError: Embedding failed; stored state is unchanged.
        """
        if not (request.conversation_id or "").strip():
            raise BadRequest("conversationId is required.")
        owner = self.resolver.resolve(request.conversation_id, principal)
        return self._ingest(owner, request)

    def ingest_for_project(
        self,
        project_id: str,
        request: IngestRequest,
        principal: Optional[str] = None,
    ) -> ManualSummary:
        owner = self.resolver.resolve_project(project_id, principal)
        return self._ingest(owner, request)

    def _ingest(self, owner: Owner, request: IngestRequest) -> ManualSummary:
        log.info("Ingest for %s — mode=%s files=%d instruction=%s",
                 owner, request.mode, len(request.files), bool(request.instruction_text))
        new_sources = create_sources(request.files, request.instruction_text)
        return self.record_store.ingest(
            owner,
            new_sources,
            request.embed_ratio,
            MergeMode.parse(request.mode),
        )

    # ── Status ─────────────────────────────────────────────────────────────────

    def status(self, conversation_id: str, principal: Optional[str] = None) -> ManualStatus:
        owner = self.resolver.resolve(conversation_id, principal)
        return self.record_store.status(owner)

    def status_for_project(self, project_id: str, principal: Optional[str] = None) -> ManualStatus:
        owner = self.resolver.resolve_project(project_id, principal)
        return self.record_store.status(owner)

    def has_manual(self, conversation_id: str) -> bool:
        owner = self.resolver.resolve(conversation_id)
        record = self.record_store.get(owner)
        return bool(record and record.manual_text.strip())

    def get_manual_or_raise(self, conversation_id: str) -> ManualCacheRecord:
        owner = self.resolver.resolve(conversation_id)
        return self.record_store.get_or_raise(owner)

    # ── Removal ────────────────────────────────────────────────────────────────

    def remove_source(
        self,
        conversation_id: str,
        source_id: str,
        principal: Optional[str] = None,
    ) -> ManualStatus:
        owner = self.resolver.resolve(conversation_id, principal)
        return self.record_store.remove_source(owner, source_id)

    def remove_source_for_project(
        self,
        project_id: str,
        source_id: str,
        principal: Optional[str] = None,
    ) -> ManualStatus:
        owner = self.resolver.resolve_project(project_id, principal)
        return self.record_store.remove_source(owner, source_id)

    def delete_manual_data(self, owner_id: str) -> None:
        """Called by the project/conversation lifecycle when an owner is deleted."""
        if not (owner_id or "").strip():
            raise BadRequest("ownerId is required.")
        self.record_store.delete(owner_id)

    # ── Retrieval ──────────────────────────────────────────────────────────────

    def retrieve(self, owner_id: str, query_text: str, top_k: Optional[int] = None) -> List[str]:
        return self.retrieval.retrieve(owner_id, query_text, top_k)
