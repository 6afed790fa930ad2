"""
service/api.py
--------------
FastAPI service layer for the manual ingestion engine.

Authenticated routes take the caller's user id from the `X-User-Id` header,
which the upstream auth gateway sets after verifying the session. Guest
routes take none and are scoped to the guest session's conversation id.

    POST   /api/manuals                                     ingest (auth)
    GET    /api/manuals/{conversationId}/status             status (auth)
    DELETE /api/manuals/{conversationId}/sources/{sourceId} remove source (auth)
    POST   /api/guest/manuals                               ingest (guest)
    GET    /api/guest/manuals/{conversationId}/status       status (guest)
    DELETE /api/guest/manuals/{conversationId}/sources/{sourceId}
    POST   /api/projects/{projectId}/manuals                ingest for project (auth)
    GET    /api/projects/{projectId}/manuals/status
    DELETE /api/projects/{projectId}/manuals/sources/{sourceId}
    DELETE /api/projects/{projectId}/manuals                cascade delete (auth)

Run with:
    uvicorn service.api:app --host 0.0.0.0 --port 8000
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from app import EMBED_MODEL, build_service
from manuals.errors import ManualError
from manuals.logging_config import get_logger
from manuals.models import IngestRequest
from manuals.service import ManualService
from validator.json_validator import ValidationError

log = get_logger(__name__)


# ── Dependencies ───────────────────────────────────────────────────────────────

def get_service(request: Request) -> ManualService:
    return request.app.state.service


def require_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required.")
    return x_user_id.strip()


# ── App factory ────────────────────────────────────────────────────────────────

def create_app(service_factory: Callable[[], ManualService] = build_service) -> FastAPI:
    """
    Builds the API. The engine is assembled once at startup via the lifespan
    context manager and shared by every request.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Service startup — assembling manual engine")
        app.state.service = service_factory()
        yield
        log.info("Service shutdown")

    app = FastAPI(
        title       = "Manual Ingestion API",
        description = (
            "Upload manuals for a project, conversation or guest session and "
            "retrieve the fragments most relevant to a dialogue turn."
        ),
        version  = "1.0.0",
        lifespan = lifespan,
    )

    @app.exception_handler(ManualError)
    async def manual_error_handler(request: Request, exc: ManualError):
        level = log.error if exc.status_code >= 500 else log.info
        level("%s %s failed — %s: %s", request.method, request.url.path,
              type(exc).__name__, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(ValidationError)
    async def output_validation_handler(request: Request, exc: ValidationError):
        log.error("%s %s failed — output validation: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    # ── Ops ────────────────────────────────────────────────────────────────────

    @app.get("/health", tags=["ops"])
    def health_check(service: ManualService = Depends(get_service)):
        """Liveness probe. Does NOT trigger embedding calls."""
        return {
            "status":          "ok",
            "embedding_model": EMBED_MODEL,
            "vectors_loaded":  service.record_store.vector_store.document_count(),
        }

    # ── Authenticated conversation manuals ─────────────────────────────────────

    @app.post("/api/manuals", tags=["manuals"])
    def ingest_manuals(
        body: IngestRequest,
        user_id: str = Depends(require_user),
        service: ManualService = Depends(get_service),
    ):
        log.info("POST /api/manuals — user=%s conversation=%s", user_id, body.conversation_id)
        return service.ingest(body, principal=user_id)

    @app.get("/api/manuals/{conversation_id}/status", tags=["manuals"])
    def manual_status(
        conversation_id: str,
        user_id: str = Depends(require_user),
        service: ManualService = Depends(get_service),
    ):
        return service.status(conversation_id, principal=user_id)

    @app.delete("/api/manuals/{conversation_id}/sources/{source_id}", tags=["manuals"])
    def remove_manual_source(
        conversation_id: str,
        source_id: str,
        user_id: str = Depends(require_user),
        service: ManualService = Depends(get_service),
    ):
        log.info("DELETE source %s — conversation=%s", source_id, conversation_id)
        return service.remove_source(conversation_id, source_id, principal=user_id)

    # ── Guest manuals ──────────────────────────────────────────────────────────

    @app.post("/api/guest/manuals", tags=["guest"])
    def ingest_guest_manuals(body: IngestRequest, service: ManualService = Depends(get_service)):
        log.info("POST /api/guest/manuals — session=%s", body.conversation_id)
        return service.ingest(body)

    @app.get("/api/guest/manuals/{conversation_id}/status", tags=["guest"])
    def guest_manual_status(conversation_id: str, service: ManualService = Depends(get_service)):
        return service.status(conversation_id)

    @app.delete("/api/guest/manuals/{conversation_id}/sources/{source_id}", tags=["guest"])
    def remove_guest_source(
        conversation_id: str,
        source_id: str,
        service: ManualService = Depends(get_service),
    ):
        return service.remove_source(conversation_id, source_id)

    # ── Project manuals ────────────────────────────────────────────────────────

    @app.post("/api/projects/{project_id}/manuals", tags=["projects"])
    def ingest_project_manuals(
        project_id: str,
        body: IngestRequest,
        user_id: str = Depends(require_user),
        service: ManualService = Depends(get_service),
    ):
        log.info("POST project manuals — project=%s mode=%s", project_id, body.mode)
        return service.ingest_for_project(project_id, body, principal=user_id)

    @app.get("/api/projects/{project_id}/manuals/status", tags=["projects"])
    def project_manual_status(
        project_id: str,
        user_id: str = Depends(require_user),
        service: ManualService = Depends(get_service),
    ):
        return service.status_for_project(project_id, principal=user_id)

    @app.delete("/api/projects/{project_id}/manuals/sources/{source_id}", tags=["projects"])
    def remove_project_source(
        project_id: str,
        source_id: str,
        user_id: str = Depends(require_user),
        service: ManualService = Depends(get_service),
    ):
        return service.remove_source_for_project(project_id, source_id, principal=user_id)

    @app.delete("/api/projects/{project_id}/manuals", tags=["projects"], status_code=204)
    def delete_project_manuals(
        project_id: str,
        user_id: str = Depends(require_user),
        service: ManualService = Depends(get_service),
    ):
        owner = service.resolver.resolve_project(project_id, principal=user_id)
        service.delete_manual_data(owner.owner_id)

    return app


app = create_app()
