import pytest
from fastapi.testclient import TestClient

from app import build_service
from service.api import create_app

from conftest import FakeEmbedder

ALICE = {"X-User-Id": "alice"}
BOB   = {"X-User-Id": "bob"}


def _body(conversation_id="guest-1", ratio=1.0, text="Refunds within 30 days.", **extra):
    body = {
        "conversationId": conversation_id,
        "embedRatio": ratio,
        "files": [{"rawText": text, "label": "policy.txt", "sizeBytes": len(text), "mimeType": "text/plain"}],
    }
    body.update(extra)
    return body


@pytest.fixture
def make_client(storage_dir, app_db):
    def factory(embedder=None):
        app = create_app(lambda: build_service(storage_dir, app_db, embedder or FakeEmbedder()))
        return TestClient(app)
    return factory


@pytest.fixture
def client(make_client):
    with make_client() as c:
        yield c


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_guest_ingest_status_remove_cycle(client):
    ingested = client.post("/api/guest/manuals", json=_body(instructionText="Be brief."))
    assert ingested.status_code == 200
    summary = ingested.json()
    assert summary["fileCount"] == 1
    assert [s["type"] for s in summary["sources"]] == ["file", "instruction"]

    status = client.get("/api/guest/manuals/guest-1/status").json()
    assert status["hasManual"] is True
    assert status["stats"]["chunkCount"] == summary["chunkCount"]

    for source in summary["sources"]:
        removed = client.delete(f"/api/guest/manuals/guest-1/sources/{source['id']}")
        assert removed.status_code == 200

    assert removed.json() == {"hasManual": False}
    assert client.get("/api/guest/manuals/guest-1/status").json() == {"hasManual": False}


def test_authenticated_routes_require_user(client):
    assert client.post("/api/manuals", json=_body("conv-solo")).status_code == 401
    assert client.get("/api/manuals/conv-solo/status").status_code == 401


def test_authenticated_ingest_and_ownership(client):
    assert client.post("/api/manuals", json=_body("conv-solo"), headers=BOB).status_code == 200
    assert client.get("/api/manuals/conv-solo/status", headers=ALICE).status_code == 403
    assert client.get("/api/manuals/conv-unknown/status", headers=ALICE).status_code == 404
    assert client.get("/api/manuals/conv-solo/status", headers=BOB).json()["hasManual"] is True


def test_project_routes(client):
    created = client.post("/api/projects/proj-1/manuals", json=_body(None, mode="replace"), headers=ALICE)
    assert created.status_code == 200

    shared = client.get("/api/manuals/conv-p2/status", headers=ALICE).json()
    assert shared["hasManual"] is True

    assert client.get("/api/projects/proj-1/manuals/status", headers=BOB).status_code == 403

    source_id = created.json()["sources"][0]["id"]
    removed = client.delete(f"/api/projects/proj-1/manuals/sources/{source_id}", headers=ALICE)
    assert removed.json() == {"hasManual": False}

    client.post("/api/projects/proj-1/manuals", json=_body(None), headers=ALICE)
    assert client.delete("/api/projects/proj-1/manuals", headers=ALICE).status_code == 204
    assert client.get("/api/projects/proj-1/manuals/status", headers=ALICE).json() == {"hasManual": False}


def test_empty_ingest_is_bad_request(client):
    response = client.post("/api/guest/manuals", json=_body(text="   "))
    assert response.status_code == 400


def test_unknown_source_is_not_found(client):
    client.post("/api/guest/manuals", json=_body())
    assert client.delete("/api/guest/manuals/guest-1/sources/missing").status_code == 404


@pytest.mark.parametrize("overrides", [{"embedRatio": 0.1}, {"embedRatio": 1.5}, {"mode": "merge"}])
def test_invalid_request_schema_is_rejected(client, overrides):
    assert client.post("/api/guest/manuals", json={**_body(), **overrides}).status_code == 422


def test_embedding_failure_maps_to_service_unavailable(make_client):
    with make_client(FakeEmbedder(fail_after=0)) as client:
        response = client.post("/api/guest/manuals", json=_body())
        assert response.status_code == 503
        assert client.get("/api/guest/manuals/guest-1/status").json() == {"hasManual": False}
