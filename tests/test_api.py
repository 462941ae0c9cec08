import asyncio

import pytest
from fastapi.testclient import TestClient

from smartproof.api.deps import get_dispatcher, get_orchestrator
from smartproof.core.config import settings
from smartproof.main import app
from smartproof.workflow import Orchestrator
from smartproof.workflow.errors import StoreUnavailableError

from conftest import SpyStage, make_registry, sql_table_names


@pytest.fixture()
def dispatched() -> list[str]:
    return []


@pytest.fixture()
def client(canonical_orchestrator, dispatched):
    def dispatch(document_id: str) -> str:
        dispatched.append(document_id)
        return f"task-{len(dispatched)}"

    app.dependency_overrides[get_orchestrator] = lambda: canonical_orchestrator
    app.dependency_overrides[get_dispatcher] = lambda: dispatch
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_start_registers_and_dispatches(client, dispatched):
    response = client.post("/api/v1/workflows/doc-1")

    assert response.status_code == 202
    assert response.json() == {"documentId": "doc-1", "status": "pending", "taskId": "task-1"}
    assert dispatched == ["doc-1"]

    state = client.get("/api/v1/workflows/doc-1").json()
    assert state["overallStatus"] == "pending"
    assert list(state["stageResults"]) == [
        "content-extraction",
        "visual-analysis",
        "reference-lookup",
        "compliance-check",
        "knowledge-indexing",
        "report-synthesis",
    ]


def test_start_twice_conflicts(client, dispatched):
    client.post("/api/v1/workflows/doc-1")

    response = client.post("/api/v1/workflows/doc-1")

    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "AlreadyStarted"
    assert dispatched == ["doc-1"]


def test_unknown_document_is_404(client):
    assert client.get("/api/v1/workflows/nope").status_code == 404
    assert client.get("/api/v1/workflows/nope/report").status_code == 404
    assert client.post("/api/v1/workflows/nope/resume").status_code == 404


def test_report_conflicts_until_generated(client):
    client.post("/api/v1/workflows/doc-1")

    response = client.get("/api/v1/workflows/doc-1/report")

    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "IncompleteWorkflow"


def test_report_after_run(client, canonical_orchestrator):
    client.post("/api/v1/workflows/doc-1")
    asyncio.run(canonical_orchestrator.run("doc-1"))

    report = client.get("/api/v1/workflows/doc-1/report")
    html = client.get("/api/v1/workflows/doc-1/report.html")

    assert report.status_code == 200
    assert report.json()["overallStatus"] == "warning"
    assert report.json()["summary"]["totalIssues"] == 3
    assert html.status_code == 200
    assert html.headers["content-type"].startswith("text/html")
    assert "Compliance Report" in html.text


def test_resume_redispatches(client, dispatched):
    client.post("/api/v1/workflows/doc-1")

    response = client.post("/api/v1/workflows/doc-1/resume")

    assert response.status_code == 202
    assert response.json()["taskId"] == "task-2"
    assert dispatched == ["doc-1", "doc-1"]


def test_store_outage_is_503(store):
    class DownStore(type(store)):
        async def get(self, document_id):
            raise StoreUnavailableError("offline", document_id=document_id)

    orchestrator = Orchestrator(
        DownStore(store.blobs),
        make_registry(("a", SpyStage(), True)),
        default_timeout=5.0,
    )
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    try:
        with TestClient(app) as client:
            response = client.get("/api/v1/workflows/doc-1")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert response.json()["detail"]["kind"] == "StoreUnavailable"


def test_state_readable_when_rules_dir_is_missing(tmp_path, monkeypatch, dispatched):
    monkeypatch.setattr(settings, "BLOB_STORAGE_ROOT", str(tmp_path / "state"))
    monkeypatch.setattr(settings, "RULES_DIR", str(tmp_path / "no-rules"))
    app.dependency_overrides[get_dispatcher] = lambda: dispatched.append
    try:
        with TestClient(app) as client:
            started = client.post("/api/v1/workflows/doc-1")
            state = client.get("/api/v1/workflows/doc-1")
            report = client.get("/api/v1/workflows/doc-1/report")
    finally:
        app.dependency_overrides.clear()

    assert started.status_code == 202
    assert state.status_code == 200
    assert state.json()["overallStatus"] == "pending"
    assert report.status_code == 409
    assert dispatched == ["doc-1"]


def test_startup_creates_sql_tables(sql_backend):
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200

    assert {"workflow_states", "compliance_reports", "report_artifacts"} <= asyncio.run(
        sql_table_names(sql_backend)
    )
