from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from notebookhub.app import create_app
from notebookhub.config import Settings
from notebookhub.observability import MetricsRecorder
from notebookhub.spine import SpineClient

_REPO_SEEDS = Path(__file__).resolve().parents[1] / "seeds" / "notebooks.yaml"


def _spine_client(status: int = 200) -> SpineClient:
    transport = httpx.MockTransport(lambda request: httpx.Response(status, json={"status": "ok"}))
    return SpineClient("http://spine.test", transport=transport)


def _build_client(tmp_path: Path, **overrides) -> TestClient:
    settings = Settings(
        data_dir=str(tmp_path),
        seed_path=str(_REPO_SEEDS),
        seed_on_startup=overrides.pop("seed_on_startup", False),
        max_list_limit=overrides.pop("max_list_limit", 200),
    )
    app = create_app(
        settings=settings,
        spine_client=overrides.pop("spine_client", _spine_client()),
        metrics=overrides.pop("metrics", MetricsRecorder(enabled=False)),
    )
    return TestClient(app, raise_server_exceptions=overrides.pop("raise_server_exceptions", True))


@pytest.fixture()
def client(tmp_path: Path) -> TestClient:
    return _build_client(tmp_path)


def _create_notebook(client: TestClient, **payload) -> dict:
    response = client.post("/api/notebooks", json={"name": "Finance", **payload})
    assert response.status_code == 201, response.text
    return response.json()


def test_notebook_listing_includes_stats(client: TestClient) -> None:
    notebook = _create_notebook(client, category="Business")
    client.post("/api/documents", json={"notebook_id": notebook["id"], "title": "Budget"})

    response = client.get("/api/notebooks")
    assert response.status_code == 200
    data = response.json()
    assert data["stats"] == {"totalNotebooks": 1, "totalDocs": 1, "avgProgress": 10}
    assert data["notebooks"][0]["docs_count"] == 1
    assert data["notebooks"][0]["category"] == "Business"


def test_create_notebook_requires_name(client: TestClient) -> None:
    response = client.post("/api/notebooks", json={"description": "no name"})
    assert response.status_code == 400


def test_invalid_json_body_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/notebooks",
        content="not json",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400
    assert client.post("/api/notebooks", json=["Finance"]).status_code == 400
    not_utf8 = client.post(
        "/api/notebooks",
        content=b'{"name": "\xff"}',
        headers={"content-type": "application/json"},
    )
    assert not_utf8.status_code == 400


def test_document_lifecycle_drives_progress(client: TestClient) -> None:
    notebook = _create_notebook(client)
    created = client.post(
        "/api/documents",
        json={"notebook_id": notebook["id"], "title": "Plan", "content": "Draft"},
    )
    assert created.status_code == 201
    document = created.json()

    detail = client.get(f"/api/notebooks/{notebook['id']}").json()
    assert detail["notebook"]["progress"] == 10
    assert detail["notebook"]["status"] == "in_progress"
    assert [item["id"] for item in detail["documents"]] == [document["id"]]

    patched = client.patch(f"/api/documents/{document['id']}", json={"title": "Plan v2"})
    assert patched.status_code == 200
    assert patched.json()["title"] == "Plan v2"
    assert client.get(f"/api/documents/{document['id']}").json()["content"] == "Draft"

    deleted = client.delete(f"/api/documents/{document['id']}")
    assert deleted.json() == {"success": True}
    detail = client.get(f"/api/notebooks/{notebook['id']}").json()
    assert (detail["notebook"]["progress"], detail["notebook"]["status"]) == (0, "not_started")
    assert client.get(f"/api/documents/{document['id']}").status_code == 404


def test_ten_documents_complete_a_notebook(client: TestClient) -> None:
    notebook = _create_notebook(client)
    for index in range(10):
        client.post("/api/documents", json={"notebook_id": notebook["id"], "title": f"Doc {index}"})
    data = client.get(f"/api/notebooks/{notebook['id']}").json()["notebook"]
    assert (data["progress"], data["status"], data["docs_count"]) == (100, "completed", 10)


def test_document_creation_validation(client: TestClient) -> None:
    notebook = _create_notebook(client)
    assert client.post("/api/documents", json={"title": "No notebook"}).status_code == 400
    assert client.post("/api/documents", json={"notebook_id": notebook["id"]}).status_code == 400
    missing = client.post("/api/documents", json={"notebook_id": "missing", "title": "Orphan"})
    assert missing.status_code == 404
    bad_order = client.post(
        "/api/documents",
        json={"notebook_id": notebook["id"], "title": "Bad", "order_index": "first"},
    )
    assert bad_order.status_code == 400


def test_patch_notebook_override_and_validation(client: TestClient) -> None:
    notebook = _create_notebook(client)
    response = client.patch(
        f"/api/notebooks/{notebook['id']}",
        json={"description": "Money matters", "progress": 40, "status": "in_progress"},
    )
    assert response.status_code == 200
    body = response.json()
    assert (body["description"], body["progress"], body["status"]) == ("Money matters", 40, "in_progress")

    assert client.patch(f"/api/notebooks/{notebook['id']}", json={"progress": 120}).status_code == 400
    assert client.patch(f"/api/notebooks/{notebook['id']}", json={"status": "done"}).status_code == 400
    assert client.patch("/api/notebooks/missing", json={"name": "x"}).status_code == 404


def test_delete_notebook(client: TestClient) -> None:
    notebook = _create_notebook(client)
    assert client.delete(f"/api/notebooks/{notebook['id']}").json() == {"success": True}
    assert client.get(f"/api/notebooks/{notebook['id']}").status_code == 404
    assert client.delete(f"/api/notebooks/{notebook['id']}").status_code == 404


def test_conversations_and_topics_endpoints(client: TestClient) -> None:
    logged = client.post(
        "/api/conversations",
        json={"ai_provider": "claude", "title": "Roadmap", "project_key": "hub", "message_count": 4},
    )
    assert logged.status_code == 201
    client.post("/api/conversations", json={"ai_provider": "openai", "title": "Other", "project_key": "site"})
    assert client.post("/api/conversations", json={"title": "no provider"}).status_code == 400

    filtered = client.get("/api/conversations", params={"provider": "claude"}).json()["conversations"]
    assert [item["title"] for item in filtered] == ["Roadmap"]
    assert len(client.get("/api/conversations", params={"limit": "1"}).json()["conversations"]) == 1
    assert client.get("/api/conversations", params={"limit": "0"}).status_code == 400
    assert client.get("/api/conversations", params={"limit": "ten"}).status_code == 400

    topic = client.post("/api/topics", json={"title": "Roadmap", "topic_key": "roadmap", "project_key": "hub"})
    assert topic.status_code == 201
    assert client.post("/api/topics", json={"title": "Missing key"}).status_code == 400
    topics = client.get("/api/topics", params={"project": "hub"}).json()["topics"]
    assert [item["topic_key"] for item in topics] == ["roadmap"]


def test_search_endpoint(client: TestClient) -> None:
    notebook = _create_notebook(client, description="Budget planning")
    client.post("/api/documents", json={"notebook_id": notebook["id"], "title": "Budget 2025"})
    client.post("/api/conversations", json={"ai_provider": "claude", "title": "Budget talk"})

    response = client.get("/api/search", params={"q": "budget"})
    assert response.status_code == 200
    data = response.json()
    assert data["query"] == "budget"
    assert data["total"] == 3
    assert {item["result_type"] for item in data["results"]} == {"notebook", "document", "conversation"}

    assert client.get("/api/search").status_code == 400
    assert client.get("/api/search", params={"q": "   "}).status_code == 400


def test_spine_proxy(tmp_path: Path) -> None:
    healthy = _build_client(tmp_path / "ok")
    response = healthy.get("/api/spine")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

    broken = _build_client(tmp_path / "down", spine_client=_spine_client(status=502))
    failed = broken.get("/api/spine")
    assert failed.status_code == 500
    assert failed.json()["detail"] == "Failed to connect to spine"


def test_startup_seeds_default_notebooks(tmp_path: Path) -> None:
    client = _build_client(tmp_path, seed_on_startup=True)
    stats = client.get("/api/notebooks").json()["stats"]
    assert stats == {"totalNotebooks": 15, "totalDocs": 0, "avgProgress": 0}


def test_pages_render(client: TestClient) -> None:
    notebook = _create_notebook(client, description="Budget planning")
    client.post(
        "/api/documents",
        json={"notebook_id": notebook["id"], "title": "Quarterly forecast", "content": "Numbers"},
    )

    index = client.get("/")
    assert index.status_code == 200, index.text
    assert "Notebook Hub" in index.text
    assert "Finance" in index.text

    page = client.get(f"/notebooks/{notebook['id']}")
    assert page.status_code == 200, page.text
    assert "Quarterly forecast" in page.text
    assert "10% complete" in page.text
    assert client.get("/notebooks/missing").status_code == 404


def test_metrics_endpoint(tmp_path: Path) -> None:
    disabled = _build_client(tmp_path / "plain")
    assert disabled.get("/metrics").status_code == 404

    metrics = MetricsRecorder(prometheus_enabled=True, registry=CollectorRegistry())
    client = _build_client(tmp_path / "prom", metrics=metrics)
    _create_notebook(client, category="Business")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert 'notebookhub_notebooks_created_total{category="Business"} 1.0' in response.text


def test_prometheus_metrics_accept_optional_project(tmp_path: Path) -> None:
    metrics = MetricsRecorder(prometheus_enabled=True, registry=CollectorRegistry())
    client = _build_client(tmp_path, metrics=metrics)

    assert client.get("/api/search", params={"q": "budget"}).status_code == 200
    assert client.get("/api/search", params={"q": "budget", "project": "ops"}).status_code == 200

    first = client.post("/api/conversations", json={"ai_provider": "claude", "title": "Loose"})
    second = client.post(
        "/api/conversations",
        json={"ai_provider": "claude", "title": "Scoped", "project_key": "hub"},
    )
    assert (first.status_code, second.status_code) == (201, 201)

    payload = client.get("/metrics").text
    assert 'notebookhub_search_queries_total{project_key="ops"} 1.0' in payload
    assert 'notebookhub_conversations_logged_total{project_key="hub",provider="claude"} 1.0' in payload


class _FailingMetrics(MetricsRecorder):
    def increment(self, metric: str, *, value: int = 1, **tags) -> None:
        raise ValueError("metrics backend rejected sample")


def test_failures_after_write_are_not_reported_as_bad_input(tmp_path: Path) -> None:
    client = _build_client(tmp_path, metrics=_FailingMetrics(), raise_server_exceptions=False)

    response = client.post("/api/conversations", json={"ai_provider": "claude", "title": "Saved"})
    assert response.status_code == 500
    assert client.post("/api/notebooks", json={"name": "Finance"}).status_code == 500


def test_list_limit_is_capped(tmp_path: Path) -> None:
    client = _build_client(tmp_path, max_list_limit=2)
    for index in range(3):
        client.post("/api/conversations", json={"ai_provider": "claude", "title": f"Chat {index}"})
        client.post("/api/topics", json={"title": f"Topic {index}", "topic_key": f"topic-{index}"})

    conversations = client.get("/api/conversations", params={"limit": "50"}).json()["conversations"]
    topics = client.get("/api/topics", params={"limit": "50"}).json()["topics"]
    assert (len(conversations), len(topics)) == (2, 2)
