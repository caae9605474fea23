"""Tests for the FastAPI application endpoints.

This module contains integration tests for the Akin API endpoints,
including health checks, activity logging, the pipeline trigger and
recommendation sampling.
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from akin.api.dependencies import get_engine
from akin.api.main import app
from akin.api.metrics import metrics_service
from akin.recommender.engine import RecommendationEngine
from akin.recommender.store import InMemoryDocumentStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

# Create test client
client = TestClient(app)


@pytest.fixture
def engine():
    """Fresh engine injected into every route."""
    engine = RecommendationEngine(
        InMemoryDocumentStore(),
        clock=lambda: NOW,
        stage_listener=metrics_service.record_stage,
    )
    metrics_service.reset()
    app.dependency_overrides[get_engine] = lambda: engine
    yield engine
    app.dependency_overrides.clear()


def _log(user_id, item_id, action="view"):
    response = client.post(
        "/activity",
        json={"user_id": user_id, "item_id": item_id, "item_metadata": "item", "action": action},
    )
    assert response.status_code == 201


def test_ping_endpoint():
    """Test that the /ping endpoint returns correct status and JSON."""
    response = client.get("/ping")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ping_sets_request_id_header():
    response = client.get("/ping")
    assert response.headers.get("X-Request-ID")


def test_caller_request_id_is_echoed():
    response = client.get("/ping", headers={"X-Request-ID": "trace-123"})
    assert response.headers["X-Request-ID"] == "trace-123"


def test_log_activity_endpoint(engine):
    response = client.post(
        "/activity",
        json={
            "user_id": "U1",
            "item_id": "A",
            "action": "purchase",
            "occurred_at": "2024-05-01T00:00:00Z",
        },
    )

    assert response.status_code == 201
    assert response.json() == {"status": "ok"}
    assert engine.store.count("user_activity") == 1


def test_remove_activity_endpoint(engine):
    _log("U1", "A")
    _log("U1", "A")

    response = client.request(
        "DELETE", "/activity", json={"user_id": "U1", "item_id": "A", "action": "view"}
    )

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "removed": 2}


def test_recalculate_then_sample(engine):
    _log("U1", "A")
    _log("U1", "B")
    _log("U2", "A")

    response = client.post("/recalculate")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert set(data["durations_ms"]) == {"activity", "similarity", "recommendation"}

    response = client.get("/recommend/U2?n=5")
    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == "U2"
    assert sorted(rec["item"] for rec in data["recommendations"]) == ["A", "B"]
    assert all(rec["score"] == pytest.approx(0.7071067811865475) for rec in data["recommendations"])


def test_sample_size_is_respected(engine):
    _log("U1", "A")
    _log("U1", "B")
    _log("U2", "A")
    client.post("/recalculate")

    response = client.get("/recommend/U2?n=1")

    assert len(response.json()["recommendations"]) == 1


def test_sample_for_unknown_user_is_empty(engine):
    response = client.get("/recommend/nobody")

    assert response.status_code == 200
    assert response.json() == {"user_id": "nobody", "recommendations": []}


def test_all_recommendations_endpoint(engine):
    _log("U1", "A")
    _log("U1", "B")
    _log("U2", "A")
    client.post("/recalculate")

    response = client.get("/recommend/U1/all")

    assert response.status_code == 200
    data = response.json()
    assert data["recommendations"] == [
        {"item": "A", "item_metadata": "item", "weight": pytest.approx(0.7071067811865475)}
    ]


def test_all_recommendations_unknown_user_is_404(engine):
    response = client.get("/recommend/nobody/all")

    assert response.status_code == 404
    data = response.json()
    assert data["error"] == "NotFoundError"
    assert data["details"]["user_id"] == "nobody"


def test_do_not_recommend_endpoint(engine):
    _log("U1", "A")
    _log("U1", "B")
    _log("U2", "A")
    client.post("/recalculate")

    response = client.post("/recommend/U2/do-not-recommend", json={"item_id": "B"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "do_not_recommend": ["B"]}

    samples = client.get("/recommend/U2").json()["recommendations"]
    assert [rec["item"] for rec in samples] == ["A"]


def test_config_endpoints(engine):
    assert client.put("/config/concurrency", json={"concurrency": 4}).status_code == 200
    assert client.put(
        "/config/decay", json={"max_days": 30, "exponent": 2, "easing": 1}
    ).status_code == 200
    assert client.put("/config/action-weights/purchase", json={"weight": 3}).status_code == 200

    config = engine.config
    assert config.concurrency == 4
    assert config.decay.max_days == 30
    assert config.action_weight("purchase") == 3.0


def test_invalid_concurrency_returns_400(engine):
    response = client.put("/config/concurrency", json={"concurrency": 0})

    assert response.status_code == 400
    assert response.json()["error"] == "ConfigurationError"
    assert engine.config.concurrency == 2


def test_ignore_list_endpoints(engine):
    assert client.put("/ignored/bot").status_code == 200
    assert client.put("/ignored/bot").status_code == 200
    assert client.get("/ignored").json() == {"ignored": ["bot"]}

    assert client.delete("/ignored/bot").status_code == 200
    assert client.get("/ignored").json() == {"ignored": []}


def test_metrics_endpoint_reports_stages(engine):
    _log("U1", "A")
    client.post("/recalculate")
    client.get("/recommend/U1")

    data = client.get("/metrics").json()

    assert set(data["stages"]) == {"activity", "similarity", "recommendation"}
    assert data["stages"]["activity"]["runs"] == 1
    assert data["sample_count"] == 1


def test_snapshot_endpoint(engine, tmp_path, monkeypatch):
    monkeypatch.setenv("AKIN_STORE_DIR", str(tmp_path))
    _log("U1", "A")

    response = client.post("/store/snapshot")

    assert response.status_code == 200
    assert (tmp_path / "store_snapshot.joblib").exists()


def test_activity_item_endpoints(engine):
    response = client.put("/items/A", json={"item_metadata": "shoe"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "item": {"item": "A", "item_metadata": "shoe"}}

    assert client.get("/items").json() == {"items": [{"item": "A", "item_metadata": "shoe"}]}

    assert client.delete("/items/A").json() == {"status": "ok", "removed": 1}
    assert client.get("/items").json() == {"items": []}
