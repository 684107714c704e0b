"""Tests for error handling in the AdaptRec API.

Verifies that custom exceptions become JSON error responses with the right
status codes and that failed training passes leave sessions intact.
"""

import logging

import pytest
from fastapi.testclient import TestClient

from adaptrec.api import registry
from adaptrec.api.main import app
from adaptrec.api.metrics import metrics_service
from adaptrec.api.registry import SessionRegistry
from adaptrec.exceptions import (
    AdaptRecException,
    CatalogNotFoundError,
    SessionNotFoundError,
    TrainingError,
    UnknownProductError,
    ValidationError,
)
from adaptrec.recommender.store import InMemoryHistoryStore

client = TestClient(app)


@pytest.fixture
def session_registry(mixed_catalog):
    installed = SessionRegistry(mixed_catalog)
    registry.set_registry(installed)
    metrics_service.reset()
    yield installed
    registry.set_registry(None)


@pytest.fixture
def missing_catalog(tmp_path, monkeypatch):
    """Point the registry at a catalog path that does not exist."""
    registry.set_registry(None)
    monkeypatch.setenv("ADAPTREC_CATALOG_PATH", str(tmp_path / "missing.csv"))
    yield
    registry.set_registry(None)


def test_catalog_not_found_error(missing_catalog):
    response = client.post("/sessions/alice")

    assert response.status_code == 503
    data = response.json()
    assert data["error"] == "CatalogNotFoundError"
    assert "not found" in data["message"]
    assert data["details"]["catalog_path"].endswith("missing.csv")


def test_status_endpoint_with_missing_catalog(missing_catalog):
    response = client.get("/status")

    assert response.status_code == 200
    data = response.json()
    assert data["catalog_loaded"] is False
    assert data["num_products"] == 0
    assert data["scorer"] is None


def test_health_check_not_affected_by_catalog_errors(missing_catalog):
    assert client.get("/ping").status_code == 200


def test_recommend_without_session(session_registry):
    response = client.get("/recommend/ghost")

    assert response.status_code == 404
    data = response.json()
    assert data["error"] == "SessionNotFoundError"
    assert data["details"] == {"user_id": "ghost"}


@pytest.mark.parametrize(
    "method, path",
    [
        ("post", "/sessions/ghost/purchases"),
        ("get", "/sessions/ghost/stats"),
        ("post", "/sessions/ghost/reset"),
        ("delete", "/sessions/ghost"),
    ],
)
def test_session_endpoints_require_login(session_registry, method, path):
    kwargs = {"json": {"product_ids": [1]}} if path.endswith("purchases") else {}
    response = getattr(client, method)(path, **kwargs)

    assert response.status_code == 404
    assert response.json()["error"] == "SessionNotFoundError"


def test_unknown_product_records_nothing(session_registry):
    client.post("/sessions/alice")

    response = client.post("/sessions/alice/purchases", json={"product_ids": [1, 999]})

    assert response.status_code == 404
    assert response.json()["error"] == "UnknownProductError"
    assert session_registry.get("alice").history == []
    assert client.get("/sessions/alice/stats").json()["generation"] == 0


def test_empty_purchase_rejected(session_registry):
    client.post("/sessions/alice")

    response = client.post("/sessions/alice/purchases", json={"product_ids": []})

    assert response.status_code == 422


@pytest.mark.parametrize("top_n", ["abc", "-1", "101"])
def test_invalid_top_n_parameter(session_registry, top_n):
    client.post("/sessions/alice")
    response = client.get(f"/recommend/alice?top_n={top_n}")
    assert response.status_code == 422


def test_zero_top_n_parameter(session_registry):
    client.post("/sessions/alice")
    client.post("/sessions/alice/purchases", json={"product_ids": [1]})

    response = client.get("/recommend/alice?top_n=0")

    assert response.status_code == 200
    assert response.json()["recommendations"] == []


def test_training_failure_keeps_previous_model(session_registry, monkeypatch):
    client.post("/sessions/alice")
    client.post("/sessions/alice/purchases", json={"product_ids": [1]})
    session = session_registry.get("alice")
    before = client.get("/sessions/alice/stats").json()

    def boom(history):
        raise FloatingPointError("loss became NaN")

    monkeypatch.setattr(session.service.scorer, "train", boom)
    response = client.post("/sessions/alice/purchases", json={"product_ids": [2]})

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "TrainingError"
    assert data["details"]["error_type"] == "FloatingPointError"

    after = client.get("/sessions/alice/stats").json()
    assert after["generation"] == before["generation"]
    assert after["parameters"] == before["parameters"]
    assert len(session.history) == 2
    assert metrics_service.get_metrics()["training_failures"] == 1


def test_failed_save_records_nothing(mixed_catalog, monkeypatch):
    store = InMemoryHistoryStore()
    sessions = SessionRegistry(mixed_catalog, store=store)
    session = sessions.login("alice")
    session.purchase([1])

    def disk_full(user_id, history):
        raise OSError("No space left on device")

    monkeypatch.setattr(store, "save", disk_full)
    with pytest.raises(OSError):
        session.purchase([2])

    assert [r.product_id for r in session.history] == [1]
    assert [r.product_id for r in store.load("alice")] == [1]
    assert session.service.generation == 1


def test_exception_logging(session_registry, caplog):
    with caplog.at_level(logging.WARNING):
        client.get("/recommend/ghost")

    assert any("No active session" in record.message for record in caplog.records)


def test_error_response_structure(session_registry):
    data = client.get("/recommend/ghost").json()
    assert set(data) == {"error", "message", "details"}


def test_exception_hierarchy():
    errors = [
        ValidationError(1, "missing tags"),
        TrainingError(3, ValueError("bad")),
        CatalogNotFoundError("x.csv"),
        SessionNotFoundError("alice"),
        UnknownProductError(9),
    ]
    assert all(isinstance(e, AdaptRecException) for e in errors)
    assert [e.status_code for e in errors] == [422, 500, 503, 404, 404]
    assert errors[1].details["generation"] == 3
