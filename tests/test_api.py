"""Tests for the admin API."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import fleetsync.api.app as app_module
from fleetsync.api.app import app, get_orchestrator, get_scheduler_service, get_settings
from fleetsync.core.config import RemoteSettings, SyncSettings
from fleetsync.database.connection import DatabaseManager
from fleetsync.database.models import StoreModel
from fleetsync.engine.factory import create_orchestrator
from fleetsync.exceptions import ConfigurationError

from conftest import make_client


@pytest.fixture
def settings():
    return SyncSettings(remote=RemoteSettings(base_id="appTEST", token="pat-test"),
                        critical_interval_seconds=120, bidirectional_interval_seconds=600)


@pytest.fixture
def engine(settings, database, session):
    return create_orchestrator(settings, database=database, client=make_client(session))


@pytest.fixture
def api(engine, settings, database, monkeypatch):
    monkeypatch.setattr(app_module, "database_manager", database)
    app.dependency_overrides[get_orchestrator] = lambda: engine
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(api):
    response = api.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["services"]["database"] is True


def test_health_reports_unreachable_database(api, monkeypatch, tmp_path):
    monkeypatch.setattr(app_module, "database_manager",
                        DatabaseManager(f"sqlite:///{tmp_path}/missing/fleetsync.db"))

    body = api.get("/health").json()

    assert body["status"] == "degraded"
    assert body["services"]["database"] is False


def test_list_tables(api):
    tables = api.get("/api/v1/tables").json()["tables"]

    assert len(tables) == 10
    orders = next(t for t in tables if t["table_name"] == "orders")
    assert orders["remote_collection_id"] == "Commandes"
    assert orders["critical"] is True
    assert orders["phase"] == "idle"


def test_sync_table_pushes_new_rows(api, engine, session):
    engine.registry.get_adapter("stores").add([StoreModel(name="Magasin Nation")])

    response = api.post("/api/v1/sync/stores")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["created"] == 1
    assert body["triggered_by"] == "api"
    assert len(session.calls_for("POST")) == 1
    assert engine.registry.get_adapter("stores").find_by_remote_id("rec00000000000001")["name"] == "Magasin Nation"


def test_sync_table_with_force(api, engine, session):
    engine.registry.get_adapter("stores").add([StoreModel(name="Magasin Nation")])
    api.post("/api/v1/sync/stores")

    body = api.post("/api/v1/sync/stores", json={"force": True}).json()

    assert body["status"] == "success"
    assert body["updated"] == 1


def test_sync_without_changes_is_skipped(api):
    assert api.post("/api/v1/sync/orders").json()["status"] == "skipped"


def test_unknown_table_is_404(api):
    assert api.post("/api/v1/sync/warehouses").status_code == 404
    assert api.post("/api/v1/sync/warehouses/pull").status_code == 404
    assert api.post("/api/v1/sync/warehouses/preview").status_code == 404


def test_pull_table(api):
    body = api.post("/api/v1/sync/drivers/pull").json()

    assert body["leg"] == "pull"
    assert body["status"] == "skipped"


def test_preview(api, engine, session):
    engine.registry.get_adapter("stores").add([StoreModel(name="Magasin Nation"), StoreModel(name="Magasin Lyon")])

    response = api.post("/api/v1/sync/stores/preview", params={"sample_size": 1})

    body = response.json()
    assert response.status_code == 200
    assert body["total_records"] == 2
    assert body["records"][0]["payload"] == {"fields": {"NOM DU MAGASIN": "Magasin Nation"}}
    assert session.calls == []


@pytest.mark.parametrize("sample_size", [0, 101])
def test_preview_sample_size_bounds(api, sample_size):
    assert api.post("/api/v1/sync/stores/preview", params={"sample_size": sample_size}).status_code == 400


def test_status_and_dashboard(api, engine):
    engine.registry.get_adapter("stores").add([StoreModel(name="Magasin Nation")])
    api.post("/api/v1/sync/stores")

    status = api.get("/api/v1/sync/status").json()
    dashboard = api.get("/api/v1/sync/dashboard").json()

    assert status["tables"]["stores"]["last_status"] == "success"
    assert status["in_flight"] == []
    assert dashboard["recent_successes"][0]["table_name"] == "stores"
    assert dashboard["critical_failures"] == []


def test_sweeps(api):
    critical = api.post("/api/v1/sweeps/critical").json()
    bidirectional = api.post("/api/v1/sweeps/bidirectional").json()

    assert [r["table_name"] for r in critical["results"]] == ["orders", "clients", "invoices"]
    assert all(r["triggered_by"] == "scheduler" for r in critical["results"])
    assert [(r["table_name"], r["leg"]) for r in bidirectional["results"]] == [
        ("drivers", "push"), ("drivers", "pull"), ("stores", "push"), ("stores", "pull")]


def test_create_schedules(api):
    scheduler = MagicMock()
    scheduler.register_sweeps.return_value = [{"job_name": "sweep-critical"}, {"job_name": "sweep-bidirectional"}]
    scheduler.register_tables.return_value = [{"job_name": "table-orders"}]
    app.dependency_overrides[get_scheduler_service] = lambda: scheduler

    response = api.post("/api/v1/schedules", json={"service_url": "https://sync.example.com"})

    assert response.status_code == 200
    assert [job["job_name"] for job in response.json()["jobs"]] == [
        "sweep-critical", "sweep-bidirectional", "table-orders"]
    scheduler.register_sweeps.assert_called_once_with("https://sync.example.com", 120, 600)
    specs = scheduler.register_tables.call_args[0][1]
    assert len(specs) == 10


def test_uninitialized_orchestrator_is_500():
    app.dependency_overrides.clear()
    response = TestClient(app).get("/api/v1/tables")

    assert response.status_code == 500


def test_create_schedules_rejects_uneven_interval(api, settings):
    scheduler = MagicMock()
    scheduler.register_sweeps.side_effect = ConfigurationError("An interval of 2700s cannot be scheduled evenly")
    app.dependency_overrides[get_scheduler_service] = lambda: scheduler

    response = api.post("/api/v1/schedules", json={"service_url": "https://sync.example.com"})

    assert response.status_code == 400
    assert "2700s" in response.json()["detail"]
