"""Tests for the HTTP trigger endpoints."""

import pytest
from fastapi.testclient import TestClient

from backend.main import app
from backend.services.reconcile_service import get_reconciler
from fleetctl.errors import BackoffExhausted, ConflictError, StoreError
from fleetctl.reconciler import FleetReconciler
from fleetctl.resources import DISKMAKER_NAME


@pytest.fixture
def reconciler(store, fast_backoff, sleeps) -> FleetReconciler:
    return FleetReconciler(store, image="diskmaker:test", backoff=fast_backoff, sleep=sleeps.append)


@pytest.fixture
def api(reconciler):
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestReconcileEndpoint:
    def test_health(self, api) -> None:
        assert api.get("/").json() == {"status": "fleetctl Backend Running"}

    def test_reconcile_reports_outcomes(self, api, store, namespace, make_lvset) -> None:
        store.add(make_lvset("set-a", "fast"))

        resp = api.post("/api/reconcile", json={"namespace": namespace})

        assert resp.status_code == 200
        body = resp.json()
        assert body["namespace"] == namespace
        assert body["cleanup_state"] == "done"
        assert body["config_result"] == "created"
        assert body["daemonset_result"] == "created"
        assert store.stored("DaemonSet", namespace, DISKMAKER_NAME) is not None

    def test_reconcile_defaults_namespace(self, api, monkeypatch) -> None:
        monkeypatch.setattr("backend.routers.reconcile.settings.k8s_namespace", "default-ns")

        body = api.post("/api/reconcile", json={}).json()

        assert body["namespace"] == "default-ns"
        assert body["skipped"] is True

    @pytest.mark.parametrize(
        "error,status",
        [
            (ConflictError("modified", status_code=409), 503),
            (BackoffExhausted("pods still running", attempts=20), 504),
            (StoreError("forbidden", status_code=403), 500),
        ],
    )
    def test_reconcile_errors(self, api, reconciler, monkeypatch, error, status) -> None:
        def fail(namespace):
            raise error

        monkeypatch.setattr(reconciler, "reconcile", fail)

        resp = api.post("/api/reconcile", json={"namespace": "ns"})

        assert resp.status_code == status
        assert "ns" in resp.json()["detail"]


class TestFleetEndpoint:
    def test_snapshot_after_reconcile(self, api, store, namespace, make_lvset) -> None:
        store.add(make_lvset("set-a", "fast"))
        api.post("/api/reconcile", json={"namespace": namespace})

        body = api.get("/api/fleet", params={"namespace": namespace}).json()

        assert body["in_sync"] is True
        assert body["config_hash"] == body["daemonset_hash"]

    def test_snapshot_store_error(self, api, store) -> None:
        store.errors[("get", "ConfigMap")] = StoreError("forbidden", status_code=403)

        resp = api.get("/api/fleet", params={"namespace": "ns"})

        assert resp.status_code == 502
