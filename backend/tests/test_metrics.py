from __future__ import annotations

from fastapi.testclient import TestClient

from railpath.main import app
from railpath.metrics_store import MetricsStore, record_path_outcome, record_request, reset_metrics


def test_metrics_store_aggregates_endpoint_timings() -> None:
    store = MetricsStore()
    store.record("paths_by_coordinates", duration_ms=10.0)
    store.record("paths_by_coordinates", duration_ms=30.0, error=True)
    store.record("  ", duration_ms=-5.0)

    snap = store.snapshot()
    assert snap["total_requests"] == 3
    assert snap["total_errors"] == 1
    assert snap["endpoint_count"] == 2
    endpoints = snap["endpoints"]
    assert isinstance(endpoints, dict)
    assert endpoints["paths_by_coordinates"]["avg_duration_ms"] == 20.0
    assert endpoints["paths_by_coordinates"]["max_duration_ms"] == 30.0
    assert endpoints["unknown"]["total_duration_ms"] == 0.0


def test_metrics_store_tallies_outcomes_and_resets() -> None:
    store = MetricsStore()
    store.record_outcome("path_found")
    store.record_outcome("no_path_found")
    store.record_outcome("path_found")
    assert store.snapshot()["path_outcomes"] == {"no_path_found": 1, "path_found": 2}

    store.reset()
    snap = store.snapshot()
    assert snap["path_outcomes"] == {}
    assert snap["total_requests"] == 0


def test_metrics_endpoint_reports_global_store() -> None:
    reset_metrics()
    record_request("health", duration_ms=1.5)
    record_path_outcome("no_nearby_segment")

    client = TestClient(app)
    resp = client.get("/metrics")
    assert resp.status_code == 200
    data = resp.json()
    assert data["total_requests"] == 1
    assert data["endpoints"]["health"]["request_count"] == 1
    assert data["path_outcomes"] == {"no_nearby_segment": 1}
    reset_metrics()
