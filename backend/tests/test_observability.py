from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from _helpers import add_model


def test_request_id_header(client: TestClient):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.headers.get("x-request-id")


def test_request_id_is_echoed(client: TestClient):
    resp = client.get("/api/health", headers={"X-Request-Id": "trace-42"})
    assert resp.headers["x-request-id"] == "trace-42"


def test_metrics_endpoint_exposed(client: TestClient):
    client.get("/api/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert "model_lookups_total" in resp.text


def test_latency_health_stats(client: TestClient):
    for _ in range(3):
        client.get("/api/health")
    resp = client.get("/api/health/latency")
    assert resp.status_code == 200
    entries = {p["path"]: p for p in resp.json()["paths"]}
    row = entries["/api/health"]
    assert row["p95_ms"] >= row["p50_ms"]
    assert row["sample_size"] >= 3


def test_model_lookup_outcomes_are_counted(client: TestClient, db):
    def _count(outcome):
        return REGISTRY.get_sample_value(
            "model_lookups_total", {"model_type": "at-dock-depart-curr", "outcome": outcome}
        ) or 0.0

    before_pair, before_disabled = _count("pair"), _count("disabled")
    add_model(db, "prod-1")
    params = {"route_key": "BBI->P52", "model_types": "at-dock-depart-curr"}

    client.get("/api/models/lookup", params=params)
    assert _count("disabled") == before_disabled + 1

    client.post("/api/versions/switch", json={"version_tag": "prod-1"})
    client.get("/api/models/lookup", params=params)
    assert _count("pair") == before_pair + 1
