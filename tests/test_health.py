from app.posledger.core.metrics import metrics


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["trace_id"]
    assert response.headers["X-Trace-ID"] == payload["trace_id"]


def test_ready(client):
    response = client.get("/ready", headers={"X-Trace-ID": "ready-check"})
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    assert payload["trace_id"] == "ready-check"


def test_metrics_endpoint(client):
    client.get("/health")
    response = client.get("/posledger/ops/metrics")
    assert response.status_code == 200
    if metrics.enabled:
        assert "http_requests_total" in response.text
    else:
        assert "metrics_disabled" in response.text
