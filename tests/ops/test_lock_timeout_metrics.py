from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.posledger.core.errors import setup_exception_handlers
from app.posledger.core.metrics import metrics


def test_database_locked_maps_to_retryable_conflict():
    metrics.reset()
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/locked")
    def locked():
        raise OperationalError("UPDATE stock_ledger SET quantity = 1", {}, Exception("database is locked"))

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/locked", headers={"X-Trace-ID": "trace-lock"})

    assert response.status_code == 409
    payload = response.json()
    assert payload["code"] == "LOCK_TIMEOUT"
    assert payload["details"]["retryable"] is True

    content = metrics.render().content.decode("utf-8")
    if metrics.enabled:
        assert "lock_wait_timeout_total 1.0" in content
    else:
        assert "metrics_disabled" in content


def test_other_operational_errors_are_internal():
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/broken")
    def broken():
        raise OperationalError("SELECT 1", {}, Exception("no such table: sales"))

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/broken")

    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL_ERROR"
