from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.posledger.core.error_catalog import InsufficientStockError, InvalidApprovalStateError, NotFoundError
from app.posledger.core.errors import setup_exception_handlers
from app.posledger.core.metrics import metrics


def test_only_ledger_errors_count_as_rejections():
    metrics.reset()
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/short")
    def short():
        raise InsufficientStockError(details={"requested": 2, "available": 1})

    @app.get("/decided")
    def decided():
        raise InvalidApprovalStateError(details={"status": "APPROVED"})

    @app.get("/missing")
    def missing():
        raise NotFoundError(details={"message": "sale not found"})

    with TestClient(app, raise_server_exceptions=False) as client:
        assert client.get("/short").status_code == 422
        assert client.get("/decided").status_code == 409
        assert client.get("/missing").status_code == 404

    content = metrics.render().content.decode("utf-8")
    if not metrics.enabled:
        assert "metrics_disabled" in content
        return
    assert 'ledger_rejections_total{code="INSUFFICIENT_STOCK"} 1.0' in content
    assert 'ledger_rejections_total{code="INVALID_APPROVAL_STATE"} 1.0' in content
    assert 'code="NOT_FOUND"' not in content
