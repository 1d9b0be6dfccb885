from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.posledger.core.config import settings
from app.posledger.core.deps import require_actor_id
from app.posledger.core.error_catalog import ErrorCatalog
from app.posledger.core.metrics import metrics
from app.posledger.db.models import Sale
from app.posledger.db.session import get_db
from app.posledger.schemas.sales import SaleCreateRequest, SaleListResponse, SaleResponse
from app.posledger.services import sales
from app.posledger.services.idempotency import SaleIdempotency, extract_idempotency_key
from app.posledger.services.serials import list_for_document

router = APIRouter()


def _sale_response(db, sale: Sale) -> SaleResponse:
    refunded_amount, refund_status = sales.refund_summary(db, sale)
    serial_codes = [unit.serial_code for unit in list_for_document(db, sale_id=sale.id)]
    return SaleResponse.model_validate(sale).model_copy(
        update={
            "serial_codes": serial_codes,
            "refunded_amount": refunded_amount,
            "refund_status": refund_status,
        }
    )


@router.post("/posledger/sales", response_model=SaleResponse, status_code=201)
def create_sale(
    request: Request,
    payload: SaleCreateRequest,
    user_id: int = Depends(require_actor_id),
    db=Depends(get_db),
):
    claim = None
    idempotency_key = extract_idempotency_key(request.headers)
    if idempotency_key:
        claim, replay = SaleIdempotency(db).claim(idempotency_key=idempotency_key, payload=payload, user_id=user_id)
        if replay:
            metrics.increment_idempotency_replay()
            return JSONResponse(
                status_code=replay.status_code,
                content=replay.response_body,
                headers={"X-Idempotency-Result": ErrorCatalog.IDEMPOTENCY_REPLAY.code},
            )
        request.state.idempotency = claim

    sale = sales.create_sale(db, payload, user_id=user_id)
    response = _sale_response(db, sale)
    if claim is not None:
        claim.record_sale(sale.id, response_body=response.model_dump(mode="json"))
    return response


@router.get("/posledger/sales", response_model=SaleListResponse)
def list_sales(
    branch_id: int = Query(...),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=settings.LIST_MAX_PAGE_SIZE),
    db=Depends(get_db),
):
    rows = sales.list_sales(db, branch_id, limit=page_size, offset=(page - 1) * page_size)
    return SaleListResponse(rows=[_sale_response(db, sale) for sale in rows])


@router.get("/posledger/sales/{sale_id}", response_model=SaleResponse)
def get_sale(sale_id: int, db=Depends(get_db)):
    return _sale_response(db, sales.get_sale(db, sale_id))
