from fastapi import APIRouter, Depends, Query

from app.posledger.core.config import settings
from app.posledger.core.deps import require_actor_id
from app.posledger.db.session import get_db
from app.posledger.schemas.stock import (
    AvailableQuantityResponse,
    StockCorrectionRequest,
    StockEntryResponse,
    StockListResponse,
)
from app.posledger.services import ledger

router = APIRouter()


@router.get("/posledger/stock/{branch_id}", response_model=StockListResponse)
def list_branch_stock(
    branch_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=settings.LIST_MAX_PAGE_SIZE),
    db=Depends(get_db),
):
    rows = ledger.list_branch_stock(db, branch_id, limit=page_size, offset=(page - 1) * page_size)
    return StockListResponse(rows=[StockEntryResponse.model_validate(row) for row in rows])


@router.get("/posledger/stock/{branch_id}/low", response_model=StockListResponse)
def list_low_stock(branch_id: int, db=Depends(get_db)):
    rows = ledger.list_low_stock(db, branch_id)
    return StockListResponse(rows=[StockEntryResponse.model_validate(row) for row in rows])


@router.get("/posledger/stock/{branch_id}/{product_id}", response_model=StockEntryResponse)
def get_stock(branch_id: int, product_id: int, db=Depends(get_db)):
    return StockEntryResponse.model_validate(ledger.get_stock(db, branch_id, product_id))


@router.get("/posledger/stock/{branch_id}/{product_id}/available", response_model=AvailableQuantityResponse)
def get_available_quantity(branch_id: int, product_id: int, db=Depends(get_db)):
    return AvailableQuantityResponse(
        branch_id=branch_id,
        product_id=product_id,
        available=ledger.get_available_quantity(db, branch_id, product_id),
    )


@router.post("/posledger/stock/corrections", response_model=StockEntryResponse)
def correct_stock(
    payload: StockCorrectionRequest,
    user_id: int = Depends(require_actor_id),
    db=Depends(get_db),
):
    entry = ledger.correct_stock(
        db,
        branch_id=payload.branch_id,
        product_id=payload.product_id,
        counted_quantity=payload.counted_quantity,
        reason=payload.reason,
        user_id=user_id,
    )
    return StockEntryResponse.model_validate(entry)
