from fastapi import APIRouter, Depends, Query

from app.posledger.core.config import settings
from app.posledger.core.deps import require_actor_id
from app.posledger.core.error_catalog import ValidationFailedError
from app.posledger.core.statuses import SerialStatus
from app.posledger.db.session import get_db
from app.posledger.schemas.serials import (
    SerialListResponse,
    SerialNotesUpdateRequest,
    SerialStatsResponse,
    SerialUnitResponse,
)
from app.posledger.services import serials

router = APIRouter()


def _serial_list(rows) -> SerialListResponse:
    return SerialListResponse(rows=[SerialUnitResponse.model_validate(row) for row in rows])


@router.get("/posledger/serials", response_model=SerialListResponse)
def list_serials(
    purchase_id: int | None = Query(None),
    sale_id: int | None = Query(None),
    ledger_entry_id: int | None = Query(None),
    db=Depends(get_db),
):
    if ledger_entry_id is not None:
        return _serial_list(serials.list_for_entry(db, ledger_entry_id))
    if purchase_id is None and sale_id is None:
        raise ValidationFailedError(
            details={"message": "one of purchase_id, sale_id or ledger_entry_id is required"}
        )
    return _serial_list(serials.list_for_document(db, purchase_id=purchase_id, sale_id=sale_id))


@router.get("/posledger/serials/lookup/{serial_code}", response_model=SerialUnitResponse)
def lookup_serial(serial_code: str, db=Depends(get_db)):
    return SerialUnitResponse.model_validate(serials.lookup(db, serial_code))


@router.get("/posledger/serials/branch/{branch_id}", response_model=SerialListResponse)
def list_branch_serials(
    branch_id: int,
    status: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=settings.LIST_MAX_PAGE_SIZE),
    db=Depends(get_db),
):
    if status is not None and status not in SerialStatus.ALL:
        raise ValidationFailedError(details={"message": "unknown serial status", "status": status})
    rows = serials.list_by_branch(db, branch_id, status=status, limit=page_size, offset=(page - 1) * page_size)
    return _serial_list(rows)


@router.get("/posledger/serials/available", response_model=SerialListResponse)
def list_available_serials(branch_id: int = Query(...), product_id: int = Query(...), db=Depends(get_db)):
    return _serial_list(serials.list_available(db, branch_id=branch_id, product_id=product_id))


@router.get("/posledger/serials/stats/{branch_id}", response_model=SerialStatsResponse)
def serial_stats(branch_id: int, db=Depends(get_db)):
    return SerialStatsResponse(branch_id=branch_id, counts=serials.branch_status_counts(db, branch_id))


@router.patch("/posledger/serials/{serial_id}/notes", response_model=SerialUnitResponse)
def update_serial_notes(
    serial_id: int,
    payload: SerialNotesUpdateRequest,
    _user_id: int = Depends(require_actor_id),
    db=Depends(get_db),
):
    return SerialUnitResponse.model_validate(serials.update_notes(db, serial_id, payload.notes))
