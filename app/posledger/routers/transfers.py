from fastapi import APIRouter, Depends

from app.posledger.core.deps import require_actor_id
from app.posledger.db.session import get_db
from app.posledger.schemas.transfers import TransferActionRequest, TransferCreateRequest, TransferResponse
from app.posledger.services import transfers

router = APIRouter()


@router.post("/posledger/transfers", response_model=TransferResponse, status_code=201)
def create_transfer(
    payload: TransferCreateRequest,
    user_id: int = Depends(require_actor_id),
    db=Depends(get_db),
):
    return TransferResponse.model_validate(transfers.create_transfer(db, payload, user_id=user_id))


@router.get("/posledger/transfers/{transfer_id}", response_model=TransferResponse)
def get_transfer(transfer_id: int, db=Depends(get_db)):
    return TransferResponse.model_validate(transfers.get_transfer(db, transfer_id))


@router.post("/posledger/transfers/{transfer_id}/actions", response_model=TransferResponse)
def transfer_actions(
    transfer_id: int,
    payload: TransferActionRequest,
    user_id: int = Depends(require_actor_id),
    db=Depends(get_db),
):
    action = transfers.TRANSFER_ACTIONS[payload.action]
    return TransferResponse.model_validate(action(db, transfer_id, user_id=user_id))
