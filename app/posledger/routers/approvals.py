from fastapi import APIRouter, Depends

from app.posledger.core.deps import require_actor_id
from app.posledger.db.session import get_db
from app.posledger.schemas.approvals import (
    ApprovalActionRequest,
    RefundCreateRequest,
    RefundResponse,
    ReturnCreateRequest,
    ReturnResponse,
)
from app.posledger.services import refunds, returns

router = APIRouter()


@router.post("/posledger/returns", response_model=ReturnResponse, status_code=201, tags=["returns"])
def create_return(
    payload: ReturnCreateRequest,
    user_id: int = Depends(require_actor_id),
    db=Depends(get_db),
):
    return ReturnResponse.model_validate(returns.create_return(db, payload, user_id=user_id))


@router.get("/posledger/returns/{return_id}", response_model=ReturnResponse, tags=["returns"])
def get_return(return_id: int, db=Depends(get_db)):
    return ReturnResponse.model_validate(returns.get_return(db, return_id))


@router.post("/posledger/returns/{return_id}/actions", response_model=ReturnResponse, tags=["returns"])
def return_actions(
    return_id: int,
    payload: ApprovalActionRequest,
    user_id: int = Depends(require_actor_id),
    db=Depends(get_db),
):
    action = returns.RETURN_ACTIONS[payload.action]
    return ReturnResponse.model_validate(action(db, return_id, user_id=user_id))


@router.post("/posledger/refunds", response_model=RefundResponse, status_code=201, tags=["refunds"])
def create_refund(
    payload: RefundCreateRequest,
    user_id: int = Depends(require_actor_id),
    db=Depends(get_db),
):
    return RefundResponse.model_validate(refunds.create_refund(db, payload, user_id=user_id))


@router.get("/posledger/refunds/{refund_id}", response_model=RefundResponse, tags=["refunds"])
def get_refund(refund_id: int, db=Depends(get_db)):
    return RefundResponse.model_validate(refunds.get_refund(db, refund_id))


@router.post("/posledger/refunds/{refund_id}/actions", response_model=RefundResponse, tags=["refunds"])
def refund_actions(
    refund_id: int,
    payload: ApprovalActionRequest,
    user_id: int = Depends(require_actor_id),
    db=Depends(get_db),
):
    action = refunds.REFUND_ACTIONS[payload.action]
    return RefundResponse.model_validate(action(db, refund_id, user_id=user_id))
