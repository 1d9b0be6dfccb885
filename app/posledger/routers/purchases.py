from fastapi import APIRouter, Depends

from app.posledger.core.deps import require_actor_id
from app.posledger.db.session import get_db
from app.posledger.schemas.purchases import PurchaseCreateRequest, PurchaseReceiveRequest, PurchaseResponse
from app.posledger.services import purchases
from app.posledger.services.lookups import reject_duplicate_products

router = APIRouter()


@router.post("/posledger/purchases", response_model=PurchaseResponse, status_code=201)
def create_purchase(
    payload: PurchaseCreateRequest,
    user_id: int = Depends(require_actor_id),
    db=Depends(get_db),
):
    purchase = purchases.create_purchase(db, payload, user_id=user_id)
    return PurchaseResponse.model_validate(purchase)


@router.get("/posledger/purchases/{purchase_id}", response_model=PurchaseResponse)
def get_purchase(purchase_id: int, db=Depends(get_db)):
    return PurchaseResponse.model_validate(purchases.get_purchase(db, purchase_id))


@router.post("/posledger/purchases/{purchase_id}/receive", response_model=PurchaseResponse)
def receive_purchase(
    purchase_id: int,
    payload: PurchaseReceiveRequest | None = None,
    user_id: int = Depends(require_actor_id),
    db=Depends(get_db),
):
    payload = payload or PurchaseReceiveRequest()
    reject_duplicate_products([line.product_id for line in payload.items])
    purchase = purchases.receive_purchase(
        db,
        purchase_id,
        user_id=user_id,
        serials=payload.serials_by_product(),
        selling_prices=payload.selling_prices(),
    )
    return PurchaseResponse.model_validate(purchase)
