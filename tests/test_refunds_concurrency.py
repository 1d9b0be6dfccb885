from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

from app.posledger.core.error_catalog import ValidationFailedError
from app.posledger.core.statuses import ApprovalStatus, SerialStatus
from app.posledger.schemas.approvals import RefundCreateRequest
from app.posledger.services import serials
from app.posledger.services.refunds import approve_refund, create_refund, get_refund
from app.posledger.services.sales import create_sale
from tests.ledger_helpers import quantity_of, sale_request, seed_world, stock_up


def test_competing_refunds_of_one_sale_cannot_exceed_quantity_sold(db_session, session_factory):
    branch, _other, user, supplier, product = seed_world(db_session, requires_serial=True)
    stock_up(
        db_session,
        branch=branch,
        product=product,
        user=user,
        supplier=supplier,
        quantity=2,
        serials=["CR-1", "CR-2"],
    )
    sale = create_sale(db_session, sale_request(branch, [{"product_id": product.id, "quantity": 2}]), user_id=user.id)
    payload = RefundCreateRequest(
        branch_id=branch.id,
        sale_id=sale.id,
        refund_method="CASH",
        lines=[{"product_id": product.id, "quantity": 2, "unit_price": "10.00"}],
    )
    refund_ids = [create_refund(db_session, payload, user_id=user.id).id for _ in range(2)]
    barrier = Barrier(len(refund_ids))

    def attempt(refund_id):
        db = session_factory()
        try:
            barrier.wait(timeout=10)
            approve_refund(db, refund_id, user_id=user.id)
            return "approved"
        except ValidationFailedError:
            return "over_limit"
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=len(refund_ids)) as pool:
        outcomes = list(pool.map(attempt, refund_ids))

    assert sorted(outcomes) == ["approved", "over_limit"]
    assert quantity_of(db_session, branch.id, product.id) == 2
    statuses = sorted(get_refund(db_session, refund_id).status for refund_id in refund_ids)
    assert statuses == [ApprovalStatus.APPROVED, ApprovalStatus.PENDING]
    for code in ("CR-1", "CR-2"):
        assert serials.lookup(db_session, code).status == SerialStatus.RETURNED
