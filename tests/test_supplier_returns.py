from decimal import Decimal

import pytest

from app.posledger.core.error_catalog import (
    InsufficientStockError,
    InvalidApprovalStateError,
    ValidationFailedError,
)
from app.posledger.core.statuses import ApprovalStatus, SerialStatus
from app.posledger.schemas.approvals import ReturnCreateRequest
from app.posledger.services import serials
from app.posledger.services.returns import approve_return, create_return, get_return, reject_return
from tests.ledger_helpers import create_branch, quantity_of, seed_world, stock_up


def _return(db_session, branch, supplier, user, lines, **kwargs):
    payload = ReturnCreateRequest(branch_id=branch.id, supplier_id=supplier.id, lines=lines, **kwargs)
    return create_return(db_session, payload, user_id=user.id)


def test_create_does_not_touch_stock_and_approve_removes_it(db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=6)

    document = _return(
        db_session, branch, supplier, user, [{"product_id": product.id, "quantity": 2, "unit_cost": "5.00"}]
    )
    assert document.status == ApprovalStatus.PENDING
    assert document.return_number.startswith(f"RET-{branch.code}-")
    assert document.total_amount == Decimal("10.00")
    assert quantity_of(db_session, branch.id, product.id) == 6

    approved = approve_return(db_session, document.id, user_id=user.id)
    assert approved.status == ApprovalStatus.APPROVED
    assert approved.approved_by_user_id == user.id
    assert quantity_of(db_session, branch.id, product.id) == 4

    with pytest.raises(InvalidApprovalStateError):
        approve_return(db_session, document.id, user_id=user.id)
    with pytest.raises(InvalidApprovalStateError):
        reject_return(db_session, document.id, user_id=user.id)
    assert quantity_of(db_session, branch.id, product.id) == 4


def test_rejected_return_moves_nothing(db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=3)
    document = _return(
        db_session, branch, supplier, user, [{"product_id": product.id, "quantity": 3, "unit_cost": "5.00"}]
    )

    reject_return(db_session, document.id, user_id=user.id)

    assert get_return(db_session, document.id).status == ApprovalStatus.REJECTED
    assert quantity_of(db_session, branch.id, product.id) == 3
    with pytest.raises(InvalidApprovalStateError):
        approve_return(db_session, document.id, user_id=user.id)


def test_return_more_than_on_hand(db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=1)

    with pytest.raises(InsufficientStockError):
        _return(db_session, branch, supplier, user, [{"product_id": product.id, "quantity": 2, "unit_cost": "5.00"}])


def test_approve_fails_when_stock_left_meanwhile(db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=2)
    first = _return(db_session, branch, supplier, user, [{"product_id": product.id, "quantity": 2, "unit_cost": "1.00"}])
    second = _return(db_session, branch, supplier, user, [{"product_id": product.id, "quantity": 1, "unit_cost": "1.00"}])

    approve_return(db_session, first.id, user_id=user.id)
    with pytest.raises(InsufficientStockError):
        approve_return(db_session, second.id, user_id=user.id)

    assert get_return(db_session, second.id).status == ApprovalStatus.PENDING
    assert quantity_of(db_session, branch.id, product.id) == 0


def test_return_linked_purchase_must_match_branch(db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    purchase = stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=2)
    elsewhere = create_branch(db_session)

    with pytest.raises(ValidationFailedError):
        _return(
            db_session,
            elsewhere,
            supplier,
            user,
            [{"product_id": product.id, "quantity": 1, "unit_cost": "1.00"}],
            purchase_id=purchase.id,
        )


def test_approved_return_marks_serials_returned(db_session):
    branch, _other, user, supplier, product = seed_world(db_session, requires_serial=True)
    stock_up(
        db_session,
        branch=branch,
        product=product,
        user=user,
        supplier=supplier,
        quantity=3,
        serials=["RT-1", "RT-2", "RT-3"],
    )
    document = _return(
        db_session,
        branch,
        supplier,
        user,
        [{"product_id": product.id, "quantity": 1, "unit_cost": "5.00", "serial_codes": ["RT-2"]}],
    )

    approve_return(db_session, document.id, user_id=user.id)

    assert serials.lookup(db_session, "RT-2").status == SerialStatus.RETURNED
    assert serials.lookup(db_session, "RT-1").status == SerialStatus.IN_STOCK
    assert quantity_of(db_session, branch.id, product.id) == 2
