from decimal import Decimal

import pytest

from app.posledger.core.error_catalog import (
    InsufficientStockError,
    InvalidTransferTransitionError,
    SerialUnavailableError,
    ValidationFailedError,
)
from app.posledger.core.statuses import SerialStatus, TransferStatus
from app.posledger.schemas.transfers import TransferCreateRequest
from app.posledger.services import serials
from app.posledger.services.ledger import get_stock
from app.posledger.services.sales import create_sale
from app.posledger.services.transfers import (
    create_transfer,
    get_transfer,
    receive_transfer,
    reject_transfer,
    send_transfer,
)
from tests.ledger_helpers import quantity_of, sale_request, seed_world, stock_up


def _transfer(db_session, source, destination, user, lines):
    payload = TransferCreateRequest(from_branch_id=source.id, to_branch_id=destination.id, lines=lines)
    return create_transfer(db_session, payload, user_id=user.id)


def test_send_then_receive_moves_stock(db_session):
    source, destination, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=source, product=product, user=user, supplier=supplier, quantity=10, unit_cost="3.00")

    transfer = _transfer(db_session, source, destination, user, [{"product_id": product.id, "quantity": 4}])
    assert transfer.status == TransferStatus.PENDING
    assert transfer.transfer_number.startswith(f"TR-{source.code}-{destination.code}-")
    assert quantity_of(db_session, source.id, product.id) == 10

    send_transfer(db_session, transfer.id, user_id=user.id)
    assert quantity_of(db_session, source.id, product.id) == 6
    assert quantity_of(db_session, destination.id, product.id) == 0

    received = receive_transfer(db_session, transfer.id, user_id=user.id)
    assert received.status == TransferStatus.RECEIVED
    assert received.received_by_user_id == user.id
    assert quantity_of(db_session, destination.id, product.id) == 4
    assert quantity_of(db_session, source.id, product.id) == 6
    assert get_stock(db_session, destination.id, product.id).cost_price == Decimal("3.00")


def test_reject_after_send_restores_source_exactly(db_session):
    source, destination, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=source, product=product, user=user, supplier=supplier, quantity=7)

    transfer = _transfer(db_session, source, destination, user, [{"product_id": product.id, "quantity": 5}])
    send_transfer(db_session, transfer.id, user_id=user.id)
    assert quantity_of(db_session, source.id, product.id) == 2

    rejected = reject_transfer(db_session, transfer.id, user_id=user.id)
    assert rejected.status == TransferStatus.REJECTED
    assert quantity_of(db_session, source.id, product.id) == 7
    assert quantity_of(db_session, destination.id, product.id) == 0


def test_reject_pending_transfer_moves_nothing(db_session):
    source, destination, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=source, product=product, user=user, supplier=supplier, quantity=3)

    transfer = _transfer(db_session, source, destination, user, [{"product_id": product.id, "quantity": 3}])
    reject_transfer(db_session, transfer.id, user_id=user.id)

    assert quantity_of(db_session, source.id, product.id) == 3
    assert get_transfer(db_session, transfer.id).status == TransferStatus.REJECTED


def test_transfer_state_machine_guards(db_session):
    source, destination, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=source, product=product, user=user, supplier=supplier, quantity=5)
    transfer = _transfer(db_session, source, destination, user, [{"product_id": product.id, "quantity": 2}])

    with pytest.raises(InvalidTransferTransitionError):
        receive_transfer(db_session, transfer.id, user_id=user.id)

    send_transfer(db_session, transfer.id, user_id=user.id)
    with pytest.raises(InvalidTransferTransitionError):
        send_transfer(db_session, transfer.id, user_id=user.id)

    receive_transfer(db_session, transfer.id, user_id=user.id)
    with pytest.raises(InvalidTransferTransitionError):
        reject_transfer(db_session, transfer.id, user_id=user.id)
    with pytest.raises(InvalidTransferTransitionError):
        receive_transfer(db_session, transfer.id, user_id=user.id)

    assert quantity_of(db_session, source.id, product.id) == 3
    assert quantity_of(db_session, destination.id, product.id) == 2


def test_create_transfer_validation(db_session):
    source, destination, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=source, product=product, user=user, supplier=supplier, quantity=2)

    with pytest.raises(ValidationFailedError):
        _transfer(db_session, source, source, user, [{"product_id": product.id, "quantity": 1}])
    with pytest.raises(InsufficientStockError):
        _transfer(db_session, source, destination, user, [{"product_id": product.id, "quantity": 3}])
    with pytest.raises(ValidationFailedError):
        _transfer(
            db_session,
            source,
            destination,
            user,
            [{"product_id": product.id, "quantity": 1}, {"product_id": product.id, "quantity": 1}],
        )


def test_send_fails_when_stock_sold_in_the_meantime(db_session):
    source, destination, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=source, product=product, user=user, supplier=supplier, quantity=2)
    transfer = _transfer(db_session, source, destination, user, [{"product_id": product.id, "quantity": 2}])

    create_sale(db_session, sale_request(source, [{"product_id": product.id, "quantity": 1}]), user_id=user.id)

    with pytest.raises(InsufficientStockError):
        send_transfer(db_session, transfer.id, user_id=user.id)
    assert get_transfer(db_session, transfer.id).status == TransferStatus.PENDING
    assert quantity_of(db_session, source.id, product.id) == 1


def test_serial_units_follow_the_transfer(db_session):
    source, destination, user, supplier, product = seed_world(db_session, requires_serial=True)
    stock_up(
        db_session,
        branch=source,
        product=product,
        user=user,
        supplier=supplier,
        quantity=3,
        serials=["T-1", "T-2", "T-3"],
    )
    transfer = _transfer(
        db_session,
        source,
        destination,
        user,
        [{"product_id": product.id, "quantity": 2, "serial_codes": ["T-3", "T-1"]}],
    )

    send_transfer(db_session, transfer.id, user_id=user.id)
    assert serials.lookup(db_session, "T-1").status == SerialStatus.TRANSFERRED
    assert serials.lookup(db_session, "T-3").transfer_id == transfer.id
    assert serials.lookup(db_session, "T-2").status == SerialStatus.IN_STOCK

    receive_transfer(db_session, transfer.id, user_id=user.id)
    destination_entry = get_stock(db_session, destination.id, product.id)
    moved = serials.list_for_entry(db_session, destination_entry.id)
    assert sorted(unit.serial_code for unit in moved) == ["T-1", "T-3"]
    assert {unit.status for unit in moved} == {SerialStatus.IN_STOCK}
    assert serials.branch_status_counts(db_session, source.id)[SerialStatus.IN_STOCK] == 1


def test_rejected_serial_transfer_returns_units_to_source(db_session):
    source, destination, user, supplier, product = seed_world(db_session, requires_serial=True)
    stock_up(
        db_session,
        branch=source,
        product=product,
        user=user,
        supplier=supplier,
        quantity=2,
        serials=["RJ-1", "RJ-2"],
    )
    transfer = _transfer(db_session, source, destination, user, [{"product_id": product.id, "quantity": 2}])
    send_transfer(db_session, transfer.id, user_id=user.id)
    reject_transfer(db_session, transfer.id, user_id=user.id)

    source_entry = get_stock(db_session, source.id, product.id)
    units = serials.list_for_entry(db_session, source_entry.id)
    assert {unit.status for unit in units} == {SerialStatus.IN_STOCK}
    assert quantity_of(db_session, source.id, product.id) == 2


def test_send_with_unavailable_serial_changes_nothing(db_session):
    source, destination, user, supplier, product = seed_world(db_session, requires_serial=True)
    stock_up(
        db_session,
        branch=source,
        product=product,
        user=user,
        supplier=supplier,
        quantity=2,
        serials=["U-1", "U-2"],
    )
    transfer = _transfer(
        db_session,
        source,
        destination,
        user,
        [{"product_id": product.id, "quantity": 1, "serial_codes": ["U-9"]}],
    )

    with pytest.raises(SerialUnavailableError):
        send_transfer(db_session, transfer.id, user_id=user.id)
    assert quantity_of(db_session, source.id, product.id) == 2
    assert get_transfer(db_session, transfer.id).status == TransferStatus.PENDING
