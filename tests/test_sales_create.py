from decimal import Decimal

import pytest

from app.posledger.core.error_catalog import (
    InsufficientStockError,
    SerialCountMismatchError,
    SerialUnavailableError,
    ValidationFailedError,
)
from app.posledger.core.statuses import MovementReason, SerialStatus
from app.posledger.repos.stock import StockRepository
from app.posledger.services import serials
from app.posledger.services.ledger import get_stock
from app.posledger.services.sales import create_sale, list_sales
from tests.ledger_helpers import create_product, quantity_of, sale_request, seed_world, stock_up


def test_sale_decrements_and_second_sale_is_refused(db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=5)

    create_sale(db_session, sale_request(branch, [{"product_id": product.id, "quantity": 3}]), user_id=user.id)
    assert quantity_of(db_session, branch.id, product.id) == 2

    with pytest.raises(InsufficientStockError) as excinfo:
        create_sale(db_session, sale_request(branch, [{"product_id": product.id, "quantity": 3}]), user_id=user.id)

    assert excinfo.value.details == {
        "branch_id": branch.id,
        "product_id": product.id,
        "requested": 3,
        "available": 2,
    }
    assert quantity_of(db_session, branch.id, product.id) == 2
    assert len(list_sales(db_session, branch.id, limit=10)) == 1


def test_sale_price_resolution_order(db_session):
    branch, _other, user, supplier, product = seed_world(db_session, selling_price="9.99")
    branch_priced = create_product(db_session, selling_price="20.00")
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=5)
    stock_up(
        db_session,
        branch=branch,
        product=branch_priced,
        user=user,
        supplier=supplier,
        quantity=5,
        selling_price="18.50",
    )

    sale = create_sale(
        db_session,
        sale_request(
            branch,
            [
                {"product_id": product.id, "quantity": 1},
                {"product_id": branch_priced.id, "quantity": 1},
                {"product_id": branch_priced.id, "quantity": 1, "unit_price": "15.00"},
            ],
        ),
        user_id=user.id,
    )

    prices = [item.unit_price for item in sale.items]
    assert prices == [Decimal("9.99"), Decimal("18.50"), Decimal("15.00")]
    assert sale.grand_total == Decimal("43.49")
    assert sale.items[0].cost_price == Decimal("5.00")
    assert quantity_of(db_session, branch.id, branch_priced.id) == 3


def test_sale_discounts(db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=5)

    sale = create_sale(
        db_session,
        sale_request(
            branch,
            [{"product_id": product.id, "quantity": 2, "discount": "3.00"}],
            discount_amount="2.00",
        ),
        user_id=user.id,
    )

    assert sale.total_amount == Decimal("17.00")
    assert sale.discount_amount == Decimal("2.00")
    assert sale.grand_total == Decimal("15.00")

    with pytest.raises(ValidationFailedError):
        create_sale(
            db_session,
            sale_request(branch, [{"product_id": product.id, "quantity": 1}], discount_amount="50.00"),
            user_id=user.id,
        )
    assert quantity_of(db_session, branch.id, product.id) == 3


def test_reference_numbers_are_per_branch_and_gapless(db_session):
    branch, other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=5)
    stock_up(db_session, branch=other, product=product, user=user, supplier=supplier, quantity=5)
    line = [{"product_id": product.id, "quantity": 1}]

    first = create_sale(db_session, sale_request(branch, line), user_id=user.id)
    with pytest.raises(InsufficientStockError):
        create_sale(db_session, sale_request(branch, [{"product_id": product.id, "quantity": 99}]), user_id=user.id)
    second = create_sale(db_session, sale_request(branch, line), user_id=user.id)
    elsewhere = create_sale(db_session, sale_request(other, line), user_id=user.id)

    assert (first.reference_sequence, second.reference_sequence) == (1, 2)
    assert second.reference_number == "REF-00002"
    assert second.sale_number.startswith(f"SL-{branch.code}-")
    assert second.sale_number.endswith("-00002")
    assert elsewhere.reference_sequence == 1


def test_sale_marks_serials_sold_oldest_first(db_session):
    branch, _other, user, supplier, product = seed_world(db_session, requires_serial=True)
    stock_up(
        db_session,
        branch=branch,
        product=product,
        user=user,
        supplier=supplier,
        quantity=3,
        serials=["S-1", "S-2", "S-3"],
    )

    sale = create_sale(db_session, sale_request(branch, [{"product_id": product.id, "quantity": 2}]), user_id=user.id)

    sold = serials.list_for_document(db_session, sale_id=sale.id)
    assert [unit.serial_code for unit in sold] == ["S-1", "S-2"]
    assert {unit.status for unit in sold} == {SerialStatus.SOLD}
    assert serials.lookup(db_session, "S-3").status == SerialStatus.IN_STOCK
    assert quantity_of(db_session, branch.id, product.id) == 1


def test_sale_with_explicit_serials(db_session):
    branch, _other, user, supplier, product = seed_world(db_session, requires_serial=True)
    stock_up(
        db_session,
        branch=branch,
        product=product,
        user=user,
        supplier=supplier,
        quantity=3,
        serials=["E-1", "E-2", "E-3"],
    )

    sale = create_sale(
        db_session,
        sale_request(branch, [{"product_id": product.id, "quantity": 1, "serial_codes": ["E-3"]}]),
        user_id=user.id,
    )
    assert [unit.serial_code for unit in serials.list_for_document(db_session, sale_id=sale.id)] == ["E-3"]

    with pytest.raises(SerialUnavailableError):
        create_sale(
            db_session,
            sale_request(branch, [{"product_id": product.id, "quantity": 1, "serial_codes": ["E-3"]}]),
            user_id=user.id,
        )
    with pytest.raises(SerialCountMismatchError):
        create_sale(
            db_session,
            sale_request(branch, [{"product_id": product.id, "quantity": 2, "serial_codes": ["E-1"]}]),
            user_id=user.id,
        )
    assert quantity_of(db_session, branch.id, product.id) == 2


def test_failed_line_rolls_back_whole_sale(db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    scarce = create_product(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=5)
    stock_up(db_session, branch=branch, product=scarce, user=user, supplier=supplier, quantity=1)

    with pytest.raises(InsufficientStockError):
        create_sale(
            db_session,
            sale_request(
                branch,
                [
                    {"product_id": product.id, "quantity": 2},
                    {"product_id": scarce.id, "quantity": 2},
                ],
            ),
            user_id=user.id,
        )

    assert quantity_of(db_session, branch.id, product.id) == 5
    assert quantity_of(db_session, branch.id, scarce.id) == 1
    entry = get_stock(db_session, branch.id, product.id)
    reasons = [m.reason for m in StockRepository(db_session).list_movements(entry.id)]
    assert MovementReason.SALE not in reasons
