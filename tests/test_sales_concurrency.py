from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from app.posledger.core.error_catalog import InsufficientStockError, LockTimeoutError
from app.posledger.core.metrics import metrics
from app.posledger.db.session import WRITE_LOCK_OPTION
from app.posledger.repos.stock import StockRepository
from app.posledger.services.sales import create_sale
from tests.ledger_helpers import quantity_of, sale_request, seed_world, stock_up


def _race(session_factory, requests, user_id):
    barrier = Barrier(len(requests))

    def attempt(request):
        db = session_factory()
        try:
            barrier.wait(timeout=10)
            sale = create_sale(db, request, user_id=user_id)
            return ("ok", sale.reference_sequence)
        except InsufficientStockError:
            return ("insufficient", None)
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=len(requests)) as pool:
        return list(pool.map(attempt, requests))


def test_concurrent_sales_of_last_unit_exactly_one_wins(db_session, session_factory):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=1)
    request = sale_request(branch, [{"product_id": product.id, "quantity": 1}])

    outcomes = _race(session_factory, [request, request], user.id)

    assert sorted(result for result, _ in outcomes) == ["insufficient", "ok"]
    assert quantity_of(db_session, branch.id, product.id) == 0


def test_concurrent_sales_get_distinct_reference_numbers(db_session, session_factory):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=4)
    request = sale_request(branch, [{"product_id": product.id, "quantity": 1}])

    outcomes = _race(session_factory, [request] * 4, user.id)

    assert sorted(sequence for _, sequence in outcomes) == [1, 2, 3, 4]
    assert quantity_of(db_session, branch.id, product.id) == 0


def test_blocked_sale_raises_lock_timeout_and_changes_nothing(db_session, session_factory):
    metrics.reset()
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=2)

    holder = session_factory()
    try:
        holder.connection(execution_options={WRITE_LOCK_OPTION: True})
        StockRepository(holder).get_entry(branch.id, product.id, for_update=True)

        contender = session_factory()
        try:
            with pytest.raises(LockTimeoutError) as excinfo:
                create_sale(
                    contender,
                    sale_request(branch, [{"product_id": product.id, "quantity": 1}]),
                    user_id=user.id,
                )
        finally:
            contender.close()
    finally:
        holder.rollback()
        holder.close()

    assert excinfo.value.details["retryable"] is True
    assert quantity_of(db_session, branch.id, product.id) == 2
    if metrics.enabled:
        assert "lock_wait_timeout_total 1.0" in metrics.render().content.decode("utf-8")
