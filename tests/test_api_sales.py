from decimal import Decimal

from sqlalchemy import select

from app.posledger.db.models import SaleIdempotencyKey
from tests.ledger_helpers import create_user, seed_world, stock_up


def _headers(user, **extra):
    headers = {"X-User-ID": str(user.id)}
    headers.update(extra)
    return headers


def _available(client, branch_id, product_id):
    response = client.get(f"/posledger/stock/{branch_id}/{product_id}/available")
    assert response.status_code == 200
    return response.json()["available"]


def test_create_sale_over_http(client, db_session):
    branch, _other, user, supplier, product = seed_world(db_session, requires_serial=True, selling_price="25.00")
    stock_up(
        db_session,
        branch=branch,
        product=product,
        user=user,
        supplier=supplier,
        quantity=2,
        serials=["HTTP-1", "HTTP-2"],
    )

    response = client.post(
        "/posledger/sales",
        headers=_headers(user),
        json={
            "branch_id": branch.id,
            "payment_method": "CARD",
            "customer_name": "Walk-in",
            "lines": [{"product_id": product.id, "quantity": 1}],
        },
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["reference_number"] == "REF-00001"
    assert payload["payment_status"] == "PAID"
    assert Decimal(payload["grand_total"]) == Decimal("25.00")
    assert payload["serial_codes"] == ["HTTP-1"]
    assert payload["refund_status"] == "NONE"
    assert _available(client, branch.id, product.id) == 1

    detail = client.get(f"/posledger/sales/{payload['id']}")
    assert detail.status_code == 200
    assert detail.json()["sale_number"] == payload["sale_number"]

    listing = client.get("/posledger/sales", params={"branch_id": branch.id})
    assert [row["id"] for row in listing.json()["rows"]] == [payload["id"]]


def test_insufficient_stock_error_payload(client, db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=1)

    response = client.post(
        "/posledger/sales",
        headers=_headers(user, **{"X-Trace-ID": "trace-sale-1"}),
        json={"branch_id": branch.id, "payment_method": "CASH", "lines": [{"product_id": product.id, "quantity": 2}]},
    )

    assert response.status_code == 422
    payload = response.json()
    assert set(payload) == {"code", "message", "details", "trace_id"}
    assert payload["code"] == "INSUFFICIENT_STOCK"
    assert payload["trace_id"] == "trace-sale-1"
    assert payload["details"]["available"] == 1
    assert _available(client, branch.id, product.id) == 1


def test_idempotent_sale_replays_without_second_decrement(client, db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=5)
    body = {"branch_id": branch.id, "payment_method": "CASH", "lines": [{"product_id": product.id, "quantity": 2}]}

    first = client.post("/posledger/sales", headers=_headers(user, **{"Idempotency-Key": "sale-1"}), json=body)
    second = client.post("/posledger/sales", headers=_headers(user, **{"Idempotency-Key": "sale-1"}), json=body)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.headers["X-Idempotency-Result"] == "IDEMPOTENCY_REPLAY"
    assert second.json() == first.json()
    assert _available(client, branch.id, product.id) == 3

    changed = dict(body, lines=[{"product_id": product.id, "quantity": 1}])
    conflict = client.post("/posledger/sales", headers=_headers(user, **{"Idempotency-Key": "sale-1"}), json=changed)
    assert conflict.status_code == 409
    assert conflict.json()["code"] == "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD"
    assert _available(client, branch.id, product.id) == 3


def test_idempotent_failure_is_replayed(client, db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=1)
    body = {"branch_id": branch.id, "payment_method": "CASH", "lines": [{"product_id": product.id, "quantity": 3}]}

    first = client.post("/posledger/sales", headers=_headers(user, **{"Idempotency-Key": "sale-fail"}), json=body)
    second = client.post("/posledger/sales", headers=_headers(user, **{"Idempotency-Key": "sale-fail"}), json=body)

    assert first.status_code == 422
    assert second.status_code == 422
    assert second.headers["X-Idempotency-Result"] == "IDEMPOTENCY_REPLAY"
    assert second.json()["code"] == "INSUFFICIENT_STOCK"


def test_actor_header_is_required_and_checked(client, db_session):
    branch, _other, user, supplier, product = seed_world(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=1)
    inactive = create_user(db_session, is_active=False)
    body = {"branch_id": branch.id, "payment_method": "CASH", "lines": [{"product_id": product.id, "quantity": 1}]}

    missing = client.post("/posledger/sales", json=body)
    assert missing.status_code == 422
    assert missing.json()["code"] == "VALIDATION_ERROR"

    garbage = client.post("/posledger/sales", headers={"X-User-ID": "abc"}, json=body)
    assert garbage.status_code == 422

    blocked = client.post("/posledger/sales", headers=_headers(inactive), json=body)
    assert blocked.status_code == 422
    assert blocked.json()["details"]["user_id"] == inactive.id

    assert _available(client, branch.id, product.id) == 1


def test_request_body_validation(client, db_session):
    branch, _other, user, _supplier, product = seed_world(db_session)

    response = client.post(
        "/posledger/sales",
        headers=_headers(user),
        json={"branch_id": branch.id, "payment_method": "BARTER", "lines": [{"product_id": product.id, "quantity": 0}]},
    )

    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == "VALIDATION_ERROR"
    fields = {error["field"] for error in payload["details"]["errors"]}
    assert "payment_method" in fields
    assert "lines.0.quantity" in fields


def test_idempotency_key_is_scoped_to_branch_and_cashier(client, db_session):
    branch, other, user, supplier, product = seed_world(db_session)
    second_cashier = create_user(db_session)
    stock_up(db_session, branch=branch, product=product, user=user, supplier=supplier, quantity=5)
    stock_up(db_session, branch=other, product=product, user=user, supplier=supplier, quantity=5)
    key = {"Idempotency-Key": "till-0001"}

    here = client.post(
        "/posledger/sales",
        headers=_headers(user, **key),
        json={"branch_id": branch.id, "payment_method": "CASH", "lines": [{"product_id": product.id, "quantity": 1}]},
    )
    there = client.post(
        "/posledger/sales",
        headers=_headers(user, **key),
        json={"branch_id": other.id, "payment_method": "CASH", "lines": [{"product_id": product.id, "quantity": 1}]},
    )
    colleague = client.post(
        "/posledger/sales",
        headers=_headers(second_cashier, **key),
        json={"branch_id": branch.id, "payment_method": "CASH", "lines": [{"product_id": product.id, "quantity": 1}]},
    )

    for response in (here, there, colleague):
        assert response.status_code == 201
        assert "X-Idempotency-Result" not in response.headers
    assert len({here.json()["id"], there.json()["id"], colleague.json()["id"]}) == 3
    assert _available(client, branch.id, product.id) == 3
    assert _available(client, other.id, product.id) == 4

    db_session.expire_all()
    claims = db_session.execute(select(SaleIdempotencyKey).order_by(SaleIdempotencyKey.id)).scalars().all()
    assert [(claim.branch_id, claim.user_id, claim.sale_id) for claim in claims] == [
        (branch.id, user.id, here.json()["id"]),
        (other.id, user.id, there.json()["id"]),
        (branch.id, second_cashier.id, colleague.json()["id"]),
    ]
    assert {claim.state for claim in claims} == {"succeeded"}


def test_idempotency_key_for_unknown_branch_is_not_claimed(client, db_session):
    _branch, _other, user, _supplier, product = seed_world(db_session)

    response = client.post(
        "/posledger/sales",
        headers=_headers(user, **{"Idempotency-Key": "ghost-branch"}),
        json={"branch_id": 999999, "payment_method": "CASH", "lines": [{"product_id": product.id, "quantity": 1}]},
    )

    assert response.status_code == 404
    db_session.expire_all()
    assert db_session.execute(select(SaleIdempotencyKey)).scalars().all() == []
