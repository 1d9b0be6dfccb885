from __future__ import annotations

import logging
from decimal import Decimal

from app.posledger.core.error_catalog import (
    AlreadyReceivedError,
    InvalidTransitionError,
    SerialCountMismatchError,
    ValidationFailedError,
)
from app.posledger.core.logging import log_json
from app.posledger.core.money import ZERO, to_money
from app.posledger.core.statuses import MovementReason, PurchaseStatus
from app.posledger.db.models import Branch, Purchase, PurchaseItem, Supplier, utcnow
from app.posledger.db.session import atomic
from app.posledger.schemas.purchases import PurchaseCreateRequest
from app.posledger.services import numbering
from app.posledger.services.ledger import StockLedger
from app.posledger.services.lookups import reject_duplicate_products, require, require_products
from app.posledger.services.serials import SerialRegistry, normalize_codes

logger = logging.getLogger("posledger.purchases")

DOCUMENT_TYPE = "PURCHASE"


def create_purchase(db, payload: PurchaseCreateRequest, *, user_id: int) -> Purchase:
    reject_duplicate_products([line.product_id for line in payload.lines])
    with atomic(db):
        branch = require(db, Branch, payload.branch_id, label="branch")
        require(db, Supplier, payload.supplier_id, label="supplier")
        require_products(db, [line.product_id for line in payload.lines])

        purchase = Purchase(
            purchase_number=numbering.purchase_number(branch.code),
            branch_id=branch.id,
            supplier_id=payload.supplier_id,
            user_id=user_id,
            status=PurchaseStatus.PENDING,
            tax_amount=to_money(payload.tax_amount),
            notes=payload.notes,
        )
        if payload.purchase_date is not None:
            purchase.purchase_date = payload.purchase_date
        total = ZERO
        for line in payload.lines:
            line_total = to_money(line.unit_cost * line.quantity)
            purchase.items.append(
                PurchaseItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_cost=to_money(line.unit_cost),
                    selling_price=to_money(line.selling_price) if line.selling_price is not None else None,
                    total_cost=line_total,
                )
            )
            total += line_total
        purchase.total_amount = total
        purchase.grand_total = total + purchase.tax_amount
        db.add(purchase)
        db.flush()
        log_json(
            logger,
            {
                "event": "purchase_created",
                "purchase_id": purchase.id,
                "purchase_number": purchase.purchase_number,
                "branch_id": branch.id,
                "lines": len(payload.lines),
            },
        )
    return purchase


def receive_purchase(
    db,
    purchase_id: int,
    *,
    user_id: int,
    serials: dict[int, list[str]] | None = None,
    selling_prices: dict[int, Decimal] | None = None,
) -> Purchase:
    """Apply a pending purchase to the branch ledger and register its serial units.

    ``selling_prices`` replaces the per-line selling price recorded at create;
    the applied value is written back to the purchase line.

    Receiving is applied at most once: a second call raises AlreadyReceivedError
    and changes nothing.
    """
    serials = serials or {}
    selling_prices = selling_prices or {}
    with atomic(db):
        purchase = require(db, Purchase, purchase_id, label="purchase", for_update=True)
        if purchase.status == PurchaseStatus.RECEIVED:
            raise AlreadyReceivedError(
                details={"purchase_id": purchase.id, "purchase_number": purchase.purchase_number}
            )
        if purchase.status != PurchaseStatus.PENDING:
            raise InvalidTransitionError(details={"purchase_id": purchase.id, "status": purchase.status})

        items = list(purchase.items)
        products = require_products(db, [item.product_id for item in items])
        unknown = sorted((set(serials) | set(selling_prices)) - {item.product_id for item in items})
        if unknown:
            raise ValidationFailedError(
                details={"message": "receive lines name products not on the purchase", "product_ids": unknown}
            )

        codes_by_product: dict[int, list[str]] = {}
        for item in items:
            codes = normalize_codes(serials.get(item.product_id))
            if products[item.product_id].requires_serial:
                if len(codes) != item.quantity:
                    raise SerialCountMismatchError(
                        details={"product_id": item.product_id, "expected": item.quantity, "received": len(codes)}
                    )
            elif codes:
                raise ValidationFailedError(
                    details={"message": "product is not serial tracked", "product_id": item.product_id}
                )
            codes_by_product[item.product_id] = codes

        ledger = StockLedger(db)
        ledger.lock_entries(
            [(purchase.branch_id, item.product_id) for item in items],
            create=True,
            initial_cost={(purchase.branch_id, item.product_id): item.unit_cost for item in items},
        )
        registry = SerialRegistry(db)
        for item in items:
            if item.product_id in selling_prices:
                item.selling_price = to_money(selling_prices[item.product_id])
            entry = ledger.adjust(
                purchase.branch_id,
                item.product_id,
                item.quantity,
                reason=MovementReason.PURCHASE_RECEIVE,
                new_cost_price=item.unit_cost,
                new_selling_price=item.selling_price,
                document_type=DOCUMENT_TYPE,
                document_id=purchase.id,
                user_id=user_id,
            )
            if codes_by_product[item.product_id]:
                registry.register(codes_by_product[item.product_id], entry, purchase_id=purchase.id)

        now = utcnow()
        purchase.status = PurchaseStatus.RECEIVED
        purchase.received_by_user_id = user_id
        purchase.received_at = now
        purchase.updated_at = now
        db.flush()
        log_json(
            logger,
            {
                "event": "purchase_received",
                "purchase_id": purchase.id,
                "branch_id": purchase.branch_id,
                "user_id": user_id,
                "serial_units": sum(len(codes) for codes in codes_by_product.values()),
            },
        )
    return purchase


def get_purchase(db, purchase_id: int) -> Purchase:
    return require(db, Purchase, purchase_id, label="purchase")
