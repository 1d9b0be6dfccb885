from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from app.posledger.core.error_catalog import (
    InvalidApprovalStateError,
    SerialCountMismatchError,
    ValidationFailedError,
)
from app.posledger.core.logging import log_json
from app.posledger.core.money import ZERO, to_money
from app.posledger.core.statuses import ApprovalStatus, MovementReason, SerialStatus
from app.posledger.db.models import Branch, Customer, Refund, RefundItem, Sale, utcnow
from app.posledger.db.session import atomic
from app.posledger.repos.documents import DocumentRepository
from app.posledger.schemas.approvals import RefundCreateRequest
from app.posledger.services import numbering
from app.posledger.services.ledger import StockLedger
from app.posledger.services.lookups import reject_duplicate_products, require, require_products
from app.posledger.services.serials import SerialRegistry, normalize_codes

logger = logging.getLogger("posledger.refunds")

DOCUMENT_TYPE = "REFUND"


def _require_pending(document: Refund, action: str) -> None:
    if document.status != ApprovalStatus.PENDING:
        raise InvalidApprovalStateError(
            details={"refund_id": document.id, "status": document.status, "action": action}
        )


def _check_refund_limits(db, sale: Sale, requested: dict[int, int]) -> None:
    """Refunded quantity per product may not exceed what the sale sold."""
    sold: dict[int, int] = defaultdict(int)
    for item in sale.items:
        sold[item.product_id] += item.quantity
    refunded = DocumentRepository(db).refunded_quantities(sale.id)
    for product_id, quantity in sorted(requested.items()):
        if product_id not in sold:
            raise ValidationFailedError(
                details={"message": "product is not on the sale", "sale_id": sale.id, "product_id": product_id}
            )
        remaining = sold[product_id] - refunded.get(product_id, 0)
        if quantity > remaining:
            raise ValidationFailedError(
                details={
                    "message": "refund quantity exceeds quantity sold",
                    "sale_id": sale.id,
                    "product_id": product_id,
                    "requested": quantity,
                    "refundable": max(remaining, 0),
                }
            )


def create_refund(db, payload: RefundCreateRequest, *, user_id: int) -> Refund:
    reject_duplicate_products([line.product_id for line in payload.lines])
    with atomic(db):
        branch = require(db, Branch, payload.branch_id, label="branch")
        if payload.customer_id is not None:
            require(db, Customer, payload.customer_id, label="customer")
        sale = None
        if payload.sale_id is not None:
            sale = require(db, Sale, payload.sale_id, label="sale", for_update=True)
            if sale.branch_id != branch.id:
                raise ValidationFailedError(
                    details={
                        "message": "refund branch must match the sale branch",
                        "sale_id": sale.id,
                        "sale_branch_id": sale.branch_id,
                        "branch_id": branch.id,
                    }
                )
            _check_refund_limits(db, sale, {line.product_id: line.quantity for line in payload.lines})
        products = require_products(db, [line.product_id for line in payload.lines])

        document = Refund(
            refund_number=numbering.refund_number(branch.code),
            branch_id=branch.id,
            sale_id=payload.sale_id,
            customer_id=payload.customer_id if payload.customer_id is not None else getattr(sale, "customer_id", None),
            user_id=user_id,
            reason=payload.reason,
            refund_method=payload.refund_method,
            status=ApprovalStatus.PENDING,
        )
        if payload.refund_date is not None:
            document.refund_date = payload.refund_date
        total = ZERO
        for line in payload.lines:
            codes = normalize_codes(line.serial_codes)
            if codes and (sale is None or not products[line.product_id].requires_serial):
                raise ValidationFailedError(
                    details={
                        "message": "serial selection needs a linked sale and a serial tracked product",
                        "product_id": line.product_id,
                    }
                )
            if codes and len(codes) != line.quantity:
                raise SerialCountMismatchError(
                    details={"product_id": line.product_id, "expected": line.quantity, "received": len(codes)}
                )
            line_total = to_money(line.unit_price * line.quantity)
            document.items.append(
                RefundItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=to_money(line.unit_price),
                    total_price=line_total,
                    serial_codes=codes or None,
                )
            )
            total += line_total
        document.total_amount = total
        db.add(document)
        db.flush()
        log_json(
            logger,
            {"event": "refund_created", "refund_id": document.id, "sale_id": payload.sale_id, "branch_id": branch.id},
        )
    return document


def approve_refund(db, refund_id: int, *, user_id: int) -> Refund:
    """Put refunded quantities back on the branch ledger.

    When the refund is linked to a sale, the matching SOLD serial units move to
    RETURNED and are detached from the sale.
    """
    with atomic(db):
        document = require(db, Refund, refund_id, label="refund", for_update=True)
        _require_pending(document, "approve")
        items = list(document.items)
        products = require_products(db, [item.product_id for item in items])

        sale = None
        if document.sale_id is not None:
            # the sale row serializes approvals that draw on the same refundable quantity
            sale = require(db, Sale, document.sale_id, label="sale", for_update=True)
        sale_costs: dict[int, Decimal] = {}
        if sale is not None:
            _check_refund_limits(db, sale, {item.product_id: item.quantity for item in items})
            for sale_item in sale.items:
                sale_costs.setdefault(sale_item.product_id, sale_item.cost_price)

        ledger = StockLedger(db)
        ledger.lock_entries(
            [(document.branch_id, item.product_id) for item in items],
            create=True,
            initial_cost={
                (document.branch_id, item.product_id): sale_costs.get(item.product_id, item.unit_price)
                for item in items
            },
        )
        registry = SerialRegistry(db)
        for item in items:
            ledger.adjust(
                document.branch_id,
                item.product_id,
                item.quantity,
                reason=MovementReason.CUSTOMER_REFUND,
                document_type=DOCUMENT_TYPE,
                document_id=document.id,
                user_id=user_id,
            )
            if sale is None or not products[item.product_id].requires_serial:
                continue
            if item.serial_codes:
                units = registry.select_explicit(
                    item.serial_codes,
                    quantity=item.quantity,
                    expected_status=SerialStatus.SOLD,
                    sale_id=sale.id,
                )
            else:
                units = registry.select_first_sold(sale.id, item.product_id, item.quantity)
            registry.mark_returned(units, clear_sale=True)
            item.serial_codes = [unit.serial_code for unit in units]

        now = utcnow()
        document.status = ApprovalStatus.APPROVED
        document.approved_by_user_id = user_id
        document.approved_at = now
        document.updated_at = now
        db.flush()
        log_json(
            logger,
            {"event": "refund_approved", "refund_id": document.id, "sale_id": document.sale_id, "user_id": user_id},
        )
    return document


def reject_refund(db, refund_id: int, *, user_id: int) -> Refund:
    with atomic(db):
        document = require(db, Refund, refund_id, label="refund", for_update=True)
        _require_pending(document, "reject")
        now = utcnow()
        document.status = ApprovalStatus.REJECTED
        document.rejected_by_user_id = user_id
        document.rejected_at = now
        document.updated_at = now
        db.flush()
        log_json(logger, {"event": "refund_rejected", "refund_id": document.id, "user_id": user_id})
    return document


REFUND_ACTIONS = {
    "approve": approve_refund,
    "reject": reject_refund,
}


def get_refund(db, refund_id: int) -> Refund:
    return require(db, Refund, refund_id, label="refund")
