from __future__ import annotations

import logging

from app.posledger.core.error_catalog import (
    InsufficientStockError,
    InvalidApprovalStateError,
    SerialCountMismatchError,
    ValidationFailedError,
)
from app.posledger.core.logging import log_json
from app.posledger.core.money import ZERO, to_money
from app.posledger.core.statuses import ApprovalStatus, MovementReason, SerialStatus
from app.posledger.db.models import Branch, Purchase, Supplier, SupplierReturn, SupplierReturnItem, utcnow
from app.posledger.db.session import atomic
from app.posledger.repos.stock import StockRepository
from app.posledger.schemas.approvals import ReturnCreateRequest
from app.posledger.services import numbering
from app.posledger.services.ledger import StockLedger
from app.posledger.services.lookups import reject_duplicate_products, require, require_products
from app.posledger.services.serials import SerialRegistry, normalize_codes

logger = logging.getLogger("posledger.returns")

DOCUMENT_TYPE = "SUPPLIER_RETURN"


def _require_pending(document: SupplierReturn, action: str) -> None:
    if document.status != ApprovalStatus.PENDING:
        raise InvalidApprovalStateError(
            details={"return_id": document.id, "status": document.status, "action": action}
        )


def create_return(db, payload: ReturnCreateRequest, *, user_id: int) -> SupplierReturn:
    reject_duplicate_products([line.product_id for line in payload.lines])
    with atomic(db):
        branch = require(db, Branch, payload.branch_id, label="branch")
        require(db, Supplier, payload.supplier_id, label="supplier")
        if payload.purchase_id is not None:
            purchase = require(db, Purchase, payload.purchase_id, label="purchase")
            if purchase.branch_id != branch.id:
                raise ValidationFailedError(
                    details={"message": "purchase belongs to another branch", "purchase_id": purchase.id}
                )
        products = require_products(db, [line.product_id for line in payload.lines])

        stock = StockRepository(db)
        document = SupplierReturn(
            return_number=numbering.return_number(branch.code),
            branch_id=branch.id,
            supplier_id=payload.supplier_id,
            purchase_id=payload.purchase_id,
            user_id=user_id,
            reason=payload.reason,
            status=ApprovalStatus.PENDING,
        )
        if payload.return_date is not None:
            document.return_date = payload.return_date
        total = ZERO
        for line in payload.lines:
            codes = normalize_codes(line.serial_codes)
            if codes and not products[line.product_id].requires_serial:
                raise ValidationFailedError(
                    details={"message": "product is not serial tracked", "product_id": line.product_id}
                )
            if codes and len(codes) != line.quantity:
                raise SerialCountMismatchError(
                    details={"product_id": line.product_id, "expected": line.quantity, "received": len(codes)}
                )
            entry = stock.get_entry(branch.id, line.product_id)
            available = entry.quantity if entry is not None else 0
            if available < line.quantity:
                raise InsufficientStockError(
                    details={
                        "branch_id": branch.id,
                        "product_id": line.product_id,
                        "requested": line.quantity,
                        "available": available,
                    }
                )
            line_total = to_money(line.unit_cost * line.quantity)
            document.items.append(
                SupplierReturnItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_cost=to_money(line.unit_cost),
                    total_cost=line_total,
                    serial_codes=codes or None,
                )
            )
            total += line_total
        document.total_amount = total
        db.add(document)
        db.flush()
        log_json(logger, {"event": "supplier_return_created", "return_id": document.id, "branch_id": branch.id})
    return document


def approve_return(db, return_id: int, *, user_id: int) -> SupplierReturn:
    with atomic(db):
        document = require(db, SupplierReturn, return_id, label="return", for_update=True)
        _require_pending(document, "approve")
        items = list(document.items)
        products = require_products(db, [item.product_id for item in items])

        ledger = StockLedger(db)
        ledger.lock_entries([(document.branch_id, item.product_id) for item in items])
        registry = SerialRegistry(db)
        for item in items:
            entry = ledger.adjust(
                document.branch_id,
                item.product_id,
                -item.quantity,
                reason=MovementReason.SUPPLIER_RETURN,
                document_type=DOCUMENT_TYPE,
                document_id=document.id,
                user_id=user_id,
            )
            if not products[item.product_id].requires_serial:
                continue
            if item.serial_codes:
                units = registry.select_explicit(
                    item.serial_codes,
                    quantity=item.quantity,
                    expected_status=SerialStatus.IN_STOCK,
                    ledger_entry_id=entry.id,
                )
            else:
                units = registry.select_first_in_stock(entry.id, item.quantity)
            registry.mark_returned(units)
            item.serial_codes = [unit.serial_code for unit in units]

        now = utcnow()
        document.status = ApprovalStatus.APPROVED
        document.approved_by_user_id = user_id
        document.approved_at = now
        document.updated_at = now
        db.flush()
        log_json(logger, {"event": "supplier_return_approved", "return_id": document.id, "user_id": user_id})
    return document


def reject_return(db, return_id: int, *, user_id: int) -> SupplierReturn:
    with atomic(db):
        document = require(db, SupplierReturn, return_id, label="return", for_update=True)
        _require_pending(document, "reject")
        now = utcnow()
        document.status = ApprovalStatus.REJECTED
        document.rejected_by_user_id = user_id
        document.rejected_at = now
        document.updated_at = now
        db.flush()
        log_json(logger, {"event": "supplier_return_rejected", "return_id": document.id, "user_id": user_id})
    return document


RETURN_ACTIONS = {
    "approve": approve_return,
    "reject": reject_return,
}


def get_return(db, return_id: int) -> SupplierReturn:
    return require(db, SupplierReturn, return_id, label="return")
