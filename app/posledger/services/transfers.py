"""Two-phase stock transfer between branches.

::

    PENDING --send--> IN_TRANSIT --receive--> RECEIVED
       |                  |
       +-----reject-------+------------------> REJECTED

Units leave the source ledger on send and enter the destination ledger on
receive; while IN_TRANSIT they are counted by neither branch.
"""

from __future__ import annotations

import logging

from app.posledger.core.error_catalog import (
    InsufficientStockError,
    InvalidTransferTransitionError,
    SerialCountMismatchError,
    ValidationFailedError,
)
from app.posledger.core.logging import log_json
from app.posledger.core.money import to_money
from app.posledger.core.statuses import MovementReason, SerialStatus, TransferStatus
from app.posledger.db.models import Branch, Transfer, TransferItem, utcnow
from app.posledger.db.session import atomic
from app.posledger.repos.stock import StockRepository
from app.posledger.schemas.transfers import TransferCreateRequest
from app.posledger.services import numbering
from app.posledger.services.ledger import StockLedger
from app.posledger.services.lookups import reject_duplicate_products, require, require_products
from app.posledger.services.serials import SerialRegistry, normalize_codes

logger = logging.getLogger("posledger.transfers")

DOCUMENT_TYPE = "TRANSFER"


def _log_transition(transfer: Transfer, action: str, user_id: int) -> None:
    log_json(
        logger,
        {
            "event": "transfer_transition",
            "transfer_id": transfer.id,
            "transfer_number": transfer.transfer_number,
            "action": action,
            "status": transfer.status,
            "from_branch_id": transfer.from_branch_id,
            "to_branch_id": transfer.to_branch_id,
            "user_id": user_id,
        },
    )


def _invalid(transfer: Transfer, action: str) -> InvalidTransferTransitionError:
    return InvalidTransferTransitionError(
        details={"transfer_id": transfer.id, "status": transfer.status, "action": action}
    )


def create_transfer(db, payload: TransferCreateRequest, *, user_id: int) -> Transfer:
    if payload.from_branch_id == payload.to_branch_id:
        raise ValidationFailedError(details={"message": "from_branch_id and to_branch_id must differ"})
    reject_duplicate_products([line.product_id for line in payload.lines])
    with atomic(db):
        source = require(db, Branch, payload.from_branch_id, label="branch")
        destination = require(db, Branch, payload.to_branch_id, label="branch")
        products = require_products(db, [line.product_id for line in payload.lines])

        stock = StockRepository(db)
        transfer = Transfer(
            transfer_number=numbering.transfer_number(source.code, destination.code),
            from_branch_id=source.id,
            to_branch_id=destination.id,
            user_id=user_id,
            status=TransferStatus.PENDING,
            notes=payload.notes,
        )
        if payload.transfer_date is not None:
            transfer.transfer_date = payload.transfer_date
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
            entry = stock.get_entry(source.id, line.product_id)
            available = entry.quantity if entry is not None else 0
            if available < line.quantity:
                raise InsufficientStockError(
                    details={
                        "branch_id": source.id,
                        "product_id": line.product_id,
                        "requested": line.quantity,
                        "available": available,
                    }
                )
            transfer.items.append(
                TransferItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    cost_price=to_money(entry.cost_price),
                    serial_codes=codes or None,
                )
            )
        db.add(transfer)
        db.flush()
        _log_transition(transfer, "create", user_id)
    return transfer


def send_transfer(db, transfer_id: int, *, user_id: int) -> Transfer:
    with atomic(db):
        transfer = require(db, Transfer, transfer_id, label="transfer", for_update=True)
        if transfer.status != TransferStatus.PENDING:
            raise _invalid(transfer, "send")
        items = list(transfer.items)
        products = require_products(db, [item.product_id for item in items])

        ledger = StockLedger(db)
        ledger.lock_entries([(transfer.from_branch_id, item.product_id) for item in items])
        registry = SerialRegistry(db)
        for item in items:
            entry = ledger.adjust(
                transfer.from_branch_id,
                item.product_id,
                -item.quantity,
                reason=MovementReason.TRANSFER_SEND,
                document_type=DOCUMENT_TYPE,
                document_id=transfer.id,
                user_id=user_id,
            )
            item.cost_price = to_money(entry.cost_price)
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
            registry.mark_transferred(units, transfer.id)
            item.serial_codes = [unit.serial_code for unit in units]

        now = utcnow()
        transfer.status = TransferStatus.IN_TRANSIT
        transfer.sent_by_user_id = user_id
        transfer.sent_at = now
        transfer.updated_at = now
        db.flush()
        _log_transition(transfer, "send", user_id)
    return transfer


def _units_by_product(registry: SerialRegistry, transfer: Transfer) -> dict[int, list]:
    in_transit = {unit.serial_code: unit for unit in registry.select_in_transit(transfer.id)}
    return {
        item.product_id: [in_transit[code] for code in item.serial_codes or [] if code in in_transit]
        for item in transfer.items
    }


def receive_transfer(db, transfer_id: int, *, user_id: int) -> Transfer:
    with atomic(db):
        transfer = require(db, Transfer, transfer_id, label="transfer", for_update=True)
        if transfer.status != TransferStatus.IN_TRANSIT:
            raise _invalid(transfer, "receive")
        items = list(transfer.items)

        ledger = StockLedger(db)
        ledger.lock_entries(
            [(transfer.to_branch_id, item.product_id) for item in items],
            create=True,
            initial_cost={(transfer.to_branch_id, item.product_id): item.cost_price for item in items},
        )
        registry = SerialRegistry(db)
        units = _units_by_product(registry, transfer)
        for item in items:
            entry = ledger.adjust(
                transfer.to_branch_id,
                item.product_id,
                item.quantity,
                reason=MovementReason.TRANSFER_RECEIVE,
                new_cost_price=item.cost_price,
                document_type=DOCUMENT_TYPE,
                document_id=transfer.id,
                user_id=user_id,
            )
            registry.restock(units[item.product_id], entry.id)

        now = utcnow()
        transfer.status = TransferStatus.RECEIVED
        transfer.received_by_user_id = user_id
        transfer.received_at = now
        transfer.updated_at = now
        db.flush()
        _log_transition(transfer, "receive", user_id)
    return transfer


def reject_transfer(db, transfer_id: int, *, user_id: int) -> Transfer:
    """Reject a transfer; from IN_TRANSIT the sent units go back to the source branch."""
    with atomic(db):
        transfer = require(db, Transfer, transfer_id, label="transfer", for_update=True)
        if transfer.status not in (TransferStatus.PENDING, TransferStatus.IN_TRANSIT):
            raise _invalid(transfer, "reject")

        if transfer.status == TransferStatus.IN_TRANSIT:
            items = list(transfer.items)
            ledger = StockLedger(db)
            ledger.lock_entries([(transfer.from_branch_id, item.product_id) for item in items])
            registry = SerialRegistry(db)
            units = _units_by_product(registry, transfer)
            for item in items:
                entry = ledger.adjust(
                    transfer.from_branch_id,
                    item.product_id,
                    item.quantity,
                    reason=MovementReason.TRANSFER_REJECT,
                    document_type=DOCUMENT_TYPE,
                    document_id=transfer.id,
                    user_id=user_id,
                )
                registry.restock(units[item.product_id], entry.id)

        now = utcnow()
        transfer.status = TransferStatus.REJECTED
        transfer.rejected_by_user_id = user_id
        transfer.rejected_at = now
        transfer.updated_at = now
        db.flush()
        _log_transition(transfer, "reject", user_id)
    return transfer


TRANSFER_ACTIONS = {
    "send": send_transfer,
    "receive": receive_transfer,
    "reject": reject_transfer,
}


def get_transfer(db, transfer_id: int) -> Transfer:
    return require(db, Transfer, transfer_id, label="transfer")
