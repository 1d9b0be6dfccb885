"""Per-branch stock quantities.

``StockLedger.adjust`` is the only code path that changes a ledger quantity.
Every call locks the (branch, product) row, refuses to go below zero, and
writes one ``stock_movements`` row in the caller's transaction.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy.exc import IntegrityError

from app.posledger.core.error_catalog import InsufficientStockError, NotFoundError, ValidationFailedError
from app.posledger.core.logging import log_json
from app.posledger.core.metrics import metrics
from app.posledger.core.money import to_money
from app.posledger.core.statuses import MovementReason, SerialStatus
from app.posledger.db.models import Branch, Product, StockLedgerEntry, StockMovement, utcnow
from app.posledger.db.session import atomic
from app.posledger.repos.serials import SerialRepository
from app.posledger.repos.stock import StockRepository

logger = logging.getLogger("posledger.ledger")

LedgerKey = tuple[int, int]


class StockLedger:
    def __init__(self, db):
        self.db = db
        self.repo = StockRepository(db)

    def read(self, branch_id: int, product_id: int) -> StockLedgerEntry:
        entry = self.repo.get_entry(branch_id, product_id)
        if entry is None:
            raise NotFoundError(
                details={"message": "stock entry not found", "branch_id": branch_id, "product_id": product_id}
            )
        return entry

    def get_or_create(
        self,
        branch_id: int,
        product_id: int,
        *,
        initial_cost: Decimal | None = None,
    ) -> StockLedgerEntry:
        """Return the locked entry for (branch, product), creating it with zero quantity if absent."""
        entry = self.repo.get_entry(branch_id, product_id, for_update=True)
        if entry is not None:
            return entry
        if self.db.get(Branch, branch_id) is None:
            raise NotFoundError(details={"message": "branch not found", "branch_id": branch_id})
        if self.db.get(Product, product_id) is None:
            raise NotFoundError(details={"message": "product not found", "product_id": product_id})

        entry = StockLedgerEntry(
            branch_id=branch_id,
            product_id=product_id,
            quantity=0,
            cost_price=to_money(initial_cost),
            selling_price=None,
        )
        try:
            with self.db.begin_nested():
                self.db.add(entry)
                self.db.flush()
        except IntegrityError:
            # another transaction inserted the same (branch, product) first
            entry = self.repo.get_entry(branch_id, product_id, for_update=True)
            if entry is None:
                raise
        return entry

    def lock_entries(
        self,
        keys: Iterable[LedgerKey],
        *,
        create: bool = False,
        initial_cost: dict[LedgerKey, Decimal] | None = None,
    ) -> dict[LedgerKey, StockLedgerEntry | None]:
        """Lock every entry a workflow will touch, in (branch_id, product_id) order."""
        entries: dict[LedgerKey, StockLedgerEntry | None] = {}
        for key in sorted(set(keys)):
            branch_id, product_id = key
            if create:
                cost = (initial_cost or {}).get(key)
                entries[key] = self.get_or_create(branch_id, product_id, initial_cost=cost)
            else:
                entries[key] = self.repo.get_entry(branch_id, product_id, for_update=True)
        return entries

    def adjust(
        self,
        branch_id: int,
        product_id: int,
        delta: int,
        *,
        reason: str,
        new_cost_price: Decimal | None = None,
        new_selling_price: Decimal | None = None,
        document_type: str | None = None,
        document_id: int | None = None,
        user_id: int | None = None,
        note: str | None = None,
    ) -> StockLedgerEntry:
        if delta >= 0:
            entry = self.get_or_create(branch_id, product_id, initial_cost=new_cost_price)
        else:
            entry = self.repo.get_entry(branch_id, product_id, for_update=True)
            if entry is None:
                raise InsufficientStockError(
                    details={
                        "branch_id": branch_id,
                        "product_id": product_id,
                        "requested": -delta,
                        "available": 0,
                    }
                )

        new_quantity = entry.quantity + delta
        if new_quantity < 0:
            raise InsufficientStockError(
                details={
                    "branch_id": branch_id,
                    "product_id": product_id,
                    "requested": -delta,
                    "available": entry.quantity,
                }
            )

        now = utcnow()
        entry.quantity = new_quantity
        if new_cost_price is not None:
            entry.cost_price = to_money(new_cost_price)
        if new_selling_price is not None:
            entry.selling_price = to_money(new_selling_price)
        entry.updated_at = now
        if reason != MovementReason.SALE:
            entry.last_stock_date = now

        self.db.add(
            StockMovement(
                ledger_entry_id=entry.id,
                branch_id=branch_id,
                product_id=product_id,
                delta=delta,
                quantity_after=new_quantity,
                reason=reason,
                document_type=document_type,
                document_id=document_id,
                user_id=user_id,
                note=note,
                created_at=now,
            )
        )
        self.db.flush()

        metrics.increment_stock_adjustment(reason)
        log_json(
            logger,
            {
                "event": "stock_adjusted",
                "branch_id": branch_id,
                "product_id": product_id,
                "delta": delta,
                "quantity_after": new_quantity,
                "reason": reason,
                "document_type": document_type,
                "document_id": document_id,
                "user_id": user_id,
            },
        )
        return entry


def get_stock(db, branch_id: int, product_id: int) -> StockLedgerEntry:
    return StockLedger(db).read(branch_id, product_id)


def get_available_quantity(db, branch_id: int, product_id: int) -> int:
    entry = StockRepository(db).get_entry(branch_id, product_id)
    return entry.quantity if entry is not None else 0


def list_branch_stock(db, branch_id: int, *, limit: int, offset: int = 0) -> list[StockLedgerEntry]:
    return StockRepository(db).list_by_branch(branch_id, limit=limit, offset=offset)


def list_low_stock(db, branch_id: int) -> list[StockLedgerEntry]:
    return StockRepository(db).list_low_stock(branch_id)


def correct_stock(
    db,
    *,
    branch_id: int,
    product_id: int,
    counted_quantity: int,
    reason: str,
    user_id: int,
) -> StockLedgerEntry:
    """Bring a ledger quantity in line with a physical count.

    The difference is applied through ``adjust`` so the correction is journaled
    like any other movement. Serial-tracked entries cannot be counted below the
    number of units still IN_STOCK at the branch.
    """
    if counted_quantity < 0:
        raise ValidationFailedError(
            details={"message": "counted_quantity must be >= 0", "counted_quantity": counted_quantity}
        )
    with atomic(db):
        ledger = StockLedger(db)
        entry = ledger.get_or_create(branch_id, product_id)
        previous = entry.quantity
        in_stock_units = SerialRepository(db).count_by_entry_status(entry.id, SerialStatus.IN_STOCK)
        if counted_quantity < in_stock_units:
            raise ValidationFailedError(
                details={
                    "message": "counted_quantity is below the number of serial units in stock",
                    "counted_quantity": counted_quantity,
                    "serial_units_in_stock": in_stock_units,
                }
            )
        delta = counted_quantity - previous
        if delta != 0:
            entry = ledger.adjust(
                branch_id,
                product_id,
                delta,
                reason=MovementReason.STOCK_CORRECTION,
                user_id=user_id,
                note=reason,
            )
        log_json(
            logger,
            {
                "event": "stock_corrected",
                "branch_id": branch_id,
                "product_id": product_id,
                "previous_quantity": previous,
                "counted_quantity": counted_quantity,
                "delta": delta,
                "reason": reason,
                "user_id": user_id,
            },
        )
    return entry
