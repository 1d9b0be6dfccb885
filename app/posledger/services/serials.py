"""Serial unit lifecycle.

Allowed status changes::

    IN_STOCK    -> SOLD | RETURNED | TRANSFERRED
    SOLD        -> RETURNED
    TRANSFERRED -> IN_STOCK

A serial code is registered once and never reissued, whatever its status.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from app.posledger.core.error_catalog import (
    DuplicateSerialError,
    InvalidSerialTransitionError,
    NotFoundError,
    SerialCountMismatchError,
    SerialUnavailableError,
)
from app.posledger.core.logging import log_json
from app.posledger.core.statuses import SerialStatus
from app.posledger.db.models import SerialUnit, StockLedgerEntry, utcnow
from app.posledger.db.session import atomic
from app.posledger.repos.serials import SerialRepository
from app.posledger.repos.stock import StockRepository

logger = logging.getLogger("posledger.serials")

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    SerialStatus.IN_STOCK: frozenset({SerialStatus.SOLD, SerialStatus.RETURNED, SerialStatus.TRANSFERRED}),
    SerialStatus.SOLD: frozenset({SerialStatus.RETURNED}),
    SerialStatus.TRANSFERRED: frozenset({SerialStatus.IN_STOCK}),
    SerialStatus.RETURNED: frozenset(),
    SerialStatus.DEFECTIVE: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def normalize_codes(serial_codes) -> list[str]:
    return [code.strip() for code in serial_codes or [] if code and code.strip()]


def _require_count(units: list[SerialUnit], quantity: int, *, expected_status: str, **owner) -> None:
    if len(units) < quantity:
        raise SerialUnavailableError(
            details={"expected_status": expected_status, "requested": quantity, "available": len(units), **owner}
        )


class SerialRegistry:
    def __init__(self, db):
        self.db = db
        self.repo = SerialRepository(db)

    def register(self, serial_codes: list[str], entry: StockLedgerEntry, *, purchase_id: int | None) -> list[SerialUnit]:
        codes = normalize_codes(serial_codes)
        duplicates = sorted({code for code in codes if codes.count(code) > 1})
        if duplicates:
            raise DuplicateSerialError(details={"serial_codes": duplicates})
        existing = [unit.serial_code for unit in self.repo.get_by_codes(codes)]
        if existing:
            raise DuplicateSerialError(details={"serial_codes": sorted(existing)})

        units = [
            SerialUnit(
                serial_code=code,
                ledger_entry_id=entry.id,
                status=SerialStatus.IN_STOCK,
                purchase_id=purchase_id,
            )
            for code in codes
        ]
        try:
            with self.db.begin_nested():
                self.db.add_all(units)
                self.db.flush()
        except IntegrityError as exc:
            raise DuplicateSerialError(details={"serial_codes": codes}) from exc
        return units

    def transition(self, unit: SerialUnit, target: str) -> SerialUnit:
        if not can_transition(unit.status, target):
            raise InvalidSerialTransitionError(
                details={
                    "serial_code": unit.serial_code,
                    "from_status": unit.status,
                    "to_status": target,
                }
            )
        unit.status = target
        unit.updated_at = utcnow()
        return unit

    def select_explicit(
        self,
        serial_codes: list[str],
        *,
        quantity: int,
        expected_status: str,
        ledger_entry_id: int | None = None,
        sale_id: int | None = None,
    ) -> list[SerialUnit]:
        """Lock the named units and check each one is in ``expected_status`` and owned as given."""
        codes = normalize_codes(serial_codes)
        if len(codes) != quantity or len(set(codes)) != len(codes):
            raise SerialCountMismatchError(details={"expected": quantity, "received": len(set(codes))})
        units = {unit.serial_code: unit for unit in self.repo.get_by_codes(codes, for_update=True)}
        unavailable = []
        for code in codes:
            unit = units.get(code)
            if unit is None or unit.status != expected_status:
                unavailable.append(code)
            elif ledger_entry_id is not None and unit.ledger_entry_id != ledger_entry_id:
                unavailable.append(code)
            elif sale_id is not None and unit.sale_id != sale_id:
                unavailable.append(code)
        if unavailable:
            raise SerialUnavailableError(details={"serial_codes": unavailable, "expected_status": expected_status})
        return [units[code] for code in codes]

    def select_first_in_stock(self, ledger_entry_id: int, quantity: int) -> list[SerialUnit]:
        units = self.repo.first_by_entry_status(ledger_entry_id, SerialStatus.IN_STOCK, quantity, for_update=True)
        _require_count(units, quantity, expected_status=SerialStatus.IN_STOCK, ledger_entry_id=ledger_entry_id)
        return units

    def select_first_sold(self, sale_id: int, product_id: int, quantity: int) -> list[SerialUnit]:
        units = self.repo.first_sold_for_sale(sale_id, product_id, SerialStatus.SOLD, quantity, for_update=True)
        _require_count(units, quantity, expected_status=SerialStatus.SOLD, sale_id=sale_id, product_id=product_id)
        return units

    def select_in_transit(self, transfer_id: int) -> list[SerialUnit]:
        return self.repo.list_by_transfer(transfer_id, SerialStatus.TRANSFERRED, for_update=True)

    def mark_sold(self, units: list[SerialUnit], sale_id: int) -> None:
        for unit in units:
            if unit.status != SerialStatus.IN_STOCK:
                raise SerialUnavailableError(details={"serial_code": unit.serial_code, "status": unit.status})
            self.transition(unit, SerialStatus.SOLD)
            unit.sale_id = sale_id

    def mark_transferred(self, units: list[SerialUnit], transfer_id: int) -> None:
        for unit in units:
            self.transition(unit, SerialStatus.TRANSFERRED)
            unit.transfer_id = transfer_id

    def restock(self, units: list[SerialUnit], ledger_entry_id: int) -> None:
        for unit in units:
            self.transition(unit, SerialStatus.IN_STOCK)
            unit.ledger_entry_id = ledger_entry_id

    def mark_returned(self, units: list[SerialUnit], *, clear_sale: bool = False) -> None:
        for unit in units:
            self.transition(unit, SerialStatus.RETURNED)
            if clear_sale:
                unit.sale_id = None


def lookup(db, serial_code: str) -> SerialUnit:
    unit = SerialRepository(db).get_by_code(serial_code)
    if unit is None:
        raise NotFoundError(details={"message": "serial not found", "serial_code": serial_code})
    return unit


def list_by_branch(db, branch_id: int, *, status: str | None = None, limit: int, offset: int = 0) -> list[SerialUnit]:
    return SerialRepository(db).list_by_branch(branch_id, status=status, limit=limit, offset=offset)


def list_available(db, *, branch_id: int, product_id: int) -> list[SerialUnit]:
    entry = StockRepository(db).get_entry(branch_id, product_id)
    if entry is None:
        return []
    return SerialRepository(db).list_by_filters(ledger_entry_id=entry.id, status=SerialStatus.IN_STOCK)


def list_for_document(db, *, purchase_id: int | None = None, sale_id: int | None = None) -> list[SerialUnit]:
    return SerialRepository(db).list_by_filters(purchase_id=purchase_id, sale_id=sale_id)


def list_for_entry(db, ledger_entry_id: int) -> list[SerialUnit]:
    return SerialRepository(db).list_by_filters(ledger_entry_id=ledger_entry_id)


def branch_status_counts(db, branch_id: int) -> dict[str, int]:
    counts = {status: 0 for status in SerialStatus.ALL}
    counts.update(SerialRepository(db).count_by_status(branch_id))
    return counts


def update_notes(db, serial_id: int, notes: str | None) -> SerialUnit:
    with atomic(db):
        unit = SerialRepository(db).get(serial_id, for_update=True)
        if unit is None:
            raise NotFoundError(details={"message": "serial not found", "serial_id": serial_id})
        unit.notes = notes
        unit.updated_at = utcnow()
        log_json(logger, {"event": "serial_notes_updated", "serial_id": serial_id})
    return unit
