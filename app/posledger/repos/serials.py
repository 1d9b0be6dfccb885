from __future__ import annotations

from sqlalchemy import func, select

from app.posledger.db.models import SerialUnit, StockLedgerEntry


class SerialRepository:
    def __init__(self, db):
        self.db = db

    def get(self, serial_id: int, *, for_update: bool = False) -> SerialUnit | None:
        query = select(SerialUnit).where(SerialUnit.id == serial_id)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def get_by_code(self, serial_code: str) -> SerialUnit | None:
        return self.db.execute(select(SerialUnit).where(SerialUnit.serial_code == serial_code)).scalars().first()

    def get_by_codes(self, serial_codes: list[str], *, for_update: bool = False) -> list[SerialUnit]:
        if not serial_codes:
            return []
        query = select(SerialUnit).where(SerialUnit.serial_code.in_(serial_codes)).order_by(SerialUnit.id)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().all()

    def first_by_entry_status(
        self,
        ledger_entry_id: int,
        status: str,
        limit: int,
        *,
        for_update: bool = False,
    ) -> list[SerialUnit]:
        query = (
            select(SerialUnit)
            .where(SerialUnit.ledger_entry_id == ledger_entry_id, SerialUnit.status == status)
            .order_by(SerialUnit.id)
            .limit(limit)
        )
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().all()

    def first_sold_for_sale(
        self,
        sale_id: int,
        product_id: int,
        status: str,
        limit: int,
        *,
        for_update: bool = False,
    ) -> list[SerialUnit]:
        query = (
            select(SerialUnit)
            .join(StockLedgerEntry, StockLedgerEntry.id == SerialUnit.ledger_entry_id)
            .where(
                SerialUnit.sale_id == sale_id,
                SerialUnit.status == status,
                StockLedgerEntry.product_id == product_id,
            )
            .order_by(SerialUnit.id)
            .limit(limit)
        )
        if for_update:
            query = query.with_for_update(of=SerialUnit)
        return self.db.execute(query).scalars().all()

    def list_by_transfer(self, transfer_id: int, status: str, *, for_update: bool = False) -> list[SerialUnit]:
        query = (
            select(SerialUnit)
            .where(SerialUnit.transfer_id == transfer_id, SerialUnit.status == status)
            .order_by(SerialUnit.id)
        )
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().all()

    def list_by_branch(self, branch_id: int, *, status: str | None = None, limit: int, offset: int = 0) -> list[SerialUnit]:
        query = (
            select(SerialUnit)
            .join(StockLedgerEntry, StockLedgerEntry.id == SerialUnit.ledger_entry_id)
            .where(StockLedgerEntry.branch_id == branch_id)
        )
        if status:
            query = query.where(SerialUnit.status == status)
        query = query.order_by(SerialUnit.id).offset(offset).limit(limit)
        return self.db.execute(query).scalars().all()

    def list_by_filters(
        self,
        *,
        ledger_entry_id: int | None = None,
        purchase_id: int | None = None,
        sale_id: int | None = None,
        status: str | None = None,
    ) -> list[SerialUnit]:
        query = select(SerialUnit)
        if ledger_entry_id is not None:
            query = query.where(SerialUnit.ledger_entry_id == ledger_entry_id)
        if purchase_id is not None:
            query = query.where(SerialUnit.purchase_id == purchase_id)
        if sale_id is not None:
            query = query.where(SerialUnit.sale_id == sale_id)
        if status:
            query = query.where(SerialUnit.status == status)
        return self.db.execute(query.order_by(SerialUnit.id)).scalars().all()

    def count_by_status(self, branch_id: int) -> dict[str, int]:
        query = (
            select(SerialUnit.status, func.count())
            .join(StockLedgerEntry, StockLedgerEntry.id == SerialUnit.ledger_entry_id)
            .where(StockLedgerEntry.branch_id == branch_id)
            .group_by(SerialUnit.status)
        )
        return {status: int(count) for status, count in self.db.execute(query).all()}

    def count_by_entry_status(self, ledger_entry_id: int, status: str) -> int:
        query = select(func.count()).where(
            SerialUnit.ledger_entry_id == ledger_entry_id,
            SerialUnit.status == status,
        )
        return int(self.db.execute(query).scalar_one() or 0)
