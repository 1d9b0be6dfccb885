from __future__ import annotations

from sqlalchemy import select

from app.posledger.db.models import Product, StockLedgerEntry, StockMovement


class StockRepository:
    def __init__(self, db):
        self.db = db

    def get_entry(self, branch_id: int, product_id: int, *, for_update: bool = False) -> StockLedgerEntry | None:
        query = select(StockLedgerEntry).where(
            StockLedgerEntry.branch_id == branch_id,
            StockLedgerEntry.product_id == product_id,
        )
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalars().first()

    def list_by_branch(self, branch_id: int, *, limit: int, offset: int = 0) -> list[StockLedgerEntry]:
        query = (
            select(StockLedgerEntry)
            .where(StockLedgerEntry.branch_id == branch_id)
            .order_by(StockLedgerEntry.product_id)
            .offset(offset)
            .limit(limit)
        )
        return self.db.execute(query).scalars().all()

    def list_low_stock(self, branch_id: int) -> list[StockLedgerEntry]:
        query = (
            select(StockLedgerEntry)
            .join(Product, Product.id == StockLedgerEntry.product_id)
            .where(
                StockLedgerEntry.branch_id == branch_id,
                StockLedgerEntry.quantity <= Product.reorder_level,
            )
            .order_by(StockLedgerEntry.quantity, StockLedgerEntry.product_id)
        )
        return self.db.execute(query).scalars().all()

    def list_movements(self, ledger_entry_id: int) -> list[StockMovement]:
        query = (
            select(StockMovement)
            .where(StockMovement.ledger_entry_id == ledger_entry_id)
            .order_by(StockMovement.id)
        )
        return self.db.execute(query).scalars().all()
