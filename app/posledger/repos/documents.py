from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select

from app.posledger.core.statuses import ApprovalStatus
from app.posledger.db.models import Product, Refund, RefundItem, Sale


class DocumentRepository:
    """Header lookups for the document workflows and the master rows they reference."""

    def __init__(self, db):
        self.db = db

    def get(self, model, document_id: int, *, for_update: bool = False):
        query = select(model).where(model.id == document_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(query).scalars().first()

    def get_products(self, product_ids) -> dict[int, Product]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        rows = self.db.execute(select(Product).where(Product.id.in_(ids))).scalars().all()
        return {row.id: row for row in rows}

    def list_sales(self, branch_id: int, *, limit: int, offset: int = 0) -> list[Sale]:
        query = (
            select(Sale)
            .where(Sale.branch_id == branch_id)
            .order_by(Sale.reference_sequence.desc())
            .offset(offset)
            .limit(limit)
        )
        return self.db.execute(query).scalars().all()

    def refunded_amount(self, sale_id: int) -> Decimal:
        query = select(func.coalesce(func.sum(Refund.total_amount), 0)).where(
            Refund.sale_id == sale_id,
            Refund.status == ApprovalStatus.APPROVED,
        )
        return Decimal(str(self.db.execute(query).scalar_one() or 0))

    def refunded_quantities(self, sale_id: int) -> dict[int, int]:
        query = (
            select(RefundItem.product_id, func.coalesce(func.sum(RefundItem.quantity), 0))
            .join(Refund, Refund.id == RefundItem.refund_id)
            .where(Refund.sale_id == sale_id, Refund.status == ApprovalStatus.APPROVED)
            .group_by(RefundItem.product_id)
        )
        return {product_id: int(quantity) for product_id, quantity in self.db.execute(query).all()}
