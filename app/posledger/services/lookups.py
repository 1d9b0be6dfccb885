from __future__ import annotations

from app.posledger.core.error_catalog import NotFoundError, ValidationFailedError
from app.posledger.db.models import Product
from app.posledger.repos.documents import DocumentRepository


def require(db, model, row_id: int, *, label: str, for_update: bool = False):
    row = DocumentRepository(db).get(model, row_id, for_update=for_update)
    if row is None:
        raise NotFoundError(details={"message": f"{label} not found", f"{label}_id": row_id})
    return row


def require_products(db, product_ids) -> dict[int, Product]:
    ids = set(product_ids)
    products = DocumentRepository(db).get_products(ids)
    missing = sorted(ids - set(products))
    if missing:
        raise NotFoundError(details={"message": "product not found", "product_ids": missing})
    return products


def reject_duplicate_products(product_ids: list[int]) -> None:
    duplicates = sorted({product_id for product_id in product_ids if product_ids.count(product_id) > 1})
    if duplicates:
        raise ValidationFailedError(
            details={"message": "each product may appear on one line only", "product_ids": duplicates}
        )
