from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from app.posledger.core.error_catalog import (
    InsufficientStockError,
    SerialCountMismatchError,
    ValidationFailedError,
)
from app.posledger.core.logging import log_json
from app.posledger.core.money import ZERO, to_money
from app.posledger.core.statuses import MovementReason, PaymentStatus, SerialStatus
from app.posledger.db.models import Branch, Customer, Product, Sale, SaleItem, StockLedgerEntry, utcnow
from app.posledger.db.session import atomic
from app.posledger.repos.documents import DocumentRepository
from app.posledger.schemas.sales import SaleCreateRequest
from app.posledger.services import numbering
from app.posledger.services.ledger import StockLedger
from app.posledger.services.lookups import require, require_products
from app.posledger.services.sequences import SALE_REFERENCE, next_value
from app.posledger.services.serials import SerialRegistry, normalize_codes

logger = logging.getLogger("posledger.sales")

DOCUMENT_TYPE = "SALE"


def resolve_unit_price(explicit: Decimal | None, entry: StockLedgerEntry, product: Product) -> Decimal:
    if explicit is not None:
        return to_money(explicit)
    if entry.selling_price is not None:
        return to_money(entry.selling_price)
    return to_money(product.selling_price)


def create_sale(db, payload: SaleCreateRequest, *, user_id: int) -> Sale:
    """Record a paid sale and take its quantities out of the branch ledger.

    The ledger decrements, the serial status changes and the branch reference
    number are all committed together or not at all.
    """
    with atomic(db):
        branch = require(db, Branch, payload.branch_id, label="branch")
        if payload.customer_id is not None:
            require(db, Customer, payload.customer_id, label="customer")
        products = require_products(db, [line.product_id for line in payload.lines])

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

        ledger = StockLedger(db)
        entries = ledger.lock_entries([(branch.id, line.product_id) for line in payload.lines])

        demand: dict[int, int] = defaultdict(int)
        for line in payload.lines:
            demand[line.product_id] += line.quantity
        for product_id, requested in sorted(demand.items()):
            entry = entries[(branch.id, product_id)]
            available = entry.quantity if entry is not None else 0
            if available < requested:
                raise InsufficientStockError(
                    details={
                        "branch_id": branch.id,
                        "product_id": product_id,
                        "requested": requested,
                        "available": available,
                    }
                )

        sequence = next_value(db, branch.id, SALE_REFERENCE)
        now = utcnow()
        sale = Sale(
            sale_number=numbering.sale_number(branch.code, sequence, now),
            reference_number=numbering.sale_reference(sequence),
            reference_sequence=sequence,
            branch_id=branch.id,
            customer_id=payload.customer_id,
            customer_name=payload.customer_name,
            user_id=user_id,
            payment_method=payload.payment_method,
            payment_status=PaymentStatus.PAID,
            notes=payload.notes,
            created_at=now,
        )
        db.add(sale)
        db.flush()

        registry = SerialRegistry(db)
        total = ZERO
        for line in payload.lines:
            product = products[line.product_id]
            entry = entries[(branch.id, line.product_id)]
            unit_price = resolve_unit_price(line.unit_price, entry, product)
            gross = to_money(unit_price * line.quantity)
            discount = to_money(line.discount)
            if discount > gross:
                raise ValidationFailedError(
                    details={"message": "line discount exceeds line amount", "product_id": line.product_id}
                )
            line_total = gross - discount
            sale.items.append(
                SaleItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    cost_price=to_money(entry.cost_price),
                    discount=discount,
                    total_price=line_total,
                )
            )
            if product.requires_serial:
                codes = normalize_codes(line.serial_codes)
                if codes:
                    units = registry.select_explicit(
                        codes,
                        quantity=line.quantity,
                        expected_status=SerialStatus.IN_STOCK,
                        ledger_entry_id=entry.id,
                    )
                else:
                    units = registry.select_first_in_stock(entry.id, line.quantity)
                registry.mark_sold(units, sale.id)
            ledger.adjust(
                branch.id,
                line.product_id,
                -line.quantity,
                reason=MovementReason.SALE,
                document_type=DOCUMENT_TYPE,
                document_id=sale.id,
                user_id=user_id,
            )
            total += line_total

        discount_amount = to_money(payload.discount_amount)
        if discount_amount > total:
            raise ValidationFailedError(details={"message": "discount_amount exceeds sale total"})
        sale.total_amount = total
        sale.tax_amount = ZERO
        sale.discount_amount = discount_amount
        sale.grand_total = total - discount_amount
        db.flush()
        log_json(
            logger,
            {
                "event": "sale_created",
                "sale_id": sale.id,
                "sale_number": sale.sale_number,
                "branch_id": branch.id,
                "reference_sequence": sequence,
                "grand_total": sale.grand_total,
                "user_id": user_id,
            },
        )
    return sale


def get_sale(db, sale_id: int) -> Sale:
    return require(db, Sale, sale_id, label="sale")


def list_sales(db, branch_id: int, *, limit: int, offset: int = 0) -> list[Sale]:
    return DocumentRepository(db).list_sales(branch_id, limit=limit, offset=offset)


def refund_summary(db, sale: Sale) -> tuple[Decimal, str]:
    refunded = to_money(DocumentRepository(db).refunded_amount(sale.id))
    if refunded <= ZERO:
        return refunded, "NONE"
    if refunded >= to_money(sale.grand_total):
        return refunded, "FULL"
    return refunded, "PARTIAL"
