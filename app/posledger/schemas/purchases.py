from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class PurchaseLineCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    unit_cost: Decimal = Field(..., ge=0)
    selling_price: Decimal | None = Field(default=None, ge=0, description="Branch selling price set on receive.")


class PurchaseCreateRequest(BaseModel):
    branch_id: int
    supplier_id: int
    purchase_date: date | None = None
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = None
    lines: list[PurchaseLineCreate] = Field(..., min_length=1)


class PurchaseReceiveLine(BaseModel):
    product_id: int
    selling_price: Decimal | None = Field(default=None, ge=0, description="Replaces the selling price given at create.")
    serial_codes: list[str] = Field(default_factory=list)


class PurchaseReceiveRequest(BaseModel):
    items: list[PurchaseReceiveLine] = Field(default_factory=list)
    serials: dict[int, list[str]] = Field(
        default_factory=dict,
        description="Serial codes keyed by product id; required for serial-tracked products.",
    )

    def serials_by_product(self) -> dict[int, list[str]]:
        merged = {product_id: list(codes) for product_id, codes in self.serials.items()}
        for line in self.items:
            if line.serial_codes:
                merged.setdefault(line.product_id, []).extend(line.serial_codes)
        return merged

    def selling_prices(self) -> dict[int, Decimal]:
        return {line.product_id: line.selling_price for line in self.items if line.selling_price is not None}


class PurchaseLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    unit_cost: Decimal
    selling_price: Decimal | None
    total_cost: Decimal


class PurchaseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    purchase_number: str
    branch_id: int
    supplier_id: int
    user_id: int
    purchase_date: date
    status: str
    payment_status: str
    total_amount: Decimal
    tax_amount: Decimal
    grand_total: Decimal
    notes: str | None
    received_by_user_id: int | None
    received_at: datetime | None
    created_at: datetime
    items: list[PurchaseLineResponse]
