from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SaleLineCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    unit_price: Decimal | None = Field(default=None, ge=0, description="Overrides the branch and product price.")
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    serial_codes: list[str] | None = None


class SaleCreateRequest(BaseModel):
    branch_id: int
    customer_id: int | None = None
    customer_name: str | None = Field(default=None, max_length=200)
    payment_method: Literal["CASH", "CARD", "TRANSFER"]
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: str | None = None
    lines: list[SaleLineCreate] = Field(..., min_length=1)


class SaleLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    cost_price: Decimal
    discount: Decimal
    total_price: Decimal


class SaleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sale_number: str
    reference_number: str
    reference_sequence: int
    branch_id: int
    customer_id: int | None
    customer_name: str | None
    user_id: int
    sale_date: date
    total_amount: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    grand_total: Decimal
    payment_method: str
    payment_status: str
    notes: str | None
    created_at: datetime
    items: list[SaleLineResponse]
    serial_codes: list[str] = []
    refunded_amount: Decimal = Decimal("0")
    refund_status: Literal["NONE", "PARTIAL", "FULL"] = "NONE"


class SaleListResponse(BaseModel):
    rows: list[SaleResponse]
