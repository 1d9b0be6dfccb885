from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ApprovalActionRequest(BaseModel):
    action: Literal["approve", "reject"]


class ReturnLineCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    unit_cost: Decimal = Field(..., ge=0)
    serial_codes: list[str] | None = None


class ReturnCreateRequest(BaseModel):
    branch_id: int
    supplier_id: int
    purchase_id: int | None = None
    return_date: date | None = None
    reason: str | None = None
    lines: list[ReturnLineCreate] = Field(..., min_length=1)


class ReturnLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    unit_cost: Decimal
    total_cost: Decimal
    serial_codes: list[str] | None


class ReturnResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    return_number: str
    branch_id: int
    supplier_id: int
    purchase_id: int | None
    user_id: int
    return_date: date
    reason: str | None
    status: str
    total_amount: Decimal
    approved_by_user_id: int | None
    approved_at: datetime | None
    rejected_by_user_id: int | None
    rejected_at: datetime | None
    created_at: datetime
    items: list[ReturnLineResponse]


class RefundLineCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    serial_codes: list[str] | None = None


class RefundCreateRequest(BaseModel):
    branch_id: int
    sale_id: int | None = None
    customer_id: int | None = None
    refund_date: date | None = None
    reason: str | None = None
    refund_method: Literal["CASH", "CARD", "TRANSFER"]
    lines: list[RefundLineCreate] = Field(..., min_length=1)


class RefundLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    serial_codes: list[str] | None


class RefundResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    refund_number: str
    branch_id: int
    sale_id: int | None
    customer_id: int | None
    user_id: int
    refund_date: date
    reason: str | None
    refund_method: str
    status: str
    total_amount: Decimal
    approved_by_user_id: int | None
    approved_at: datetime | None
    rejected_by_user_id: int | None
    rejected_at: datetime | None
    created_at: datetime
    items: list[RefundLineResponse]
