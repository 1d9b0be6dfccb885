from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TransferLineCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    serial_codes: list[str] | None = Field(
        default=None,
        description="Units to move; when omitted the oldest IN_STOCK units are sent.",
    )


class TransferCreateRequest(BaseModel):
    from_branch_id: int
    to_branch_id: int
    transfer_date: date | None = None
    notes: str | None = None
    lines: list[TransferLineCreate] = Field(..., min_length=1)


class TransferActionRequest(BaseModel):
    action: Literal["send", "receive", "reject"]


class TransferLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    cost_price: Decimal
    serial_codes: list[str] | None


class TransferResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    transfer_number: str
    from_branch_id: int
    to_branch_id: int
    user_id: int
    transfer_date: date
    status: str
    notes: str | None
    sent_by_user_id: int | None
    sent_at: datetime | None
    received_by_user_id: int | None
    received_at: datetime | None
    rejected_by_user_id: int | None
    rejected_at: datetime | None
    created_at: datetime
    items: list[TransferLineResponse]
