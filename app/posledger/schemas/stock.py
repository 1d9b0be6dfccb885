from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class StockEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    branch_id: int
    product_id: int
    quantity: int
    cost_price: Decimal
    selling_price: Decimal | None
    last_stock_date: datetime | None
    updated_at: datetime | None


class StockListResponse(BaseModel):
    rows: list[StockEntryResponse]


class AvailableQuantityResponse(BaseModel):
    branch_id: int
    product_id: int
    available: int


class StockCorrectionRequest(BaseModel):
    branch_id: int
    product_id: int
    counted_quantity: int = Field(..., ge=0, description="Physically counted quantity on hand.")
    reason: str = Field(..., min_length=1, max_length=500)
