from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SerialUnitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    serial_code: str
    ledger_entry_id: int
    status: str
    purchase_id: int | None
    sale_id: int | None
    transfer_id: int | None
    notes: str | None
    created_at: datetime
    updated_at: datetime | None


class SerialListResponse(BaseModel):
    rows: list[SerialUnitResponse]


class SerialStatsResponse(BaseModel):
    branch_id: int
    counts: dict[str, int]


class SerialNotesUpdateRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)
