"""Human-readable document numbers. They are display values only, never lookup keys."""

from __future__ import annotations

import secrets
from datetime import datetime

from app.posledger.db.models import utcnow


def _stamp(moment: datetime | None) -> str:
    return (moment or utcnow()).strftime("%Y%m%d%H%M%S")


def _suffix() -> str:
    return secrets.token_hex(2).upper()


def sale_number(branch_code: str, sequence: int, moment: datetime | None = None) -> str:
    return f"SL-{branch_code}-{_stamp(moment)}-{sequence:05d}"


def sale_reference(sequence: int) -> str:
    return f"REF-{sequence:05d}"


def purchase_number(branch_code: str, moment: datetime | None = None) -> str:
    return f"PO-{branch_code}-{_stamp(moment)}-{_suffix()}"


def transfer_number(from_code: str, to_code: str, moment: datetime | None = None) -> str:
    return f"TR-{from_code}-{to_code}-{_stamp(moment)}-{_suffix()}"


def return_number(branch_code: str, moment: datetime | None = None) -> str:
    return f"RET-{branch_code}-{_stamp(moment)}-{_suffix()}"


def refund_number(branch_code: str, moment: datetime | None = None) -> str:
    return f"RFD-{branch_code}-{_stamp(moment)}-{_suffix()}"
