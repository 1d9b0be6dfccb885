from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select

from app.posledger.core.metrics import metrics
from app.posledger.core.statuses import SerialStatus, TransferStatus
from app.posledger.db.models import (
    Branch,
    SerialUnit,
    StockLedgerEntry,
    StockMovement,
    Transfer,
    TransferItem,
)


SEVERITY_CRITICAL = "CRITICAL"
SEVERITY_WARN = "WARN"
TRANSFER_DOCUMENT = "TRANSFER"


@dataclass(frozen=True)
class IntegrityFinding:
    check_id: str
    severity: str
    branch_id: int | None
    message: str
    entity: str
    entity_id: str | None
    details: dict


def _normalize_serial(code: str | None) -> str | None:
    if not code:
        return None
    cleaned = code.strip().upper()
    return cleaned or None


def resolve_branches(db, branch: str) -> list[int]:
    if branch.lower() != "all":
        return [int(branch)]
    return [row.id for row in db.execute(select(Branch.id).order_by(Branch.id)).all()]


def check_negative_quantity(db, branch_id: int) -> list[IntegrityFinding]:
    rows = db.execute(
        select(StockLedgerEntry.id, StockLedgerEntry.product_id, StockLedgerEntry.quantity)
        .where(StockLedgerEntry.branch_id == branch_id)
        .where(StockLedgerEntry.quantity < 0)
    ).all()
    findings = [
        IntegrityFinding(
            check_id="negative_quantity",
            severity=SEVERITY_CRITICAL,
            branch_id=branch_id,
            message="Ledger quantity is negative.",
            entity="stock_ledger_entries",
            entity_id=str(row.id),
            details={"product_id": row.product_id, "quantity": row.quantity},
        )
        for row in rows
    ]
    if findings:
        metrics.increment_invariant_violation("negative_quantity", len(findings))
    return findings


def check_serials_within_quantity(db, branch_id: int) -> list[IntegrityFinding]:
    in_stock = (
        select(SerialUnit.ledger_entry_id, func.count(SerialUnit.id).label("in_stock"))
        .where(SerialUnit.status == SerialStatus.IN_STOCK)
        .group_by(SerialUnit.ledger_entry_id)
        .subquery()
    )
    rows = db.execute(
        select(StockLedgerEntry.id, StockLedgerEntry.product_id, StockLedgerEntry.quantity, in_stock.c.in_stock)
        .join(in_stock, in_stock.c.ledger_entry_id == StockLedgerEntry.id)
        .where(StockLedgerEntry.branch_id == branch_id)
        .where(in_stock.c.in_stock > StockLedgerEntry.quantity)
    ).all()
    findings = [
        IntegrityFinding(
            check_id="serials_exceed_quantity",
            severity=SEVERITY_CRITICAL,
            branch_id=branch_id,
            message="More IN_STOCK serial units than ledger quantity.",
            entity="stock_ledger_entries",
            entity_id=str(row.id),
            details={"product_id": row.product_id, "quantity": row.quantity, "in_stock_serials": int(row.in_stock)},
        )
        for row in rows
    ]
    if findings:
        metrics.increment_invariant_violation("serials_exceed_quantity", len(findings))
    return findings


def check_transfer_fsm(db, branch_id: int) -> list[IntegrityFinding]:
    rows = db.execute(
        select(
            Transfer.id,
            Transfer.status,
            Transfer.sent_at,
            Transfer.received_at,
            Transfer.rejected_at,
        ).where(Transfer.from_branch_id == branch_id)
    ).all()
    findings = []
    for row in rows:
        status = row.status
        sent_at = row.sent_at
        received_at = row.received_at
        rejected_at = row.rejected_at
        if status == TransferStatus.PENDING:
            invalid = any([sent_at, received_at, rejected_at])
        elif status == TransferStatus.IN_TRANSIT:
            invalid = sent_at is None or received_at is not None or rejected_at is not None
        elif status == TransferStatus.RECEIVED:
            invalid = sent_at is None or received_at is None or rejected_at is not None
        elif status == TransferStatus.REJECTED:
            invalid = rejected_at is None or received_at is not None
        else:
            invalid = True
        if invalid:
            findings.append(
                IntegrityFinding(
                    check_id="transfer_fsm",
                    severity=SEVERITY_CRITICAL,
                    branch_id=branch_id,
                    message="Transfer state/timestamps inconsistent.",
                    entity="transfers",
                    entity_id=str(row.id),
                    details={
                        "status": status,
                        "sent_at": _format_datetime(sent_at),
                        "received_at": _format_datetime(received_at),
                        "rejected_at": _format_datetime(rejected_at),
                    },
                )
            )
    if findings:
        metrics.increment_invariant_violation("transfer_fsm", len(findings))
    return findings


def check_transfer_conservation(db, branch_id: int) -> list[IntegrityFinding]:
    """Journal deltas of a transfer must net to -quantity while in transit and to zero otherwise."""
    transfers = db.execute(
        select(Transfer.id, Transfer.status).where(Transfer.from_branch_id == branch_id)
    ).all()
    if not transfers:
        return []
    ids = [row.id for row in transfers]
    quantities = dict(
        db.execute(
            select(TransferItem.transfer_id, func.sum(TransferItem.quantity))
            .where(TransferItem.transfer_id.in_(ids))
            .group_by(TransferItem.transfer_id)
        ).all()
    )
    deltas = dict(
        db.execute(
            select(StockMovement.document_id, func.sum(StockMovement.delta))
            .where(StockMovement.document_type == TRANSFER_DOCUMENT, StockMovement.document_id.in_(ids))
            .group_by(StockMovement.document_id)
        ).all()
    )
    findings = []
    for row in transfers:
        net = int(deltas.get(row.id) or 0)
        expected = -int(quantities.get(row.id) or 0) if row.status == TransferStatus.IN_TRANSIT else 0
        if net != expected:
            findings.append(
                IntegrityFinding(
                    check_id="transfer_conservation",
                    severity=SEVERITY_CRITICAL,
                    branch_id=branch_id,
                    message="Transfer movements do not conserve quantity.",
                    entity="transfers",
                    entity_id=str(row.id),
                    details={"status": row.status, "net_delta": net, "expected": expected},
                )
            )
    if findings:
        metrics.increment_invariant_violation("transfer_conservation", len(findings))
    return findings


def check_journal_drift(db, branch_id: int) -> list[IntegrityFinding]:
    journal = (
        select(StockMovement.ledger_entry_id, func.sum(StockMovement.delta).label("journal_quantity"))
        .group_by(StockMovement.ledger_entry_id)
        .subquery()
    )
    journal_quantity = func.coalesce(journal.c.journal_quantity, 0)
    rows = db.execute(
        select(StockLedgerEntry.id, StockLedgerEntry.product_id, StockLedgerEntry.quantity, journal_quantity)
        .outerjoin(journal, journal.c.ledger_entry_id == StockLedgerEntry.id)
        .where(StockLedgerEntry.branch_id == branch_id)
        .where(StockLedgerEntry.quantity != journal_quantity)
    ).all()
    findings = [
        IntegrityFinding(
            check_id="journal_drift",
            severity=SEVERITY_WARN,
            branch_id=branch_id,
            message="Ledger quantity differs from the sum of its journaled movements.",
            entity="stock_ledger_entries",
            entity_id=str(row[0]),
            details={"product_id": row[1], "quantity": row[2], "journal_quantity": int(row[3])},
        )
        for row in rows
    ]
    if findings:
        metrics.increment_invariant_violation("journal_drift", len(findings))
    return findings


def check_duplicate_serials(db) -> list[IntegrityFinding]:
    rows = db.execute(select(SerialUnit.id, SerialUnit.serial_code)).all()
    index: dict[str, list[str]] = {}
    for row in rows:
        normalized = _normalize_serial(row.serial_code)
        if not normalized:
            continue
        index.setdefault(normalized, []).append(str(row.id))
    findings = []
    for normalized, ids in index.items():
        if len(ids) > 1:
            findings.append(
                IntegrityFinding(
                    check_id="duplicate_serial",
                    severity=SEVERITY_CRITICAL,
                    branch_id=None,
                    message="Serial code registered more than once.",
                    entity="serial_units",
                    entity_id=None,
                    details={"serial_code": normalized, "serial_unit_ids": ids},
                )
            )
    if findings:
        metrics.increment_invariant_violation("duplicate_serial", len(findings))
    return findings


def _format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def run_integrity_checks(db, branch_id: int) -> list[IntegrityFinding]:
    findings: list[IntegrityFinding] = []
    findings.extend(check_negative_quantity(db, branch_id))
    findings.extend(check_serials_within_quantity(db, branch_id))
    findings.extend(check_transfer_fsm(db, branch_id))
    findings.extend(check_transfer_conservation(db, branch_id))
    findings.extend(check_journal_drift(db, branch_id))
    return findings


def run_global_checks(db) -> list[IntegrityFinding]:
    return check_duplicate_serials(db)
