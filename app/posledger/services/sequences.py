from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.posledger.db.models import BranchSequence

SALE_REFERENCE = "sale_reference"


def next_value(db, branch_id: int, name: str) -> int:
    """Return the next value of a branch-scoped counter.

    The counter row is read FOR UPDATE and incremented inside the caller's
    transaction, so two concurrent callers can never observe the same value and
    a rolled-back caller leaves the counter untouched. Values are never derived
    from MAX(...) over the documents table.
    """
    sequence = _lock_counter(db, branch_id, name)
    if sequence is None:
        sequence = BranchSequence(branch_id=branch_id, name=name, current_value=0)
        try:
            with db.begin_nested():
                db.add(sequence)
                db.flush()
        except IntegrityError:
            sequence = _lock_counter(db, branch_id, name)
            if sequence is None:
                raise
    sequence.current_value += 1
    db.flush()
    return sequence.current_value


def _lock_counter(db, branch_id: int, name: str) -> BranchSequence | None:
    query = (
        select(BranchSequence)
        .where(BranchSequence.branch_id == branch_id, BranchSequence.name == name)
        .with_for_update()
    )
    return db.execute(query).scalars().first()
