from sqlalchemy import select

from app.posledger.db.models import SaleIdempotencyKey


class SaleIdempotencyRepository:
    def __init__(self, db):
        self.db = db

    def get(self, *, branch_id: int, user_id: int, idempotency_key: str) -> SaleIdempotencyKey | None:
        stmt = select(SaleIdempotencyKey).where(
            SaleIdempotencyKey.branch_id == branch_id,
            SaleIdempotencyKey.user_id == user_id,
            SaleIdempotencyKey.idempotency_key == idempotency_key,
        )
        return self.db.execute(stmt).scalars().first()

    def create(self, record: SaleIdempotencyKey) -> SaleIdempotencyKey:
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def update(self, record: SaleIdempotencyKey) -> SaleIdempotencyKey:
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete(self, record: SaleIdempotencyKey) -> None:
        self.db.delete(record)
        self.db.commit()
