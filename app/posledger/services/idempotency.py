"""Replay protection for sale creation.

A key is scoped to the branch and the cashier that sends it, so every till can
run its own client-side counter. The first request claims the key; the outcome
(the sale it created, or the error it raised) is stored on the claim and handed
back to any later request with the same key and the same sale payload, without
touching the ledger again.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from app.posledger.core.error_catalog import AppError, ErrorCatalog, ValidationFailedError
from app.posledger.core.logging import log_json
from app.posledger.db.models import Branch, SaleIdempotencyKey, utcnow
from app.posledger.repos.idempotency import SaleIdempotencyRepository
from app.posledger.schemas.sales import SaleCreateRequest
from app.posledger.services.lookups import require

logger = logging.getLogger("posledger.idempotency")

IDEMPOTENCY_HEADER = "Idempotency-Key"
MAX_KEY_LENGTH = 255


class ClaimState:
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class SaleReplay:
    status_code: int
    response_body: dict
    sale_id: int | None


class SaleClaim:
    def __init__(self, record: SaleIdempotencyKey, repo: SaleIdempotencyRepository):
        self._record = record
        self._repo = repo

    def record_sale(self, sale_id: int, *, response_body: dict, status_code: int = 201) -> None:
        self._record.sale_id = sale_id
        self._finish(ClaimState.SUCCEEDED, status_code, response_body)

    def record_failure(self, *, status_code: int, response_body: dict) -> None:
        self._finish(ClaimState.FAILED, status_code, response_body)

    def release(self) -> None:
        """Forget the key after a retryable failure so the till can resend the same sale."""
        self._repo.delete(self._record)

    def _finish(self, state: str, status_code: int, response_body: dict) -> None:
        self._record.state = state
        self._record.status_code = status_code
        self._record.response_body = json.dumps(response_body)
        self._record.updated_at = utcnow()
        self._repo.update(self._record)


def sale_request_hash(payload: SaleCreateRequest) -> str:
    body = json.dumps(payload.model_dump(mode="json"), sort_keys=True)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


class SaleIdempotency:
    def __init__(self, db):
        self.db = db
        self.repo = SaleIdempotencyRepository(db)

    def claim(
        self,
        *,
        idempotency_key: str,
        payload: SaleCreateRequest,
        user_id: int,
    ) -> tuple[SaleClaim | None, SaleReplay | None]:
        if len(idempotency_key) > MAX_KEY_LENGTH:
            raise ValidationFailedError(
                details={"message": f"{IDEMPOTENCY_HEADER} is longer than {MAX_KEY_LENGTH} characters"}
            )
        require(self.db, Branch, payload.branch_id, label="branch")
        scope = {"branch_id": payload.branch_id, "user_id": user_id, "idempotency_key": idempotency_key}
        request_hash = sale_request_hash(payload)

        existing = self.repo.get(**scope)
        if existing is not None:
            return None, self._replay(existing, request_hash)

        record = SaleIdempotencyKey(**scope, request_hash=request_hash, state=ClaimState.IN_PROGRESS)
        try:
            record = self.repo.create(record)
        except IntegrityError:
            # a concurrent request from the same till claimed the key first
            self.db.rollback()
            return None, self._replay(self.repo.get(**scope), request_hash)
        return SaleClaim(record, self.repo), None

    def _replay(self, existing: SaleIdempotencyKey | None, request_hash: str) -> SaleReplay:
        if existing is None:
            raise AppError(ErrorCatalog.IDEMPOTENCY_REQUEST_IN_PROGRESS)
        if existing.request_hash != request_hash:
            raise AppError(
                ErrorCatalog.IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD,
                details={"sale_id": existing.sale_id},
            )
        if existing.state == ClaimState.IN_PROGRESS or existing.status_code is None:
            raise AppError(ErrorCatalog.IDEMPOTENCY_REQUEST_IN_PROGRESS)
        log_json(
            logger,
            {
                "event": "sale_replayed",
                "branch_id": existing.branch_id,
                "user_id": existing.user_id,
                "sale_id": existing.sale_id,
                "status_code": existing.status_code,
            },
        )
        return SaleReplay(
            status_code=existing.status_code,
            response_body=json.loads(existing.response_body),
            sale_id=existing.sale_id,
        )


def extract_idempotency_key(headers) -> str | None:
    return headers.get(IDEMPOTENCY_HEADER) or None
