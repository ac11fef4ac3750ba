from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from foodrescue.db import SessionLocal  # short-lived sessions so markers are visible immediately
from foodrescue.models.idempotency import IdempotencyRecord, IdempotencyStatus
from foodrescue.utils.logging import get_logger

log = get_logger("idempotency")


class IdempotencyRepository:
    def __init__(self, db: Session):
        # db is the caller's session (longer-lived)
        self.db = db

    def begin(
        self,
        key: str,
        operation: str,
        customer_id: Optional[int] = None,
        request_hash: Optional[str] = None,
    ) -> Tuple[Optional[IdempotencyRecord], bool]:
        """
        Atomically ensure an idempotency row exists.

        Returns (record, created):
          - created True  -> this call inserted the IN_PROGRESS row and owns the operation
          - created False -> the row already existed (retry or concurrent request)

        A FAILED row is taken over by the same customer, so a client may retry
        with the same key (and a corrected request) after a rejected placement.
        Callers compare ``customer_id`` / ``request_hash`` of a returned
        existing row before trusting it.
        """
        created = False
        with SessionLocal() as s:
            try:
                s.add(
                    IdempotencyRecord(
                        key=key,
                        operation=operation,
                        customer_id=customer_id,
                        request_hash=request_hash,
                    )
                )
                s.commit()
                created = True
            except IntegrityError:
                s.rollback()
                # compare-and-swap so only one retry can reclaim a failed key
                result = s.execute(
                    update(IdempotencyRecord)
                    .where(
                        IdempotencyRecord.key == key,
                        IdempotencyRecord.operation == operation,
                        IdempotencyRecord.customer_id == customer_id,
                        IdempotencyRecord.status == IdempotencyStatus.FAILED,
                    )
                    .values(
                        status=IdempotencyStatus.IN_PROGRESS,
                        request_hash=request_hash,
                        last_error=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                s.commit()
                created = result.rowcount == 1
            rec = s.query(IdempotencyRecord).filter(IdempotencyRecord.key == key).first()
        log.debug("begin(): key=%r created=%s", key, created)
        # detached copy: the caller's session stays out of a transaction
        return rec, created

    def mark_completed(self, key: str, order_id: int) -> None:
        self._update(key, IdempotencyStatus.COMPLETED, order_id=order_id)

    def mark_failed(self, key: str, error_message: str) -> None:
        self._update(key, IdempotencyStatus.FAILED, last_error=error_message[:1024])

    def _update(self, key: str, status: IdempotencyStatus, **fields) -> None:
        with SessionLocal() as s:
            rec = s.query(IdempotencyRecord).filter(IdempotencyRecord.key == key).first()
            if rec is None:
                raise RuntimeError(f"Idempotency record missing for key: {key}")
            rec.status = status
            for name, value in fields.items():
                setattr(rec, name, value)
            s.commit()
        log.debug("key=%r -> %s", key, status.value)
