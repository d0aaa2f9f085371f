from typing import Optional
from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session
from sqlalchemy import select, delete

from cedo.models.idempotency import IdempotencyRecord


class IdempotencyRepository:
    """Processing markers for outbox handlers"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, scope: str, key: str) -> Optional[IdempotencyRecord]:
        stmt = (
            select(IdempotencyRecord)
            .where(
                IdempotencyRecord.scope == scope,
                IdempotencyRecord.key == key
            )
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def mark_completed(self, scope: str, key: str, ttl: timedelta) -> IdempotencyRecord:
        """
        Insert the marker inside the caller's transaction, or extend its TTL.

        Two handlers racing on the same key collide on the (scope, key)
        unique constraint at commit; the loser rolls back its side effects
        and the outbox retry then finds the marker.
        """
        record = self.get(scope, key)
        expires_at = datetime.now(timezone.utc) + ttl
        if record is None:
            record = IdempotencyRecord(scope=scope, key=key, expires_at=expires_at)
            self.db.add(record)
        else:
            record.expires_at = expires_at
        self.db.flush()
        return record

    def delete_expired(self, now: datetime) -> int:
        stmt = delete(IdempotencyRecord).where(IdempotencyRecord.expires_at < now)
        result = self.db.execute(stmt)
        self.db.flush()
        return result.rowcount
