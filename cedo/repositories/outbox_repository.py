import os
import socket
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from cedo.models.outbox import OutboxEvent, OutboxStatusType
from cedo.utils.security import utcnow

# a claim older than this is presumed to belong to a dead worker
DEFAULT_LOCK_TTL = timedelta(minutes=5)


class OutboxRepository:
    def __init__(self, db: Session):
        self.db = db

    def create_outbox_event(
        self,
        event_type: str,
        payload: dict,
        proposal_id: int,
        next_retry_at: datetime | None = None,
    ) -> OutboxEvent:
        """Queue one event inside the caller's transaction; due immediately by default"""
        event = OutboxEvent(
            event_type=event_type,
            payload=payload,
            proposal_id=proposal_id,
            status=OutboxStatusType.PENDING,
            attempts=0,
            next_retry_at=next_retry_at or utcnow(),
        )
        self.db.add(event)
        self.db.flush()
        return event

    def get(self, event_id: UUID) -> OutboxEvent | None:
        return self.db.get(OutboxEvent, event_id)

    def claim_pending_events(
        self,
        batch_size: int,
        worker_id: str,
        now: datetime,
        lock_ttl: timedelta = DEFAULT_LOCK_TTL,
    ) -> list[OutboxEvent]:
        """
        Stamp up to batch_size due events with this worker's lock.

        Due means PENDING, next_retry_at reached, and either unclaimed or
        claimed longer ago than lock_ttl. Rows another transaction holds are
        skipped (FOR UPDATE SKIP LOCKED); the caller commits the claim before
        running any handler.
        """
        due = (
            select(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatusType.PENDING,
                OutboxEvent.next_retry_at <= now,
                or_(
                    OutboxEvent.locked_at.is_(None),
                    OutboxEvent.locked_at < now - lock_ttl,
                ),
            )
            .order_by(OutboxEvent.created_at, OutboxEvent.id)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        events = list(self.db.execute(due).scalars())
        if not events:
            return events

        self.db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id.in_([e.id for e in events]))
            .values(locked_at=now, locked_by=worker_id)
            .execution_options(synchronize_session=False)
        )
        self.db.flush()
        for event in events:
            self.db.refresh(event)
        return events

    def _release(self, event_id: UUID, **values) -> None:
        """Drop the claim and apply the outcome columns"""
        self.db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .values(locked_at=None, locked_by=None, **values)
            .execution_options(synchronize_session=False)
        )
        self.db.flush()

    def mark_done(self, event_id: UUID, processed_at: datetime) -> None:
        self._release(event_id, status=OutboxStatusType.DONE, processed_at=processed_at)

    def mark_failed(
        self,
        event_id: UUID,
        error: str,
        next_retry_at: datetime,
        max_attempts: int,
    ) -> bool:
        """
        Count one failed attempt; True while the event will be retried.

        The counter is bumped in SQL so two workers failing the same row
        both count. At max_attempts the event is parked as FAILED.
        """
        bumped = self.db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .values(attempts=OutboxEvent.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 0:
            return False

        attempts = self.db.execute(
            select(OutboxEvent.attempts).where(OutboxEvent.id == event_id)
        ).scalar_one()
        retry = attempts < max_attempts

        if retry:
            self._release(event_id, last_error=error, next_retry_at=next_retry_at)
        else:
            self._release(event_id, last_error=error, status=OutboxStatusType.FAILED)
        return retry


def get_worker_id() -> str:
    """hostname:pid, stored in locked_by"""
    return f"{socket.gethostname()}:{os.getpid()}"
