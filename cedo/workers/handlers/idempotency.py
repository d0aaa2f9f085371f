from datetime import timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from cedo.repositories.idempotency_repository import IdempotencyRepository

# how long a processed marker is kept
MARKER_TTL = timedelta(days=7)


def idempotency_key(outbox_event_id: UUID) -> str:
    return f"outbox:{outbox_event_id}"


def already_processed(db: Session, scope: str, outbox_event_id: UUID) -> bool:
    """
    True when this handler already completed this outbox event

    The marker is written in the same transaction as the handler's own
    writes, so it exists only if those writes were committed.
    """
    return IdempotencyRepository(db).get(scope, idempotency_key(outbox_event_id)) is not None


def mark_processed(db: Session, scope: str, outbox_event_id: UUID) -> None:
    IdempotencyRepository(db).mark_completed(scope, idempotency_key(outbox_event_id), MARKER_TTL)
