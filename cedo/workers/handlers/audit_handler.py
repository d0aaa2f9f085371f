from uuid import UUID

from sqlalchemy.orm import Session

from cedo.models.outbox import (
    PROPOSAL_CREATED, PROPOSAL_STATUS_CHANGED, REPORT_STATUS_CHANGED,
    ADMIN_COMMENT_ADDED, EVENT_DETAILS_UPDATED,
)
from cedo.repositories.audit_repository import AuditRepository
from cedo.services.audit_service import AuditLogWriter, action_type_for
from cedo.utils.transaction import transaction
from cedo.workers.handlers.idempotency import already_processed, mark_processed

SCOPE = "audit"


def _record(event_type: str, payload: dict, db: Session, outbox_event_id: UUID) -> None:
    """One audit entry per outbox event"""
    with transaction(db):
        if already_processed(db, SCOPE, outbox_event_id):
            return

        extra = {
            k: v for k, v in payload.items()
            if k not in ("proposal_id", "actor_user_id", "note")
        }
        AuditLogWriter(AuditRepository(db)).record(
            payload["proposal_id"],
            action_type_for(event_type, payload),
            user_id=payload.get("actor_user_id"),
            note=payload.get("note") or payload.get("admin_comments"),
            extra=extra,
            outbox_event_id=outbox_event_id,
        )
        mark_processed(db, SCOPE, outbox_event_id)


def record_proposal_created(payload: dict, db: Session, outbox_event_id: UUID, **_) -> None:
    _record(PROPOSAL_CREATED, payload, db, outbox_event_id)


def record_status_changed(payload: dict, db: Session, outbox_event_id: UUID, **_) -> None:
    _record(PROPOSAL_STATUS_CHANGED, payload, db, outbox_event_id)


def record_report_status_changed(payload: dict, db: Session, outbox_event_id: UUID, **_) -> None:
    _record(REPORT_STATUS_CHANGED, payload, db, outbox_event_id)


def record_admin_comment(payload: dict, db: Session, outbox_event_id: UUID, **_) -> None:
    _record(ADMIN_COMMENT_ADDED, payload, db, outbox_event_id)


def record_event_details_updated(payload: dict, db: Session, outbox_event_id: UUID, **_) -> None:
    _record(EVENT_DETAILS_UPDATED, payload, db, outbox_event_id)
