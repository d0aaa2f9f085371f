import logging
from uuid import UUID

from cedo.models.audit import AuditLog
from cedo.models.outbox import (
    PROPOSAL_CREATED, PROPOSAL_STATUS_CHANGED, REPORT_STATUS_CHANGED,
    ADMIN_COMMENT_ADDED, EVENT_DETAILS_UPDATED,
)
from cedo.repositories.audit_repository import AuditRepository
from cedo.services.identifier_resolver import require_surrogate

logger = logging.getLogger(__name__)

PROPOSALS_TABLE = "proposals"


def action_type_for(event_type: str, payload: dict) -> str:
    """Audit action recorded for one outbox event"""
    if event_type == PROPOSAL_STATUS_CHANGED:
        return f"status_{payload['new_status']}"
    if event_type == REPORT_STATUS_CHANGED:
        return f"report_status_{payload['new_status']}"
    if event_type == PROPOSAL_CREATED:
        return "proposal_created"
    if event_type == ADMIN_COMMENT_ADDED:
        return "admin_comment_added"
    if event_type == EVENT_DETAILS_UPDATED:
        return "event_details_updated"
    raise ValueError(f"No audit action for event type: {event_type}")


class AuditLogWriter:
    """Append-only writer; entries are never updated or deleted"""

    def __init__(self, audit_repo: AuditRepository):
        self.audit_repo = audit_repo

    def record(
        self,
        surrogate_id,
        action_type: str,
        user_id: int | None,
        note: str | None = None,
        extra: dict | None = None,
        outbox_event_id: UUID | None = None,
    ) -> AuditLog | None:
        """
        Write one entry inside the caller's transaction.

        surrogate_id goes through require_surrogate before anything is
        written. Returns None when this outbox event already produced the
        same action.
        """
        record_id = require_surrogate(surrogate_id)

        if outbox_event_id is not None and self.audit_repo.exists_for_outbox_event(
            outbox_event_id, action_type
        ):
            logger.debug("Audit %s for outbox event %s already recorded", action_type, outbox_event_id)
            return None

        entry = AuditLog(
            table_name=PROPOSALS_TABLE,
            record_id=record_id,
            action_type=action_type,
            user_id=user_id,
            note=note,
            additional_info=extra or {},
            outbox_event_id=outbox_event_id,
        )
        return self.audit_repo.create(entry)

    def list_for(self, surrogate_id) -> list[AuditLog]:
        return self.audit_repo.list_for_record(require_surrogate(surrogate_id), PROPOSALS_TABLE)
