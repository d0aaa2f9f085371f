from cedo.models.outbox import (
    PROPOSAL_CREATED, PROPOSAL_STATUS_CHANGED, REPORT_STATUS_CHANGED,
    ADMIN_COMMENT_ADDED, EVENT_DETAILS_UPDATED,
)
from cedo.workers.handlers.audit_handler import (
    record_proposal_created,
    record_status_changed,
    record_report_status_changed,
    record_admin_comment,
    record_event_details_updated,
)
from cedo.workers.handlers.notification_handler import notify_transition

# run in order, each in its own transaction
HANDLERS = {
    PROPOSAL_CREATED: [record_proposal_created],
    PROPOSAL_STATUS_CHANGED: [record_status_changed, notify_transition],
    REPORT_STATUS_CHANGED: [record_report_status_changed, notify_transition],
    ADMIN_COMMENT_ADDED: [record_admin_comment],
    EVENT_DETAILS_UPDATED: [record_event_details_updated],
}


def get_handlers_for_event_type(event_type: str):
    handlers = HANDLERS.get(event_type)
    if not handlers:
        raise ValueError(f"Unknown event type: {event_type}")
    return handlers
