# Models package
from cedo.models.proposal import (
    Proposal, ProposalStatusType, ReportStatusType, EventTypeChoice
)
from cedo.models.audit import AuditLog
from cedo.models.notification import (
    Notification, NotificationTargetType, NotificationPriority, NotificationStatusType
)
from cedo.models.outbox import (
    OutboxEvent, OutboxStatusType,
    PROPOSAL_CREATED, PROPOSAL_STATUS_CHANGED, REPORT_STATUS_CHANGED,
    ADMIN_COMMENT_ADDED, EVENT_DETAILS_UPDATED,
)
from cedo.models.idempotency import IdempotencyRecord

__all__ = [
    # Proposal
    "Proposal", "ProposalStatusType", "ReportStatusType", "EventTypeChoice",
    # Audit
    "AuditLog",
    # Notification
    "Notification", "NotificationTargetType", "NotificationPriority", "NotificationStatusType",
    # Outbox
    "OutboxEvent", "OutboxStatusType",
    "PROPOSAL_CREATED", "PROPOSAL_STATUS_CHANGED", "REPORT_STATUS_CHANGED",
    "ADMIN_COMMENT_ADDED", "EVENT_DETAILS_UPDATED",
    # Idempotency
    "IdempotencyRecord",
]
