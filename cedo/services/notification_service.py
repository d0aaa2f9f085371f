import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from cedo.exceptions import NotFoundError
from cedo.models.notification import (
    Notification, NotificationTargetType, NotificationPriority, NotificationStatusType
)
from cedo.models.proposal import Proposal
from cedo.repositories.notification_repository import NotificationRepository
from cedo.schemas.auth import AuthContext, ADMIN_NOTIFICATION_ROLE
from cedo.services.identifier_resolver import require_surrogate
from cedo.utils.mailer import NotificationChannel
from cedo.utils.security import utcnow
from cedo.utils.transaction import transaction

logger = logging.getLogger(__name__)

OWNER = "owner"
ADMINS = "admins"


@dataclass(frozen=True)
class NotificationRule:
    recipient: str
    priority: NotificationPriority
    notification_type: str
    title: str
    message: str
    email_template: str | None = None
    # rows past this age drop out of the inbox and are expired by housekeeping
    ttl: timedelta | None = None


@dataclass
class NotificationMessage:
    title: str
    message: str
    notification_type: str
    target_type: NotificationTargetType
    target_user_id: int | None = None
    target_role: str | None = None
    excluded_user_ids: list[int] = field(default_factory=list)
    priority: NotificationPriority = NotificationPriority.NORMAL
    related_proposal_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    dedup_key: str | None = None
    created_by: int | None = None
    expires_at: datetime | None = None
    # external channel, optional
    email_to: str | None = None
    email_template: str | None = None


_SUBMITTED = [
    NotificationRule(
        OWNER, NotificationPriority.NORMAL, "proposal_submitted",
        "Proposal Submitted",
        'Your proposal "{event_name}" has been submitted and is waiting for review.',
        "proposal-submitted",
    ),
    NotificationRule(
        ADMINS, NotificationPriority.NORMAL, "proposal_submitted",
        "New Proposal Submitted",
        'A new proposal "{event_name}" is waiting for review.',
    ),
]
_RESUBMITTED = [
    NotificationRule(
        OWNER, NotificationPriority.NORMAL, "proposal_resubmitted",
        "Proposal Resubmitted",
        'Your proposal "{event_name}" has been resubmitted for review.',
        "proposal-resubmitted",
    ),
    NotificationRule(
        ADMINS, NotificationPriority.NORMAL, "proposal_resubmitted",
        "Proposal Resubmitted",
        'Proposal "{event_name}" was revised and resubmitted for review.',
    ),
]

# (previous status, new status) -> who hears about it and how
PROPOSAL_RULES: dict[tuple[str, str], list[NotificationRule]] = {
    ("draft", "pending"): _SUBMITTED,
    ("denied", "pending"): _RESUBMITTED,
    ("revision_requested", "pending"): _RESUBMITTED,
    ("pending", "approved"): [
        NotificationRule(
            OWNER, NotificationPriority.NORMAL, "proposal_approved",
            "Proposal Approved",
            'Your proposal "{event_name}" has been approved.',
            "proposal-approved",
        ),
        NotificationRule(
            ADMINS, NotificationPriority.LOW, "proposal_approved",
            "Proposal Approved",
            'Proposal "{event_name}" was approved.',
            ttl=timedelta(days=30),
        ),
    ],
    ("pending", "denied"): [
        NotificationRule(
            OWNER, NotificationPriority.HIGH, "proposal_denied",
            "Proposal Denied",
            'Your proposal "{event_name}" was denied. Admin comments: {admin_comments}',
            "proposal-denied",
        ),
    ],
    ("pending", "revision_requested"): [
        NotificationRule(
            OWNER, NotificationPriority.HIGH, "proposal_revision_requested",
            "Revision Requested",
            'Changes were requested for "{event_name}". Admin comments: {admin_comments}',
            "proposal-revision-requested",
        ),
    ],
}

REPORT_RULES: dict[tuple[str, str], list[NotificationRule]] = {
    ("draft", "pending"): [
        NotificationRule(
            ADMINS, NotificationPriority.NORMAL, "report_submitted",
            "Report Submitted",
            'The accomplishment report for "{event_name}" is waiting for review.',
        ),
    ],
    ("denied", "pending"): [
        NotificationRule(
            ADMINS, NotificationPriority.NORMAL, "report_submitted",
            "Report Resubmitted",
            'The accomplishment report for "{event_name}" was resubmitted.',
        ),
    ],
    ("pending", "approved"): [
        NotificationRule(
            OWNER, NotificationPriority.NORMAL, "report_approved",
            "Report Approved",
            'The accomplishment report for "{event_name}" has been approved.',
            "report-approved",
        ),
    ],
    ("pending", "denied"): [
        NotificationRule(
            OWNER, NotificationPriority.HIGH, "report_denied",
            "Report Denied",
            'The accomplishment report for "{event_name}" was denied. Admin comments: {admin_comments}',
            "report-denied",
        ),
    ],
}

RULES_BY_MACHINE = {"proposal": PROPOSAL_RULES, "report": REPORT_RULES}


class NotificationDispatcher:
    """
    Turns accepted transitions into in-app rows, then best-effort e-mail.

    Rows are written inside the caller's transaction; e-mails for new rows
    are queued and only go out through `deliver_outbound()`, which the
    caller runs after that transaction has committed.
    """

    def __init__(self, notification_repo: NotificationRepository, channel: NotificationChannel):
        self.notification_repo = notification_repo
        self.channel = channel
        self.outbound: list[tuple[int, NotificationMessage]] = []

    def create_notification(self, msg: NotificationMessage) -> Notification:
        """
        Persist the in-app row (the record of "was the user notified") and
        queue its e-mail. A row that already exists under the same
        dedup_key is returned as is and queues nothing.
        """
        related_id = (
            require_surrogate(msg.related_proposal_id)
            if msg.related_proposal_id is not None else None
        )

        if msg.dedup_key:
            existing = self.notification_repo.get_by_dedup_key(msg.dedup_key)
            if existing is not None:
                logger.debug("Notification %s already exists", msg.dedup_key)
                return existing

        notification = self.notification_repo.create(Notification(
            target_type=msg.target_type,
            target_user_id=msg.target_user_id,
            target_role=msg.target_role,
            excluded_user_ids=list(msg.excluded_user_ids),
            title=msg.title,
            message=msg.message,
            notification_type=msg.notification_type,
            priority=msg.priority,
            status=NotificationStatusType.PENDING,
            related_proposal_id=related_id,
            extra_data=msg.metadata,
            dedup_key=msg.dedup_key,
            created_by=msg.created_by,
            expires_at=msg.expires_at,
        ))

        if msg.email_to and msg.email_template:
            self.outbound.append((notification.id, msg))
        return notification

    def deliver_outbound(self) -> int:
        """
        Send the queued e-mails; call only after the rows are committed.

        A sent row moves to delivered. A channel failure is logged and the
        row stays pending in the inbox. Returns the number sent.
        """
        queued, self.outbound = self.outbound, []
        delivered = []
        for notification_id, msg in queued:
            try:
                self.channel.send(msg.email_to, msg.email_template, msg.metadata)
            except Exception:
                logger.warning(
                    "Email channel failed for notification %s (%s to %s); in-app row kept",
                    notification_id, msg.email_template, msg.email_to,
                    exc_info=True,
                )
                continue
            delivered.append(notification_id)

        if delivered:
            db = self.notification_repo.db
            with transaction(db):
                self.notification_repo.mark_delivered(delivered, utcnow())
        return len(delivered)

    def on_transition(
        self,
        proposal: Proposal,
        previous_status: str,
        new_status: str,
        actor_user_id: int | None,
        comments: str | None = None,
        machine: str = "proposal",
        outbox_event_id: UUID | None = None,
    ) -> list[Notification]:
        rules = RULES_BY_MACHINE[machine].get((previous_status, new_status), [])
        if not rules:
            logger.debug("No notifications for %s %s -> %s", machine, previous_status, new_status)
            return []

        data = {
            "event_name": proposal.event_name or proposal.organization_name or f"#{proposal.id}",
            "admin_comments": comments or "",
            "proposal_id": proposal.id,
            "public_id": str(proposal.uuid),
            "previous_status": previous_status,
            "new_status": new_status,
        }

        created = []
        for rule in rules:
            if rule.recipient == OWNER:
                target = dict(
                    target_type=NotificationTargetType.USER,
                    target_user_id=proposal.user_id,
                    email_to=proposal.contact_email,
                    email_template=rule.email_template,
                )
                recipient_key = f"user:{proposal.user_id}"
            else:
                target = dict(
                    target_type=NotificationTargetType.ROLE,
                    target_role=ADMIN_NOTIFICATION_ROLE,
                )
                recipient_key = f"role:{ADMIN_NOTIFICATION_ROLE}"

            created.append(self.create_notification(NotificationMessage(
                title=rule.title,
                message=rule.message.format(**data),
                notification_type=rule.notification_type,
                priority=rule.priority,
                related_proposal_id=proposal.id,
                metadata=data,
                dedup_key=f"{outbox_event_id}:{recipient_key}" if outbox_event_id else None,
                created_by=actor_user_id,
                expires_at=utcnow() + rule.ttl if rule.ttl else None,
                **target,
            )))

        logger.info(
            "Created %d notification(s) for proposal %s %s %s -> %s",
            len(created), proposal.id, machine, previous_status, new_status
        )
        return created


class NotificationInboxService:
    """Recipient-side reads and status changes"""

    def __init__(self, db: Session, notification_repo: NotificationRepository):
        self.db = db
        self.notification_repo = notification_repo

    @staticmethod
    def _is_visible(notification: Notification, auth: AuthContext) -> bool:
        if auth.user_id in (notification.excluded_user_ids or []):
            return False
        if notification.target_type == NotificationTargetType.USER:
            return notification.target_user_id == auth.user_id
        if notification.target_type == NotificationTargetType.ROLE:
            return notification.target_role == auth.role
        return True

    def list_for_user(
        self,
        auth: AuthContext,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Notification]:
        return self.notification_repo.list_visible(
            auth.user_id, auth.role, utcnow(),
            unread_only=unread_only, limit=limit, offset=offset,
        )

    def unread_count(self, auth: AuthContext) -> int:
        return self.notification_repo.count_visible(auth.user_id, auth.role, utcnow(), unread_only=True)

    def mark_read(self, auth: AuthContext, notification_ids: list[int] | None = None) -> int:
        """Mark the given ids (or every unread one) as read; ids the caller cannot see are ignored"""
        visible_ids = set(self.notification_repo.visible_ids(
            auth.user_id, auth.role, utcnow(), unread_only=True
        ))
        if notification_ids is None:
            ids = sorted(visible_ids)
        else:
            ids = [i for i in notification_ids if i in visible_ids]

        with transaction(self.db):
            updated = self.notification_repo.mark_read(ids, utcnow())
        return updated

    def archive(self, auth: AuthContext, notification_id: int) -> Notification:
        notification = self.notification_repo.get_by_id(notification_id)
        if notification is None or not self._is_visible(notification, auth):
            raise NotFoundError(
                message="Notification not found",
                detail=f"No notification {notification_id} for this user"
            )

        with transaction(self.db):
            self.notification_repo.set_status(
                notification, NotificationStatusType.ARCHIVED, utcnow()
            )
        self.db.refresh(notification)
        return notification

    def expire_stale(self) -> int:
        with transaction(self.db):
            expired = self.notification_repo.expire_stale(utcnow())
        if expired:
            logger.info("Expired %d notification(s)", expired)
        return expired
