import logging
from uuid import UUID

from sqlalchemy.orm import Session

from cedo.exceptions import DependencyFailure
from cedo.models.outbox import OutboxEvent, OutboxStatusType
from cedo.repositories.outbox_repository import OutboxRepository
from cedo.utils.deadline import Deadline
from cedo.utils.mailer import NotificationChannel
from cedo.utils.security import utcnow
from cedo.utils.transaction import transaction
from cedo.workers.handlers import get_handlers_for_event_type

logger = logging.getLogger(__name__)


class OutboxDispatcher:
    """
    Runs the handlers registered for an outbox event (audit entry,
    notifications). Shared by the request path and the OutboxWorker.
    """

    def __init__(self, db: Session, outbox_repo: OutboxRepository, channel: NotificationChannel):
        self.db = db
        self.outbox_repo = outbox_repo
        self.channel = channel

    def dispatch(self, event: OutboxEvent) -> None:
        """Raises whatever the first failing handler raises"""
        for handler in get_handlers_for_event_type(event.event_type):
            handler(event.payload, self.db, event.id, channel=self.channel)

    def drain(self, event_ids: list[UUID], deadline: Deadline | None = None) -> list[UUID]:
        """
        Best-effort inline delivery right after the primary commit.

        Failures are logged as DependencyFailure and the event stays
        PENDING for the worker; nothing is raised to the caller.
        Returns the ids that were not delivered.
        """
        undelivered = []
        for event_id in event_ids:
            try:
                if deadline is not None:
                    deadline.check_side_effect(f"outbox event {event_id}")

                event = self.outbox_repo.get(event_id)
                if event is None or event.status != OutboxStatusType.PENDING:
                    continue

                self.dispatch(event)
                with transaction(self.db):
                    self.outbox_repo.mark_done(event_id, utcnow())
            except DependencyFailure as e:
                self.db.rollback()
                undelivered.append(event_id)
                logger.warning("DependencyFailure: %s (%s); left for the outbox worker", e.message, e.detail)
            except Exception as e:
                self.db.rollback()
                undelivered.append(event_id)
                failure = DependencyFailure(
                    message="Side effect delivery failed",
                    detail=f"outbox event {event_id}: {e}"
                )
                logger.warning(
                    "DependencyFailure: %s (%s); left for the outbox worker",
                    failure.message, failure.detail,
                    exc_info=True,
                )
        return undelivered
