from uuid import UUID

from sqlalchemy.orm import Session

from cedo.exceptions import NotFoundError
from cedo.repositories.notification_repository import NotificationRepository
from cedo.repositories.proposal_repository import ProposalRepository
from cedo.services.identifier_resolver import require_surrogate
from cedo.services.notification_service import NotificationDispatcher
from cedo.utils.mailer import NotificationChannel
from cedo.utils.transaction import transaction
from cedo.workers.handlers.idempotency import already_processed, mark_processed

SCOPE = "notification"


def notify_transition(
    payload: dict,
    db: Session,
    outbox_event_id: UUID,
    channel: NotificationChannel,
    **_
) -> None:
    """
    Notifications for a proposal or report transition

    Idempotency: the outbox event id is both the handler marker key and
    the prefix of each notification's dedup_key. E-mails go out only after
    the rows and the marker are committed, so a rolled-back attempt sends
    nothing and the retry sends each one once.
    """
    dispatcher = NotificationDispatcher(NotificationRepository(db), channel)
    with transaction(db):
        if already_processed(db, SCOPE, outbox_event_id):
            return

        proposal_id = require_surrogate(payload["proposal_id"])
        proposal = ProposalRepository(db).get_by_id(proposal_id)
        if proposal is None:
            raise NotFoundError(
                message="Proposal not found",
                detail=f"Outbox event {outbox_event_id} references missing proposal {proposal_id}"
            )

        dispatcher.on_transition(
            proposal,
            payload["previous_status"],
            payload["new_status"],
            actor_user_id=payload.get("actor_user_id"),
            comments=payload.get("admin_comments"),
            machine=payload.get("machine", "proposal"),
            outbox_event_id=outbox_event_id,
        )
        mark_processed(db, SCOPE, outbox_event_id)

    dispatcher.deliver_outbound()
