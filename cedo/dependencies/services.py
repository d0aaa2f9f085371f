from fastapi import Depends
from sqlalchemy.orm import Session

from cedo.db import get_db
from cedo.repositories.audit_repository import AuditRepository
from cedo.repositories.draft_repository import DraftRepository
from cedo.repositories.notification_repository import NotificationRepository
from cedo.repositories.outbox_repository import OutboxRepository
from cedo.repositories.proposal_repository import ProposalRepository
from cedo.dependencies.repositories import (
    get_audit_repository,
    get_draft_repository,
    get_notification_repository,
    get_outbox_repository,
    get_proposal_repository,
)
from cedo.services.audit_service import AuditLogWriter
from cedo.services.draft_service import DraftService
from cedo.services.identifier_resolver import IdentifierResolver
from cedo.services.notification_service import NotificationInboxService
from cedo.services.outbox_dispatcher import OutboxDispatcher
from cedo.services.proposal_service import ProposalService
from cedo.services.transition_engine import TransitionEngine
from cedo.utils.deadline import Deadline
from cedo.utils.mailer import NotificationChannel, build_channel_from_env


def get_notification_channel() -> NotificationChannel:
    """SendGrid when configured, otherwise a logging no-op channel"""
    return build_channel_from_env()


def get_deadline() -> Deadline:
    """Fresh time budget per request (REQUEST_DEADLINE_SECONDS)"""
    return Deadline()


def get_draft_service(
    draft_repo: DraftRepository = Depends(get_draft_repository),
) -> DraftService:
    return DraftService(draft_repo)


def get_identifier_resolver(
    proposal_repo: ProposalRepository = Depends(get_proposal_repository),
) -> IdentifierResolver:
    return IdentifierResolver(proposal_repo)


def get_audit_writer(
    audit_repo: AuditRepository = Depends(get_audit_repository),
) -> AuditLogWriter:
    return AuditLogWriter(audit_repo)


def get_outbox_dispatcher(
    db: Session = Depends(get_db),
    outbox_repo: OutboxRepository = Depends(get_outbox_repository),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> OutboxDispatcher:
    return OutboxDispatcher(db, outbox_repo, channel)


def get_transition_engine(
    proposal_repo: ProposalRepository = Depends(get_proposal_repository),
    outbox_repo: OutboxRepository = Depends(get_outbox_repository),
) -> TransitionEngine:
    return TransitionEngine(proposal_repo, outbox_repo)


def get_proposal_service(
    db: Session = Depends(get_db),
    proposal_repo: ProposalRepository = Depends(get_proposal_repository),
    outbox_repo: OutboxRepository = Depends(get_outbox_repository),
    resolver: IdentifierResolver = Depends(get_identifier_resolver),
    engine: TransitionEngine = Depends(get_transition_engine),
    dispatcher: OutboxDispatcher = Depends(get_outbox_dispatcher),
    draft_service: DraftService = Depends(get_draft_service),
) -> ProposalService:
    return ProposalService(
        db=db,
        proposal_repo=proposal_repo,
        outbox_repo=outbox_repo,
        resolver=resolver,
        engine=engine,
        dispatcher=dispatcher,
        draft_service=draft_service,
    )


def get_notification_inbox_service(
    db: Session = Depends(get_db),
    notification_repo: NotificationRepository = Depends(get_notification_repository),
) -> NotificationInboxService:
    return NotificationInboxService(db, notification_repo)
