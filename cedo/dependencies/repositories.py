import redis
from fastapi import Depends
from sqlalchemy.orm import Session

from cedo.db import get_db
from cedo.kv import get_redis
from cedo.repositories.audit_repository import AuditRepository
from cedo.repositories.draft_repository import DraftRepository
from cedo.repositories.notification_repository import NotificationRepository
from cedo.repositories.outbox_repository import OutboxRepository
from cedo.repositories.proposal_repository import ProposalRepository


def get_proposal_repository(db: Session = Depends(get_db)) -> ProposalRepository:
    return ProposalRepository(db)


def get_outbox_repository(db: Session = Depends(get_db)) -> OutboxRepository:
    return OutboxRepository(db)


def get_audit_repository(db: Session = Depends(get_db)) -> AuditRepository:
    return AuditRepository(db)


def get_notification_repository(db: Session = Depends(get_db)) -> NotificationRepository:
    return NotificationRepository(db)


def get_draft_repository(client: redis.Redis = Depends(get_redis)) -> DraftRepository:
    """Drafts live in Redis, not in the database"""
    return DraftRepository(client)
