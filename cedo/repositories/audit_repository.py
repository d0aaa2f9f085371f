from uuid import UUID
from sqlalchemy import select
from sqlalchemy.orm import Session

from cedo.models.audit import AuditLog


class AuditRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, entry: AuditLog) -> AuditLog:
        self.db.add(entry)
        self.db.flush()
        return entry

    def exists_for_outbox_event(self, outbox_event_id: UUID, action_type: str) -> bool:
        stmt = select(AuditLog.id).where(
            AuditLog.outbox_event_id == outbox_event_id,
            AuditLog.action_type == action_type,
        )
        return self.db.execute(stmt).first() is not None

    def list_for_record(self, record_id: int, table_name: str = "proposals") -> list[AuditLog]:
        """Most recent first; id breaks ties inside one timestamp"""
        stmt = (
            select(AuditLog)
            .where(AuditLog.table_name == table_name, AuditLog.record_id == record_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())
