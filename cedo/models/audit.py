from datetime import datetime
from uuid import UUID
from sqlalchemy import (
    BigInteger, String, Integer, Text, DateTime, Uuid, ForeignKey,
    UniqueConstraint, Index, func
)
from sqlalchemy.orm import Mapped, mapped_column

from cedo.db import Base, BigIntPK, JSONDocument


class AuditLog(Base):
    """Append-only mutation log. record_id is always a surrogate key."""
    __tablename__ = "audit_logs"
    __table_args__ = (
        # one entry per (outbox event, action): retried deliveries do not duplicate rows
        UniqueConstraint("outbox_event_id", "action_type", name="uq_audit_logs_outbox_action"),
        Index("idx_audit_logs_table_record", "table_name", "record_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(64), nullable=False, default="proposals")
    record_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("proposals.id", ondelete="RESTRICT"),
        nullable=False,
    )
    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    additional_info: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    outbox_event_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
