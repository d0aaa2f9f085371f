from datetime import datetime
from enum import Enum as PyEnum
from uuid import UUID, uuid4
from sqlalchemy import (
    BigInteger, String, DateTime, Integer, Text, Uuid, ForeignKey, Index, func
)
from sqlalchemy.orm import Mapped, mapped_column

from cedo.db import Base, JSONDocument, value_enum


class OutboxStatusType(PyEnum):
    PENDING = "PENDING"
    DONE = "DONE"
    FAILED = "FAILED"


# event_type values
PROPOSAL_CREATED = "proposal.created.v1"
PROPOSAL_STATUS_CHANGED = "proposal.status_changed.v1"
REPORT_STATUS_CHANGED = "proposal.report_status_changed.v1"
ADMIN_COMMENT_ADDED = "proposal.admin_comment_added.v1"
EVENT_DETAILS_UPDATED = "proposal.event_details_updated.v1"


class OutboxEvent(Base):
    """
    Durable "event occurred" record written in the same transaction as the
    proposal mutation. Drained into audit entries and notifications.
    """
    __tablename__ = "outbox_events"
    __table_args__ = (
        Index("idx_outbox_status_next_retry", "status", "next_retry_at"),
        Index("idx_outbox_event_type", "event_type"),
        Index("idx_outbox_proposal_id", "proposal_id"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)  # "proposal.status_changed.v1"
    proposal_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
    )
    payload: Mapped[dict] = mapped_column(JSONDocument, nullable=False)

    status: Mapped[OutboxStatusType] = mapped_column(
        value_enum(OutboxStatusType, "outbox_status_type"),
        nullable=False,
        default=OutboxStatusType.PENDING
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_retry_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)  # hostname:pid

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
