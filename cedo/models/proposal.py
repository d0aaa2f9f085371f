from uuid import UUID, uuid4
from datetime import date, datetime
from enum import Enum as PyEnum
from sqlalchemy import (
    String, Text, Integer, Date, DateTime, Uuid, CheckConstraint,
    UniqueConstraint, Index, func
)
from sqlalchemy.orm import Mapped, mapped_column

from cedo.db import Base, BigIntPK, JSONDocument, value_enum


class ProposalStatusType(PyEnum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    REVISION_REQUESTED = "revision_requested"


class ReportStatusType(PyEnum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    NOT_APPLICABLE = "not_applicable"


class EventTypeChoice(PyEnum):
    SCHOOL_BASED = "school-based"
    COMMUNITY_BASED = "community-based"


class Proposal(Base):
    __tablename__ = "proposals"
    __table_args__ = (
        UniqueConstraint("uuid", name="uq_proposals_uuid"),
        CheckConstraint(
            "form_completion_percentage >= 0 AND form_completion_percentage <= 100",
            name="ck_proposals_completion_range"
        ),
        CheckConstraint("version >= 1", name="ck_proposals_version_positive"),
        Index("idx_proposals_status", "proposal_status"),
        Index("idx_proposals_user_id", "user_id"),
    )

    # surrogate key: every internal foreign key (audit, notifications, outbox) points here
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    # public identifier: client-facing URLs only, never a join key
    uuid: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, default=uuid4
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # organization
    organization_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    organization_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default=EventTypeChoice.SCHOOL_BASED.value
    )
    organization_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # event
    event_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_venue: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    event_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    event_start_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    event_end_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    event_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    event_mode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    target_audience: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    event_specific_data: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)

    # file metadata from the blob provider, stored verbatim
    files: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)

    current_section: Mapped[str] = mapped_column(String(50), nullable=False, default="overview")
    form_completion_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    proposal_status: Mapped[ProposalStatusType] = mapped_column(
        value_enum(ProposalStatusType, "proposal_status_type"),
        nullable=False,
        default=ProposalStatusType.DRAFT
    )
    report_status: Mapped[ReportStatusType] = mapped_column(
        value_enum(ReportStatusType, "report_status_type"),
        nullable=False,
        default=ReportStatusType.DRAFT
    )
    admin_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by_admin_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # post-event report
    report_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    attendance_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    event_outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)
    report_admin_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    # bumped by every status transition (compare-and-swap guard)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    report_submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
