from datetime import datetime
from enum import Enum as PyEnum
from uuid import UUID, uuid4
from sqlalchemy import (
    BigInteger, String, Integer, Text, DateTime, Uuid, ForeignKey,
    CheckConstraint, UniqueConstraint, Index, func
)
from sqlalchemy.orm import Mapped, mapped_column

from cedo.db import Base, BigIntPK, JSONDocument, value_enum


class NotificationTargetType(PyEnum):
    USER = "user"
    ROLE = "role"
    ALL = "all"


class NotificationPriority(PyEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationStatusType(PyEnum):
    PENDING = "pending"
    DELIVERED = "delivered"
    READ = "read"
    ARCHIVED = "archived"
    EXPIRED = "expired"


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint("uuid", name="uq_notifications_uuid"),
        UniqueConstraint("dedup_key", name="uq_notifications_dedup_key"),
        CheckConstraint(
            "(target_type != 'user') OR (target_user_id IS NOT NULL)",
            name="ck_notifications_user_target"
        ),
        CheckConstraint(
            "(target_type != 'role') OR (target_role IS NOT NULL)",
            name="ck_notifications_role_target"
        ),
        Index("idx_notifications_target_user", "target_user_id"),
        Index("idx_notifications_related_proposal", "related_proposal_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    uuid: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, default=uuid4)

    target_type: Mapped[NotificationTargetType] = mapped_column(
        value_enum(NotificationTargetType, "notification_target_type"),
        nullable=False
    )
    target_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    excluded_user_ids: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    notification_type: Mapped[str] = mapped_column(String(64), nullable=False)
    priority: Mapped[NotificationPriority] = mapped_column(
        value_enum(NotificationPriority, "notification_priority"),
        nullable=False,
        default=NotificationPriority.NORMAL
    )
    status: Mapped[NotificationStatusType] = mapped_column(
        value_enum(NotificationStatusType, "notification_status_type"),
        nullable=False,
        default=NotificationStatusType.PENDING
    )

    # surrogate key of the proposal, never its public uuid
    related_proposal_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("proposals.id", ondelete="SET NULL"),
        nullable=True,
    )
    # "metadata" is reserved on declarative classes
    extra_data: Mapped[dict] = mapped_column("metadata", JSONDocument, nullable=False, default=dict)
    dedup_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
