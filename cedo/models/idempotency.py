from datetime import datetime
from uuid import UUID, uuid4
from sqlalchemy import (
    String, DateTime, Uuid, UniqueConstraint, Index, func
)
from sqlalchemy.orm import Mapped, mapped_column

from cedo.db import Base


class IdempotencyRecord(Base):
    """Processing marker for outbox handlers: (scope, key) is handled at most once."""
    __tablename__ = "idempotency_records"
    __table_args__ = (
        UniqueConstraint("scope", "key", name="uq_idempotency_records_scope_key"),
        Index("idx_idempotency_records_expires_at", "expires_at"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    scope: Mapped[str] = mapped_column(String(100), nullable=False)  # handler name
    key: Mapped[str] = mapped_column(String(255), nullable=False)    # "outbox:<event id>"

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
