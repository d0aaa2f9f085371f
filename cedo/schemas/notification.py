from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, Field

from cedo.models.notification import (
    NotificationTargetType, NotificationPriority, NotificationStatusType
)
from cedo.schemas.common import CamelModel


class NotificationResponse(CamelModel):
    id: int
    uuid: UUID
    target_type: NotificationTargetType
    target_user_id: int | None
    target_role: str | None
    title: str
    message: str
    notification_type: str
    priority: NotificationPriority
    status: NotificationStatusType
    related_proposal_id: int | None
    metadata: dict[str, Any] = Field(validation_alias=AliasChoices("extra_data", "metadata"))
    expires_at: datetime | None
    read_at: datetime | None
    created_at: datetime


class UnreadCountResponse(CamelModel):
    unread_count: int


class MarkReadRequest(CamelModel):
    """ids omitted: mark everything visible as read"""
    ids: list[int] | None = None


class MarkReadResponse(CamelModel):
    success: bool = True
    updated: int
