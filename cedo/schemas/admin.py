from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from cedo.schemas.common import CamelModel


# ============================================================================
# Request Schemas
# ============================================================================

class BulkStatusRequest(CamelModel):
    ids: list[int | str] = Field(min_length=1)
    status: str
    admin_comments: str | None = None


class StatusUpdateRequest(CamelModel):
    status: str
    admin_comments: str | None = None


class CommentRequest(CamelModel):
    comment: str


# ============================================================================
# Response Schemas
# ============================================================================

class BulkItemResult(CamelModel):
    id: int | str
    success: bool
    previous_status: str | None = None
    new_status: str | None = None
    error: str | None = None
    message: str | None = None


class BulkStatusResponse(CamelModel):
    success: bool
    updated_count: int
    failed_count: int
    results: list[BulkItemResult]


class AuditEntryResponse(CamelModel):
    id: int
    table_name: str
    record_id: int
    action_type: str
    user_id: int | None
    note: str | None
    additional_info: dict[str, Any]
    outbox_event_id: UUID | None
    created_at: datetime
