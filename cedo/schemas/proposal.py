from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from cedo.models.proposal import ProposalStatusType, ReportStatusType
from cedo.schemas.common import CamelModel


# ============================================================================
# Request Schemas
# ============================================================================

class EventDetailsRequest(CamelModel):
    """Section 3; required fields are checked by the service (400, not 422)"""
    event_name: str | None = None
    venue: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    time_start: str | None = None
    time_end: str | None = None
    event_type: str | None = None
    event_mode: str | None = None
    target_audience: list[str] | str | None = None


class FileMetadata(CamelModel):
    """As supplied by the blob provider; never inspected"""
    name: str
    size: int = Field(ge=0)
    mime_type: str
    path: str


class FilesUpdateRequest(CamelModel):
    files: dict[str, FileMetadata]


class ReportSubmitRequest(CamelModel):
    report_description: str | None = None
    attendance_count: int | None = None
    event_outcome: str | None = None
    accomplishment_report_file: FileMetadata | None = None


# ============================================================================
# Response Schemas
# ============================================================================

class ProposalResponse(CamelModel):
    id: int
    uuid: UUID
    user_id: int
    organization_name: str | None
    organization_type: str
    organization_description: str | None
    contact_name: str | None
    contact_email: str | None
    contact_phone: str | None
    event_name: str | None
    event_venue: str | None
    event_start_date: date | None
    event_end_date: date | None
    event_start_time: str | None
    event_end_time: str | None
    event_type: str | None
    event_mode: str | None
    target_audience: list[Any]
    files: dict[str, Any]
    current_section: str
    form_completion_percentage: int
    proposal_status: ProposalStatusType
    report_status: ReportStatusType
    admin_comments: str | None
    report_description: str | None
    attendance_count: int | None
    event_outcome: str | None
    report_admin_comments: str | None
    version: int
    created_at: datetime
    updated_at: datetime | None
    submitted_at: datetime | None
    approved_at: datetime | None


class TransitionResponse(CamelModel):
    """The {previousStatus, newStatus, autoPromoted} triple"""
    success: bool = True
    previous_status: str
    new_status: str
    auto_promoted: bool
    proposal: ProposalResponse | None = None
