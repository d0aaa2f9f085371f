from typing import Any

from cedo.schemas.common import CamelModel


# ============================================================================
# Request Schemas
# ============================================================================

class DraftCreateRequest(CamelModel):
    event_type: str | None = None
    original_legacy_label: str | None = None


class EventTypeRequest(CamelModel):
    event_type: str | None = None


# ============================================================================
# Response Schemas
# ============================================================================

class DraftCreateResponse(CamelModel):
    success: bool = True
    draft_id: str
    event_type: str
    status: str


class DraftEnvelopeResponse(CamelModel):
    """Draft documents are returned as stored (already camelCase)"""
    success: bool = True
    draft: dict[str, Any]


class EventTypeResponse(CamelModel):
    success: bool = True
    event_type: str
    draft_id: str
    status: str


class DraftListResponse(CamelModel):
    drafts: list[dict[str, Any]]
    count: int
    uuid_count: int
    descriptive_count: int
