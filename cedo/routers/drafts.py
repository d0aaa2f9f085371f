from typing import Any

from fastapi import APIRouter, Body, Depends, status

from cedo.dependencies.auth import get_auth_context
from cedo.dependencies.services import get_deadline, get_draft_service, get_proposal_service
from cedo.schemas.auth import AuthContext
from cedo.schemas.common import SuccessResponse
from cedo.schemas.draft import (
    DraftCreateRequest,
    DraftCreateResponse,
    DraftEnvelopeResponse,
    DraftListResponse,
    EventTypeRequest,
    EventTypeResponse,
)
from cedo.schemas.proposal import ProposalResponse
from cedo.services.draft_service import DraftService
from cedo.services.proposal_service import ProposalService
from cedo.utils.deadline import Deadline


router = APIRouter(prefix="/proposals/drafts", tags=["drafts"])


@router.post("", response_model=DraftCreateResponse)
def create_draft(
    request: DraftCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    draft_service: DraftService = Depends(get_draft_service),
) -> DraftCreateResponse:
    """
    Create a draft under a generated public id
    - eventType defaults to school-based
    """
    draft = draft_service.create(request.event_type, request.original_legacy_label)
    return DraftCreateResponse(
        draft_id=draft["draftId"],
        event_type=draft["formData"]["eventType"],
        status=draft["status"],
    )


@router.get("", response_model=DraftListResponse)
def list_drafts(
    auth: AuthContext = Depends(get_auth_context),
    draft_service: DraftService = Depends(get_draft_service),
) -> DraftListResponse:
    return DraftListResponse(**draft_service.list())


@router.get("/{draft_id}")
def get_draft(
    draft_id: str,
    auth: AuthContext = Depends(get_auth_context),
    draft_service: DraftService = Depends(get_draft_service),
) -> dict[str, Any]:
    """
    Fetch a draft
    - unknown legacy label: migrated to a new draft, returned with migratedFrom
    - unknown public id or malformed id: 404
    """
    draft, migrated_from = draft_service.get(draft_id)
    if migrated_from is not None:
        return {
            **draft,
            "migratedFrom": migrated_from,
            "message": "Draft migrated from legacy label to a public id",
        }
    return draft


@router.patch("/{draft_id}", response_model=DraftEnvelopeResponse)
def update_draft(
    draft_id: str,
    changes: dict[str, Any] = Body(...),
    auth: AuthContext = Depends(get_auth_context),
    draft_service: DraftService = Depends(get_draft_service),
) -> DraftEnvelopeResponse:
    """Whole-draft update; formData is replaced, bookkeeping keys are kept"""
    return DraftEnvelopeResponse(draft=draft_service.update(draft_id, changes))


@router.patch("/{draft_id}/{section}", response_model=DraftEnvelopeResponse)
def patch_draft_section(
    draft_id: str,
    section: str,
    payload: Any = Body(...),
    auth: AuthContext = Depends(get_auth_context),
    draft_service: DraftService = Depends(get_draft_service),
) -> DraftEnvelopeResponse:
    """Replace one section of formData with the request body"""
    draft = draft_service.patch_section(draft_id, section, payload)
    return DraftEnvelopeResponse(draft=draft)


@router.post("/{draft_id}/event-type", response_model=EventTypeResponse)
def set_draft_event_type(
    draft_id: str,
    request: EventTypeRequest,
    auth: AuthContext = Depends(get_auth_context),
    draft_service: DraftService = Depends(get_draft_service),
) -> EventTypeResponse:
    draft = draft_service.set_event_type(draft_id, request.event_type)
    return EventTypeResponse(
        event_type=draft["formData"]["eventType"],
        draft_id=draft["draftId"],
        status=draft["status"],
    )


@router.post("/{draft_id}/submit", response_model=DraftEnvelopeResponse)
def submit_draft(
    draft_id: str,
    auth: AuthContext = Depends(get_auth_context),
    draft_service: DraftService = Depends(get_draft_service),
) -> DraftEnvelopeResponse:
    """Mark submitted; creating the proposal is a separate call"""
    return DraftEnvelopeResponse(draft=draft_service.submit(draft_id))


@router.post(
    "/{draft_id}/proposal",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED
)
def create_proposal_from_draft(
    draft_id: str,
    auth: AuthContext = Depends(get_auth_context),
    deadline: Deadline = Depends(get_deadline),
    proposal_service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    """
    Create the proposal row from a submitted draft
    - caller becomes the owner
    - the draft is removed afterwards
    """
    proposal = proposal_service.create_from_draft(draft_id, auth, deadline)
    return ProposalResponse.model_validate(proposal)


@router.delete("/{draft_id}", response_model=SuccessResponse)
def delete_draft(
    draft_id: str,
    auth: AuthContext = Depends(get_auth_context),
    draft_service: DraftService = Depends(get_draft_service),
) -> SuccessResponse:
    draft_service.delete(draft_id)
    return SuccessResponse(message="Draft deleted")
