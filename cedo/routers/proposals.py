from fastapi import APIRouter, Depends

from cedo.dependencies.auth import get_auth_context
from cedo.dependencies.services import get_deadline, get_proposal_service
from cedo.schemas.auth import AuthContext
from cedo.schemas.proposal import (
    EventDetailsRequest,
    FilesUpdateRequest,
    ProposalResponse,
    ReportSubmitRequest,
    TransitionResponse,
)
from cedo.services.identifier_resolver import parse
from cedo.services.proposal_service import ProposalService
from cedo.utils.deadline import Deadline


router = APIRouter(prefix="/proposals", tags=["proposals"])


@router.get("/{identifier}", response_model=ProposalResponse)
def get_proposal(
    identifier: str,
    auth: AuthContext = Depends(get_auth_context),
    proposal_service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    """Public id or surrogate id; owner or admin only"""
    proposal = proposal_service.get(parse(identifier), auth)
    return ProposalResponse.model_validate(proposal)


@router.post("/{identifier}/sections/event-details", response_model=TransitionResponse)
def save_event_details(
    identifier: str,
    request: EventDetailsRequest,
    auth: AuthContext = Depends(get_auth_context),
    deadline: Deadline = Depends(get_deadline),
    proposal_service: ProposalService = Depends(get_proposal_service),
) -> TransitionResponse:
    """
    Section 3 save
    - required: venue, start_date, end_date
    - draft -> pending, denied/revision_requested -> pending
    - repeated save while pending: autoPromoted=false
    """
    result, proposal = proposal_service.save_event_details(
        parse(identifier), request.model_dump(), auth, deadline
    )
    return TransitionResponse(
        previous_status=result.previous_status,
        new_status=result.new_status,
        auto_promoted=result.auto_promoted,
        proposal=ProposalResponse.model_validate(proposal),
    )


@router.post("/{identifier}/report", response_model=TransitionResponse)
def submit_report(
    identifier: str,
    request: ReportSubmitRequest,
    auth: AuthContext = Depends(get_auth_context),
    deadline: Deadline = Depends(get_deadline),
    proposal_service: ProposalService = Depends(get_proposal_service),
) -> TransitionResponse:
    """Post-event report; the proposal must be approved"""
    payload = request.model_dump()
    if request.accomplishment_report_file is not None:
        payload["accomplishment_report_file"] = request.accomplishment_report_file.model_dump(by_alias=True)
    result, proposal = proposal_service.submit_report(parse(identifier), payload, auth, deadline)
    return TransitionResponse(
        previous_status=result.previous_status,
        new_status=result.new_status,
        auto_promoted=result.auto_promoted,
        proposal=ProposalResponse.model_validate(proposal),
    )


@router.put("/{identifier}/files", response_model=ProposalResponse)
def set_proposal_files(
    identifier: str,
    request: FilesUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    deadline: Deadline = Depends(get_deadline),
    proposal_service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    """Store file metadata ({name, size, mimeType, path}) per slot, verbatim"""
    files = {slot: meta.model_dump(by_alias=True) for slot, meta in request.files.items()}
    proposal = proposal_service.set_files(parse(identifier), files, auth, deadline)
    return ProposalResponse.model_validate(proposal)
