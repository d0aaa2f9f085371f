from fastapi import APIRouter, Depends

from cedo.dependencies.auth import require_admin
from cedo.dependencies.services import (
    get_audit_writer,
    get_deadline,
    get_proposal_service,
)
from cedo.schemas.admin import (
    AuditEntryResponse,
    BulkStatusRequest,
    BulkStatusResponse,
    CommentRequest,
    StatusUpdateRequest,
)
from cedo.schemas.auth import AuthContext
from cedo.schemas.proposal import ProposalResponse, TransitionResponse
from cedo.services.audit_service import AuditLogWriter
from cedo.services.identifier_resolver import parse, require_surrogate
from cedo.services.proposal_service import ProposalService
from cedo.utils.deadline import Deadline


router = APIRouter(prefix="/admin/proposals", tags=["admin"])


@router.patch("/bulk-status", response_model=BulkStatusResponse)
def bulk_update_status(
    request: BulkStatusRequest,
    admin: AuthContext = Depends(require_admin),
    deadline: Deadline = Depends(get_deadline),
    proposal_service: ProposalService = Depends(get_proposal_service),
) -> BulkStatusResponse:
    """
    Bulk transition by surrogate ids
    - status: approved | denied | revision_requested ("rejected" = denied)
    - adminComments stored on each proposal
    - per-id results; one bad id does not fail the batch
    """
    result = proposal_service.bulk_update_status(
        request.ids, request.status, admin, request.admin_comments, deadline
    )
    return BulkStatusResponse.model_validate(result)


@router.patch("/{identifier}/status", response_model=TransitionResponse)
def update_status(
    identifier: str,
    request: StatusUpdateRequest,
    admin: AuthContext = Depends(require_admin),
    deadline: Deadline = Depends(get_deadline),
    proposal_service: ProposalService = Depends(get_proposal_service),
) -> TransitionResponse:
    result = proposal_service.update_status(
        parse(identifier), request.status, admin, request.admin_comments, deadline
    )
    return TransitionResponse(
        previous_status=result.previous_status,
        new_status=result.new_status,
        auto_promoted=result.auto_promoted,
    )


@router.post("/{identifier}/comment", response_model=ProposalResponse)
def add_comment(
    identifier: str,
    request: CommentRequest,
    admin: AuthContext = Depends(require_admin),
    deadline: Deadline = Depends(get_deadline),
    proposal_service: ProposalService = Depends(get_proposal_service),
) -> ProposalResponse:
    proposal = proposal_service.add_admin_comment(parse(identifier), request.comment, admin, deadline)
    return ProposalResponse.model_validate(proposal)


@router.patch("/{identifier}/report-status", response_model=TransitionResponse)
def update_report_status(
    identifier: str,
    request: StatusUpdateRequest,
    admin: AuthContext = Depends(require_admin),
    deadline: Deadline = Depends(get_deadline),
    proposal_service: ProposalService = Depends(get_proposal_service),
) -> TransitionResponse:
    result = proposal_service.review_report(
        parse(identifier), request.status, admin, request.admin_comments, deadline
    )
    return TransitionResponse(
        previous_status=result.previous_status,
        new_status=result.new_status,
        auto_promoted=result.auto_promoted,
    )


@router.get("/{surrogate_id}/audit", response_model=list[AuditEntryResponse])
def list_audit_entries(
    surrogate_id: str,
    admin: AuthContext = Depends(require_admin),
    audit_writer: AuditLogWriter = Depends(get_audit_writer),
) -> list[AuditEntryResponse]:
    """
    Audit trail, most recent first
    - surrogate id only; a public id is rejected (400)
    """
    entries = audit_writer.list_for(require_surrogate(surrogate_id))
    return [AuditEntryResponse.model_validate(e) for e in entries]
