"""
Proposal lifecycle state machines.

Two independent machines live on a proposal row: proposal_status (review)
and report_status (post-event report). Both are plain lookup tables of
(current status, event) -> next status. A missing row means the event is
illegal in that state, except for automatic events, which are no-ops.

Every accepted transition is a compare-and-swap on (status, version) and
writes one outbox event in the same transaction. Callers own the
transaction and drain the outbox after commit.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from cedo.exceptions import ConflictError, InvalidTransitionError, NotFoundError
from cedo.models.outbox import PROPOSAL_STATUS_CHANGED, REPORT_STATUS_CHANGED
from cedo.models.proposal import Proposal, ProposalStatusType, ReportStatusType
from cedo.repositories.outbox_repository import OutboxRepository
from cedo.repositories.proposal_repository import ProposalRepository
from cedo.schemas.auth import AuthContext
from cedo.services.identifier_resolver import require_surrogate
from cedo.utils.security import utcnow

logger = logging.getLogger(__name__)


class TransitionEvent(str, Enum):
    EVENT_DETAILS_COMPLETED = "event_details_completed"
    OWNER_RESUBMIT = "owner_resubmit"
    ADMIN_APPROVE = "admin_approve"
    ADMIN_DENY = "admin_deny"
    ADMIN_REQUEST_REVISION = "admin_request_revision"
    REPORT_SUBMITTED = "report_submitted"


# fired by data completeness, never by an explicit request
AUTO_EVENTS = frozenset({
    TransitionEvent.EVENT_DETAILS_COMPLETED,
    TransitionEvent.OWNER_RESUBMIT,
})


PROPOSAL_TRANSITIONS: dict[tuple[ProposalStatusType, TransitionEvent], ProposalStatusType] = {
    (ProposalStatusType.DRAFT, TransitionEvent.EVENT_DETAILS_COMPLETED): ProposalStatusType.PENDING,
    (ProposalStatusType.PENDING, TransitionEvent.ADMIN_APPROVE): ProposalStatusType.APPROVED,
    (ProposalStatusType.PENDING, TransitionEvent.ADMIN_DENY): ProposalStatusType.DENIED,
    (ProposalStatusType.PENDING, TransitionEvent.ADMIN_REQUEST_REVISION): ProposalStatusType.REVISION_REQUESTED,
    (ProposalStatusType.DENIED, TransitionEvent.OWNER_RESUBMIT): ProposalStatusType.PENDING,
    (ProposalStatusType.REVISION_REQUESTED, TransitionEvent.OWNER_RESUBMIT): ProposalStatusType.PENDING,
}

REPORT_TRANSITIONS: dict[tuple[ReportStatusType, TransitionEvent], ReportStatusType] = {
    (ReportStatusType.DRAFT, TransitionEvent.REPORT_SUBMITTED): ReportStatusType.PENDING,
    (ReportStatusType.DENIED, TransitionEvent.REPORT_SUBMITTED): ReportStatusType.PENDING,
    (ReportStatusType.PENDING, TransitionEvent.ADMIN_APPROVE): ReportStatusType.APPROVED,
    (ReportStatusType.PENDING, TransitionEvent.ADMIN_DENY): ReportStatusType.DENIED,
}

# admin-facing target status -> event
ADMIN_STATUS_EVENTS: dict[ProposalStatusType, TransitionEvent] = {
    ProposalStatusType.APPROVED: TransitionEvent.ADMIN_APPROVE,
    ProposalStatusType.DENIED: TransitionEvent.ADMIN_DENY,
    ProposalStatusType.REVISION_REQUESTED: TransitionEvent.ADMIN_REQUEST_REVISION,
}
REPORT_ADMIN_STATUS_EVENTS: dict[ReportStatusType, TransitionEvent] = {
    ReportStatusType.APPROVED: TransitionEvent.ADMIN_APPROVE,
    ReportStatusType.DENIED: TransitionEvent.ADMIN_DENY,
}

# auto event that re-enters review from each editable status
AUTO_EVENT_FOR_STATUS: dict[ProposalStatusType, TransitionEvent] = {
    ProposalStatusType.DRAFT: TransitionEvent.EVENT_DETAILS_COMPLETED,
    ProposalStatusType.PENDING: TransitionEvent.EVENT_DETAILS_COMPLETED,
    ProposalStatusType.DENIED: TransitionEvent.OWNER_RESUBMIT,
    ProposalStatusType.REVISION_REQUESTED: TransitionEvent.OWNER_RESUBMIT,
}


@dataclass(frozen=True)
class TransitionResult:
    previous_status: str
    new_status: str
    auto_promoted: bool
    proposal_id: int
    outbox_event_id: UUID | None = None


def next_status(table: dict, current, event: TransitionEvent):
    """Table lookup; None when (current, event) has no row"""
    return table.get((current, event))


class TransitionEngine:
    def __init__(self, proposal_repo: ProposalRepository, outbox_repo: OutboxRepository):
        self.proposal_repo = proposal_repo
        self.outbox_repo = outbox_repo

    def _load(self, surrogate_id) -> Proposal:
        proposal_id = require_surrogate(surrogate_id)
        proposal = self.proposal_repo.get_by_id(proposal_id)
        if proposal is None:
            raise NotFoundError(
                message="Proposal not found",
                detail=f"No proposal with id {proposal_id}"
            )
        return proposal

    def _payload(
        self,
        proposal: Proposal,
        machine: str,
        event: TransitionEvent,
        previous: str,
        new: str,
        actor: AuthContext,
        comments: str | None,
    ) -> dict:
        return {
            "machine": machine,
            "proposal_id": proposal.id,
            "public_id": str(proposal.uuid),
            "owner_user_id": proposal.user_id,
            "owner_email": proposal.contact_email,
            "event_name": proposal.event_name or proposal.organization_name,
            "event": event.value,
            "previous_status": previous,
            "new_status": new,
            "actor_user_id": actor.user_id,
            "actor_role": actor.role,
            "admin_comments": comments,
        }

    def apply_transition(
        self,
        surrogate_id,
        event: TransitionEvent,
        actor: AuthContext,
        comments: str | None = None,
    ) -> TransitionResult:
        """
        Apply one event to proposal_status inside the caller's transaction

        - no table row: InvalidTransitionError, or a no-op for automatic
          events (autoPromoted=False)
        - CAS lost to a concurrent writer: ConflictError
        """
        proposal = self._load(surrogate_id)
        current = proposal.proposal_status
        target = next_status(PROPOSAL_TRANSITIONS, current, event)

        if target is None:
            if event in AUTO_EVENTS:
                logger.debug(
                    "Auto event %s is a no-op for proposal %s in status %s",
                    event.value, proposal.id, current.value
                )
                return TransitionResult(
                    previous_status=current.value,
                    new_status=current.value,
                    auto_promoted=False,
                    proposal_id=proposal.id,
                )
            raise InvalidTransitionError(
                message="Invalid status transition",
                detail=f"Cannot apply {event.value} to a proposal in status {current.value}",
                current_status=current.value,
                event=event.value,
            )

        now = utcnow()
        values = {"updated_at": now}
        if target == ProposalStatusType.PENDING:
            values["submitted_at"] = now
        else:
            values["reviewed_at"] = now
            values["reviewed_by_admin_id"] = actor.user_id
            if comments is not None:
                values["admin_comments"] = comments
            if target == ProposalStatusType.APPROVED:
                values["approved_at"] = now

        if not self.proposal_repo.transition_status_if(
            proposal.id, current, proposal.version, target, values
        ):
            raise ConflictError(
                message="Proposal was modified concurrently",
                detail=f"Proposal {proposal.id} is no longer {current.value} at version {proposal.version}"
            )

        outbox_event = self.outbox_repo.create_outbox_event(
            event_type=PROPOSAL_STATUS_CHANGED,
            payload=self._payload(
                proposal, "proposal", event, current.value, target.value, actor, comments
            ),
            proposal_id=proposal.id,
        )
        self.proposal_repo.refresh(proposal)

        logger.info(
            "Proposal %s: %s -> %s (%s by user %s)",
            proposal.id, current.value, target.value, event.value, actor.user_id
        )
        return TransitionResult(
            previous_status=current.value,
            new_status=target.value,
            auto_promoted=event in AUTO_EVENTS,
            proposal_id=proposal.id,
            outbox_event_id=outbox_event.id,
        )

    def apply_report_transition(
        self,
        surrogate_id,
        event: TransitionEvent,
        actor: AuthContext,
        comments: str | None = None,
    ) -> TransitionResult:
        """Same contract as apply_transition, over report_status"""
        proposal = self._load(surrogate_id)

        if (
            event == TransitionEvent.REPORT_SUBMITTED
            and proposal.proposal_status != ProposalStatusType.APPROVED
        ):
            raise InvalidTransitionError(
                message="Invalid report transition",
                detail=f"Reports require an approved proposal; proposal {proposal.id} is {proposal.proposal_status.value}",
                current_status=proposal.report_status.value,
                event=event.value,
            )

        current = proposal.report_status
        target = next_status(REPORT_TRANSITIONS, current, event)
        if target is None:
            raise InvalidTransitionError(
                message="Invalid report transition",
                detail=f"Cannot apply {event.value} to a report in status {current.value}",
                current_status=current.value,
                event=event.value,
            )

        now = utcnow()
        values = {"updated_at": now}
        if target == ReportStatusType.PENDING:
            values["report_submitted_at"] = now
        else:
            values["reviewed_at"] = now
            values["reviewed_by_admin_id"] = actor.user_id
            if comments is not None:
                values["report_admin_comments"] = comments

        if not self.proposal_repo.transition_report_status_if(
            proposal.id, current, proposal.version, target, values
        ):
            raise ConflictError(
                message="Proposal was modified concurrently",
                detail=f"Report of proposal {proposal.id} is no longer {current.value} at version {proposal.version}"
            )

        outbox_event = self.outbox_repo.create_outbox_event(
            event_type=REPORT_STATUS_CHANGED,
            payload=self._payload(
                proposal, "report", event, current.value, target.value, actor, comments
            ),
            proposal_id=proposal.id,
        )
        self.proposal_repo.refresh(proposal)

        logger.info(
            "Proposal %s report: %s -> %s (%s by user %s)",
            proposal.id, current.value, target.value, event.value, actor.user_id
        )
        return TransitionResult(
            previous_status=current.value,
            new_status=target.value,
            auto_promoted=False,
            proposal_id=proposal.id,
            outbox_event_id=outbox_event.id,
        )
