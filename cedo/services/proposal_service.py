import logging
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from cedo.exceptions import AppException, ForbiddenError, InvalidTransitionError, ValidationError
from cedo.models.outbox import PROPOSAL_CREATED, ADMIN_COMMENT_ADDED, EVENT_DETAILS_UPDATED
from cedo.models.proposal import Proposal, ProposalStatusType, ReportStatusType
from cedo.repositories.outbox_repository import OutboxRepository
from cedo.repositories.proposal_repository import ProposalRepository
from cedo.schemas.auth import AuthContext
from cedo.services.draft_service import DraftService, EVENT_TYPES
from cedo.services.identifier_resolver import Identifier, IdentifierResolver, require_surrogate
from cedo.services.outbox_dispatcher import OutboxDispatcher
from cedo.services.transition_engine import (
    ADMIN_STATUS_EVENTS,
    AUTO_EVENT_FOR_STATUS,
    REPORT_ADMIN_STATUS_EVENTS,
    TransitionEngine,
    TransitionEvent,
    TransitionResult,
)
from cedo.utils.deadline import Deadline
from cedo.utils.security import utcnow
from cedo.utils.transaction import transaction

logger = logging.getLogger(__name__)

# admin-facing spelling -> status
STATUS_ALIASES = {"rejected": "denied"}
EVENT_MODES = ("offline", "online", "hybrid")
EVENT_OUTCOMES = ("completed", "postponed", "cancelled")


def normalize_admin_status(status: str) -> ProposalStatusType:
    value = STATUS_ALIASES.get((status or "").strip().lower(), (status or "").strip().lower())
    try:
        target = ProposalStatusType(value)
    except ValueError:
        target = None
    if target not in ADMIN_STATUS_EVENTS:
        allowed = ", ".join(s.value for s in ADMIN_STATUS_EVENTS)
        raise ValidationError(
            message="Invalid status",
            detail=f"Status must be one of {allowed} (or 'rejected'); got {status!r}"
        )
    return target


def normalize_report_status(status: str) -> ReportStatusType:
    value = STATUS_ALIASES.get((status or "").strip().lower(), (status or "").strip().lower())
    try:
        target = ReportStatusType(value)
    except ValueError:
        target = None
    if target not in REPORT_ADMIN_STATUS_EVENTS:
        raise ValidationError(
            message="Invalid report status",
            detail=f"Report status must be approved or denied; got {status!r}"
        )
    return target


def _parse_date(payload: dict, key: str, errors: list[str]) -> date | None:
    value = payload.get(key)
    if value in (None, ""):
        errors.append(f"{key} is required")
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        errors.append(f"{key} must be an ISO date (YYYY-MM-DD)")
        return None


def validate_event_details(payload: dict) -> dict[str, Any]:
    """
    Section-3 (event details) payload -> proposal column values

    Required: venue, start_date, end_date (end on or after start).
    """
    errors = []
    venue = (payload.get("venue") or "").strip()
    if not venue:
        errors.append("venue is required")
    start = _parse_date(payload, "start_date", errors)
    end = _parse_date(payload, "end_date", errors)
    if start and end and end < start:
        errors.append("end_date must not be before start_date")

    event_mode = payload.get("event_mode")
    if event_mode is not None and event_mode not in EVENT_MODES:
        errors.append(f"event_mode must be one of {', '.join(EVENT_MODES)}")

    target_audience = payload.get("target_audience") or []
    if isinstance(target_audience, str):
        target_audience = [target_audience]

    if errors:
        raise ValidationError(message="Invalid event details", detail="; ".join(errors))

    values = {
        "event_venue": venue,
        "event_start_date": start,
        "event_end_date": end,
        "event_start_time": payload.get("time_start"),
        "event_end_time": payload.get("time_end"),
        "event_type": payload.get("event_type"),
        "event_mode": event_mode,
        "target_audience": list(target_audience),
        "current_section": "event-details",
    }
    if payload.get("event_name"):
        values["event_name"] = payload["event_name"]
    return values


def _section(form_data: dict, *names: str) -> dict:
    merged = {}
    for name in names:
        section = form_data.get(name)
        if isinstance(section, dict):
            merged.update(section)
    return merged


def proposal_from_draft(draft: dict, owner_id: int) -> Proposal:
    form = draft.get("formData") or {}
    org = _section(form, "overview", "organization", "orgInfo")

    name = org.get("organizationName") or org.get("title")
    contact_name = org.get("contactName") or org.get("contactPerson")
    contact_email = org.get("contactEmail")
    missing = [
        field for field, value in (
            ("organizationName", name),
            ("contactName", contact_name),
            ("contactEmail", contact_email),
        ) if not value
    ]
    if missing:
        raise ValidationError(
            message="Missing required fields",
            detail=f"Draft {draft.get('draftId')} is missing: {', '.join(missing)}"
        )

    organization_type = form.get("organizationType") or form.get("eventType")
    if organization_type not in EVENT_TYPES:
        organization_type = EVENT_TYPES[0]

    event = _section(form, "event-details", "eventDetails")
    return Proposal(
        user_id=owner_id,
        organization_name=name,
        organization_type=organization_type,
        organization_description=org.get("description"),
        contact_name=contact_name,
        contact_email=contact_email,
        contact_phone=org.get("contactPhone"),
        event_name=event.get("event_name") or org.get("eventName"),
        current_section=form.get("currentSection") or "overview",
        proposal_status=ProposalStatusType.DRAFT,
        report_status=ReportStatusType.DRAFT,
        files={},
        target_audience=[],
        event_specific_data={
            "draftId": draft.get("draftId"),
            "originalLegacyLabel": draft.get("originalLegacyLabel"),
        },
    )


class ProposalService:
    def __init__(
        self,
        db: Session,
        proposal_repo: ProposalRepository,
        outbox_repo: OutboxRepository,
        resolver: IdentifierResolver,
        engine: TransitionEngine,
        dispatcher: OutboxDispatcher,
        draft_service: DraftService,
    ):
        self.db = db
        self.proposal_repo = proposal_repo
        self.outbox_repo = outbox_repo
        self.resolver = resolver
        self.engine = engine
        self.dispatcher = dispatcher
        self.draft_service = draft_service

    @staticmethod
    def _check_owner_or_admin(proposal: Proposal, actor: AuthContext) -> None:
        if not actor.is_admin and proposal.user_id != actor.user_id:
            raise ForbiddenError(
                message="Not allowed",
                detail=f"Only the owner or an administrator may modify proposal {proposal.id}"
            )

    def _after_commit(self, event_ids: list, deadline: Deadline | None) -> None:
        """Inline drain; anything left over is delivered by the OutboxWorker"""
        event_ids = [e for e in event_ids if e is not None]
        if event_ids:
            self.dispatcher.drain(event_ids, deadline)

    def get(self, identifier: str | Identifier, actor: AuthContext) -> Proposal:
        proposal = self.resolver.resolve_proposal(identifier)
        if not actor.is_admin and proposal.user_id != actor.user_id:
            raise ForbiddenError(message="Not allowed", detail="Proposal belongs to another user")
        return proposal

    def create_from_draft(
        self,
        draft_id: str,
        actor: AuthContext,
        deadline: Deadline | None = None,
    ) -> Proposal:
        """
        Turn a submitted draft into a durable proposal (status draft).
        The draft is removed once the proposal is committed.
        """
        draft = self.draft_service.require_submitted(draft_id)
        proposal = proposal_from_draft(draft, owner_id=actor.user_id)

        if deadline is not None:
            deadline.check_primary("create proposal")
        with transaction(self.db):
            proposal = self.proposal_repo.create(proposal)
            event = self.outbox_repo.create_outbox_event(
                event_type=PROPOSAL_CREATED,
                payload={
                    "proposal_id": proposal.id,
                    "public_id": str(proposal.uuid),
                    "actor_user_id": actor.user_id,
                    "draft_id": draft_id,
                    "original_legacy_label": draft.get("originalLegacyLabel"),
                },
                proposal_id=proposal.id,
            )
            event_id = event.id

        logger.info("Proposal %s (%s) created from draft %s", proposal.id, proposal.uuid, draft_id)
        self.draft_service.delete(draft_id)
        self._after_commit([event_id], deadline)
        self.db.refresh(proposal)
        return proposal

    def save_event_details(
        self,
        identifier: str | Identifier,
        payload: dict,
        actor: AuthContext,
        deadline: Deadline | None = None,
    ) -> tuple[TransitionResult, Proposal]:
        """
        Section-3 save with auto-promotion

        - draft -> pending (EVENT_DETAILS_COMPLETED)
        - denied / revision_requested -> pending (OWNER_RESUBMIT)
        - already pending: fields saved, autoPromoted=False
        """
        values = validate_event_details(payload)
        proposal = self.resolver.resolve_proposal(identifier)
        self._check_owner_or_admin(proposal, actor)

        auto_event = AUTO_EVENT_FOR_STATUS.get(proposal.proposal_status)
        if auto_event is None:
            raise InvalidTransitionError(
                message="Proposal is locked",
                detail=f"Event details cannot change once a proposal is {proposal.proposal_status.value}",
                current_status=proposal.proposal_status.value,
                event=TransitionEvent.EVENT_DETAILS_COMPLETED.value,
            )

        if deadline is not None:
            deadline.check_primary("save event details")
        with transaction(self.db):
            self.proposal_repo.update_fields(proposal, values, utcnow())
            details_event = self.outbox_repo.create_outbox_event(
                event_type=EVENT_DETAILS_UPDATED,
                payload={
                    "proposal_id": proposal.id,
                    "actor_user_id": actor.user_id,
                    "status": proposal.proposal_status.value,
                    "fields": sorted(values),
                },
                proposal_id=proposal.id,
            )
            details_event_id = details_event.id
            result = self.engine.apply_transition(proposal.id, auto_event, actor)

        self._after_commit([details_event_id, result.outbox_event_id], deadline)
        self.db.refresh(proposal)
        return result, proposal

    def update_status(
        self,
        identifier: str | Identifier,
        status: str,
        actor: AuthContext,
        admin_comments: str | None = None,
        deadline: Deadline | None = None,
    ) -> TransitionResult:
        """Single admin transition"""
        target = normalize_admin_status(status)
        proposal = self.resolver.resolve_proposal(identifier)

        if deadline is not None:
            deadline.check_primary("update proposal status")
        with transaction(self.db):
            result = self.engine.apply_transition(
                proposal.id, ADMIN_STATUS_EVENTS[target], actor, comments=admin_comments
            )
        self._after_commit([result.outbox_event_id], deadline)
        return result

    def bulk_update_status(
        self,
        ids: list,
        status: str,
        actor: AuthContext,
        admin_comments: str | None = None,
        deadline: Deadline | None = None,
    ) -> dict:
        """
        Admin bulk transition over surrogate ids

        Each id commits on its own; a bad id is reported in its result
        entry and never fails the rest of the batch.
        """
        target = normalize_admin_status(status)
        event = ADMIN_STATUS_EVENTS[target]

        results = []
        event_ids = []
        for raw_id in ids:
            try:
                proposal_id = require_surrogate(raw_id)
                if deadline is not None:
                    deadline.check_primary(f"update proposal {proposal_id}")
                with transaction(self.db):
                    result = self.engine.apply_transition(
                        proposal_id, event, actor, comments=admin_comments
                    )
                event_ids.append(result.outbox_event_id)
                results.append({
                    "id": proposal_id,
                    "success": True,
                    "previous_status": result.previous_status,
                    "new_status": result.new_status,
                })
            except AppException as e:
                logger.info("Bulk status update skipped id %r: %s", raw_id, e.detail)
                results.append({
                    "id": raw_id,
                    "success": False,
                    "error": e.__class__.__name__,
                    "message": e.detail,
                })

        self._after_commit(event_ids, deadline)
        updated = sum(1 for r in results if r["success"])
        logger.info(
            "Bulk status update to %s by user %s: %d updated, %d failed",
            target.value, actor.user_id, updated, len(results) - updated
        )
        return {
            "success": updated > 0 or not results,
            "updated_count": updated,
            "failed_count": len(results) - updated,
            "results": results,
        }

    def add_admin_comment(
        self,
        identifier: str | Identifier,
        comment: str,
        actor: AuthContext,
        deadline: Deadline | None = None,
    ) -> Proposal:
        comment = (comment or "").strip()
        if not comment:
            raise ValidationError(message="Comment is required")
        proposal = self.resolver.resolve_proposal(identifier)

        if deadline is not None:
            deadline.check_primary("add admin comment")
        with transaction(self.db):
            self.proposal_repo.update_fields(proposal, {"admin_comments": comment}, utcnow())
            event = self.outbox_repo.create_outbox_event(
                event_type=ADMIN_COMMENT_ADDED,
                payload={
                    "proposal_id": proposal.id,
                    "actor_user_id": actor.user_id,
                    "note": comment,
                    "status": proposal.proposal_status.value,
                },
                proposal_id=proposal.id,
            )
            event_id = event.id

        self._after_commit([event_id], deadline)
        self.db.refresh(proposal)
        return proposal

    def submit_report(
        self,
        identifier: str | Identifier,
        payload: dict,
        actor: AuthContext,
        deadline: Deadline | None = None,
    ) -> tuple[TransitionResult, Proposal]:
        """Post-event report: store the fields, then report_status -> pending"""
        description = (payload.get("report_description") or "").strip()
        if not description:
            raise ValidationError(message="Invalid report", detail="report_description is required")
        attendance = payload.get("attendance_count")
        if attendance is not None and (not isinstance(attendance, int) or attendance < 0):
            raise ValidationError(message="Invalid report", detail="attendance_count must be a non-negative integer")
        outcome = payload.get("event_outcome")
        if outcome is not None and outcome not in EVENT_OUTCOMES:
            raise ValidationError(
                message="Invalid report",
                detail=f"event_outcome must be one of {', '.join(EVENT_OUTCOMES)}"
            )

        proposal = self.resolver.resolve_proposal(identifier)
        self._check_owner_or_admin(proposal, actor)

        values = {
            "report_description": description,
            "attendance_count": attendance,
            "event_outcome": outcome,
        }
        report_file = payload.get("accomplishment_report_file")
        if report_file:
            values["files"] = {**(proposal.files or {}), "accomplishment_report": report_file}

        if deadline is not None:
            deadline.check_primary("submit report")
        with transaction(self.db):
            self.proposal_repo.update_fields(proposal, values, utcnow())
            result = self.engine.apply_report_transition(
                proposal.id, TransitionEvent.REPORT_SUBMITTED, actor
            )

        self._after_commit([result.outbox_event_id], deadline)
        self.db.refresh(proposal)
        return result, proposal

    def review_report(
        self,
        identifier: str | Identifier,
        status: str,
        actor: AuthContext,
        admin_comments: str | None = None,
        deadline: Deadline | None = None,
    ) -> TransitionResult:
        target = normalize_report_status(status)
        proposal = self.resolver.resolve_proposal(identifier)

        if deadline is not None:
            deadline.check_primary("review report")
        with transaction(self.db):
            result = self.engine.apply_report_transition(
                proposal.id, REPORT_ADMIN_STATUS_EVENTS[target], actor, comments=admin_comments
            )
        self._after_commit([result.outbox_event_id], deadline)
        return result

    def set_files(
        self,
        identifier: str | Identifier,
        files: dict[str, dict],
        actor: AuthContext,
        deadline: Deadline | None = None,
    ) -> Proposal:
        """File metadata from the blob provider, stored verbatim per slot"""
        proposal = self.resolver.resolve_proposal(identifier)
        self._check_owner_or_admin(proposal, actor)

        if deadline is not None:
            deadline.check_primary("store file metadata")
        with transaction(self.db):
            self.proposal_repo.update_fields(
                proposal, {"files": {**(proposal.files or {}), **files}}, utcnow()
            )
        self.db.refresh(proposal)
        return proposal
