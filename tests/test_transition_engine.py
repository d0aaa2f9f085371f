import pytest
from sqlalchemy import select, update

from cedo.exceptions import (
    ConflictError, IdentifierFormatError, InvalidTransitionError, ValidationError,
)
from cedo.models import (
    AuditLog, Notification, OutboxEvent, OutboxStatusType, Proposal,
    ProposalStatusType, ReportStatusType,
)
from cedo.repositories.outbox_repository import OutboxRepository
from cedo.repositories.proposal_repository import ProposalRepository
from cedo.services.transition_engine import TransitionEngine, TransitionEvent
from cedo.utils.transaction import transaction
from tests.conftest import ADMIN, OWNER, VALID_EVENT_DETAILS, make_proposal


def _audit_actions(db, proposal_id):
    rows = db.execute(
        select(AuditLog.action_type).where(AuditLog.record_id == proposal_id)
    ).scalars().all()
    return sorted(rows)


class TestEventDetailsAutoPromotion:
    def test_draft_is_promoted_to_pending(self, db_session, proposal_service, channel):
        proposal = make_proposal(db_session)

        result, saved = proposal_service.save_event_details(
            str(proposal.uuid), dict(VALID_EVENT_DETAILS), OWNER
        )

        assert (result.previous_status, result.new_status, result.auto_promoted) == (
            "draft", "pending", True
        )
        assert saved.proposal_status == ProposalStatusType.PENDING
        assert saved.event_venue == "Main Gym"
        assert saved.submitted_at is not None
        assert saved.version == 2

        assert _audit_actions(db_session, proposal.id) == ["event_details_updated", "status_pending"]
        titles = sorted(
            n.title for n in db_session.execute(select(Notification)).scalars().all()
        )
        assert titles == ["New Proposal Submitted", "Proposal Submitted"]
        assert [(to, template) for to, template, _ in channel.sent] == [
            ("ana@example.com", "proposal-submitted")
        ]
        statuses = db_session.execute(select(OutboxEvent.status)).scalars().all()
        assert set(statuses) == {OutboxStatusType.DONE}

    def test_repeated_save_while_pending_is_not_promoted(self, db_session, proposal_service):
        proposal = make_proposal(db_session)
        proposal_service.save_event_details(str(proposal.id), dict(VALID_EVENT_DETAILS), OWNER)

        result, saved = proposal_service.save_event_details(
            str(proposal.id), {**VALID_EVENT_DETAILS, "venue": "Hall B"}, OWNER
        )

        assert (result.previous_status, result.new_status, result.auto_promoted) == (
            "pending", "pending", False
        )
        assert saved.event_venue == "Hall B"
        assert _audit_actions(db_session, proposal.id).count("status_pending") == 1

    @pytest.mark.parametrize("status", [
        ProposalStatusType.DENIED, ProposalStatusType.REVISION_REQUESTED,
    ])
    def test_owner_resubmit_returns_to_pending(self, db_session, proposal_service, status):
        proposal = make_proposal(db_session, proposal_status=status)

        result, _ = proposal_service.save_event_details(
            str(proposal.uuid), dict(VALID_EVENT_DETAILS), OWNER
        )

        assert (result.previous_status, result.new_status) == (status.value, "pending")
        assert result.auto_promoted is True
        titles = {n.title for n in db_session.execute(select(Notification)).scalars().all()}
        assert titles == {"Proposal Resubmitted"}

    def test_approved_proposal_is_locked(self, db_session, proposal_service):
        proposal = make_proposal(db_session, proposal_status=ProposalStatusType.APPROVED)
        with pytest.raises(InvalidTransitionError):
            proposal_service.save_event_details(str(proposal.id), dict(VALID_EVENT_DETAILS), OWNER)

    @pytest.mark.parametrize("payload", [
        {"start_date": "2025-03-01", "end_date": "2025-03-02"},
        {"venue": "Gym", "end_date": "2025-03-02"},
        {"venue": "Gym", "start_date": "2025-03-05", "end_date": "2025-03-02"},
        {"venue": "Gym", "start_date": "03/01/2025", "end_date": "2025-03-02"},
    ])
    def test_invalid_event_details_leave_status_untouched(self, db_session, proposal_service, payload):
        proposal = make_proposal(db_session)
        with pytest.raises(ValidationError):
            proposal_service.save_event_details(str(proposal.id), payload, OWNER)

        db_session.expire_all()
        assert db_session.get(Proposal, proposal.id).proposal_status == ProposalStatusType.DRAFT


class TestAdminTransitions:
    def test_denied_to_approved_is_invalid(self, db_session, proposal_service):
        proposal = make_proposal(db_session, proposal_status=ProposalStatusType.DENIED)

        with pytest.raises(InvalidTransitionError) as exc_info:
            proposal_service.update_status(str(proposal.id), "approved", ADMIN)

        assert exc_info.value.current_status == "denied"
        db_session.expire_all()
        assert db_session.get(Proposal, proposal.id).proposal_status == ProposalStatusType.DENIED
        assert db_session.execute(select(OutboxEvent)).scalars().all() == []

    def test_rejected_is_an_alias_for_denied(self, db_session, proposal_service):
        proposal = make_proposal(db_session, proposal_status=ProposalStatusType.PENDING)

        result = proposal_service.update_status(str(proposal.id), "rejected", ADMIN, "too vague")

        assert result.new_status == "denied"
        db_session.expire_all()
        stored = db_session.get(Proposal, proposal.id)
        assert stored.admin_comments == "too vague"
        assert stored.reviewed_by_admin_id == ADMIN.user_id

    def test_unknown_status_is_a_validation_error(self, db_session, proposal_service):
        proposal = make_proposal(db_session, proposal_status=ProposalStatusType.PENDING)
        with pytest.raises(ValidationError):
            proposal_service.update_status(str(proposal.id), "draft", ADMIN)

    def test_approve_sets_approved_at(self, db_session, proposal_service):
        proposal = make_proposal(db_session, proposal_status=ProposalStatusType.PENDING)

        proposal_service.update_status(str(proposal.uuid), "approved", ADMIN)

        db_session.expire_all()
        assert db_session.get(Proposal, proposal.id).approved_at is not None
        assert _audit_actions(db_session, proposal.id) == ["status_approved"]


class TestCompareAndSwap:
    def test_stale_version_raises_conflict(self, db_session, session_factory):
        proposal = make_proposal(db_session, proposal_status=ProposalStatusType.PENDING)
        engine = TransitionEngine(ProposalRepository(db_session), OutboxRepository(db_session))

        with session_factory() as other:
            other.execute(
                update(Proposal)
                .where(Proposal.id == proposal.id)
                .values(version=Proposal.version + 1)
            )
            other.commit()

        # db_session still holds version 1 in its identity map
        with pytest.raises(ConflictError):
            with transaction(db_session):
                engine.apply_transition(proposal.id, TransitionEvent.ADMIN_APPROVE, ADMIN)

        db_session.expire_all()
        assert db_session.get(Proposal, proposal.id).proposal_status == ProposalStatusType.PENDING
        assert db_session.execute(select(OutboxEvent)).scalars().all() == []

    def test_engine_rejects_public_ids(self, db_session):
        proposal = make_proposal(db_session)
        engine = TransitionEngine(ProposalRepository(db_session), OutboxRepository(db_session))
        with pytest.raises(IdentifierFormatError):
            engine.apply_transition(
                str(proposal.uuid), TransitionEvent.EVENT_DETAILS_COMPLETED, OWNER
            )


class TestReportMachine:
    REPORT = {"report_description": "Went well", "attendance_count": 120, "event_outcome": "completed"}

    def test_report_requires_approved_proposal(self, db_session, proposal_service):
        proposal = make_proposal(db_session, proposal_status=ProposalStatusType.PENDING)
        with pytest.raises(InvalidTransitionError):
            proposal_service.submit_report(str(proposal.id), dict(self.REPORT), OWNER)

    def test_submit_review_and_resubmit(self, db_session, proposal_service):
        proposal = make_proposal(db_session, proposal_status=ProposalStatusType.APPROVED)

        submitted, saved = proposal_service.submit_report(str(proposal.id), dict(self.REPORT), OWNER)
        assert (submitted.previous_status, submitted.new_status) == ("draft", "pending")
        assert submitted.auto_promoted is False
        assert saved.attendance_count == 120

        denied = proposal_service.review_report(str(proposal.id), "rejected", ADMIN, "add photos")
        assert denied.new_status == "denied"

        resubmitted, saved = proposal_service.submit_report(str(proposal.id), dict(self.REPORT), OWNER)
        assert (resubmitted.previous_status, resubmitted.new_status) == ("denied", "pending")

        approved = proposal_service.review_report(str(proposal.id), "approved", ADMIN)
        assert approved.new_status == "approved"

        db_session.expire_all()
        stored = db_session.get(Proposal, proposal.id)
        assert stored.report_status == ReportStatusType.APPROVED
        assert stored.proposal_status == ProposalStatusType.APPROVED
        assert stored.report_admin_comments == "add photos"
        assert "report_status_denied" in _audit_actions(db_session, proposal.id)

    def test_approving_a_draft_report_is_invalid(self, db_session, proposal_service):
        proposal = make_proposal(db_session, proposal_status=ProposalStatusType.APPROVED)
        with pytest.raises(InvalidTransitionError):
            proposal_service.review_report(str(proposal.id), "approved", ADMIN)

    @pytest.mark.parametrize("payload", [
        {"attendance_count": 3},
        {"report_description": "ok", "attendance_count": -1},
        {"report_description": "ok", "event_outcome": "exploded"},
    ])
    def test_invalid_report_payload(self, db_session, proposal_service, payload):
        proposal = make_proposal(db_session, proposal_status=ProposalStatusType.APPROVED)
        with pytest.raises(ValidationError):
            proposal_service.submit_report(str(proposal.id), payload, OWNER)
