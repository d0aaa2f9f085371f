from sqlalchemy import select

from cedo.dependencies.services import get_deadline
from cedo.models import AuditLog, Proposal, ProposalStatusType
from cedo.utils.deadline import Deadline
from main import app
from tests.conftest import (
    OTHER_USER_ID, OWNER_ID, VALID_EVENT_DETAILS, admin_headers, auth_headers, make_proposal,
)


def _submitted_draft(client, headers) -> str:
    draft_id = client.post("/api/proposals/drafts", json={}, headers=headers).json()["draftId"]
    client.patch(
        f"/api/proposals/drafts/{draft_id}/overview",
        json={
            "organizationName": "Green Club",
            "contactName": "Ana Cruz",
            "contactEmail": "ana@example.com",
            "eventName": "Tree Planting",
        },
        headers=headers,
    )
    client.post(f"/api/proposals/drafts/{draft_id}/submit", headers=headers)
    return draft_id


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_proposal_from_submitted_draft(client, db_session):
    headers = auth_headers()
    draft_id = _submitted_draft(client, headers)

    response = client.post(f"/api/proposals/drafts/{draft_id}/proposal", headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["userId"] == OWNER_ID
    assert body["proposalStatus"] == "draft"
    assert body["organizationName"] == "Green Club"
    assert body["eventName"] == "Tree Planting"
    # the draft is consumed
    assert client.get(f"/api/proposals/drafts/{draft_id}", headers=headers).status_code == 404

    audit = db_session.execute(
        select(AuditLog).where(AuditLog.record_id == body["id"])
    ).scalars().all()
    assert [a.action_type for a in audit] == ["proposal_created"]


def test_unsubmitted_draft_cannot_become_a_proposal(client):
    headers = auth_headers()
    draft_id = client.post("/api/proposals/drafts", json={}, headers=headers).json()["draftId"]

    response = client.post(f"/api/proposals/drafts/{draft_id}/proposal", headers=headers)

    assert response.status_code == 400


def test_get_by_public_or_surrogate_id(client, db_session):
    proposal = make_proposal(db_session)
    headers = auth_headers()

    by_public = client.get(f"/api/proposals/{proposal.uuid}", headers=headers)
    by_surrogate = client.get(f"/api/proposals/{proposal.id}", headers=headers)

    assert by_public.status_code == 200
    assert by_public.json() == by_surrogate.json()
    assert by_public.json()["uuid"] == str(proposal.uuid)


def test_get_is_owner_or_admin_only(client, db_session):
    proposal = make_proposal(db_session)

    assert client.get(f"/api/proposals/{proposal.id}", headers=auth_headers(OTHER_USER_ID)).status_code == 403
    assert client.get(f"/api/proposals/{proposal.id}", headers=admin_headers()).status_code == 200


def test_malformed_identifier_is_400(client):
    response = client.get("/api/proposals/not-an-id", headers=auth_headers())
    assert response.status_code == 400
    assert response.json()["error"] == "IdentifierFormatError"


def test_save_event_details_promotes_draft(client, db_session):
    proposal = make_proposal(db_session)

    response = client.post(
        f"/api/proposals/{proposal.uuid}/sections/event-details",
        json={
            "venue": "Main Gym",
            "startDate": "2025-03-01",
            "endDate": "2025-03-02",
            "eventMode": "hybrid",
            "targetAudience": ["students", "faculty"],
        },
        headers=auth_headers(),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["previousStatus"] == "draft"
    assert body["newStatus"] == "pending"
    assert body["autoPromoted"] is True
    assert body["proposal"]["eventVenue"] == "Main Gym"
    assert body["proposal"]["eventStartDate"] == "2025-03-01"
    assert body["proposal"]["targetAudience"] == ["students", "faculty"]

    again = client.post(
        f"/api/proposals/{proposal.id}/sections/event-details",
        json={"venue": "Main Gym", "startDate": "2025-03-01", "endDate": "2025-03-02"},
        headers=auth_headers(),
    ).json()
    assert (again["previousStatus"], again["newStatus"], again["autoPromoted"]) == (
        "pending", "pending", False
    )


def test_save_event_details_missing_venue_is_400(client, db_session):
    proposal = make_proposal(db_session)

    response = client.post(
        f"/api/proposals/{proposal.id}/sections/event-details",
        json={"startDate": "2025-03-01", "endDate": "2025-03-02"},
        headers=auth_headers(),
    )

    assert response.status_code == 400
    assert "venue is required" in response.json()["detail"]


def test_expired_deadline_is_504_and_nothing_is_written(client, db_session):
    proposal = make_proposal(db_session)
    app.dependency_overrides[get_deadline] = lambda: Deadline(0)

    response = client.post(
        f"/api/proposals/{proposal.id}/sections/event-details",
        json={"venue": "Main Gym", "startDate": "2025-03-01", "endDate": "2025-03-02"},
        headers=auth_headers(),
    )

    assert response.status_code == 504
    db_session.expire_all()
    assert db_session.get(Proposal, proposal.id).proposal_status == ProposalStatusType.DRAFT


def test_files_are_stored_verbatim_per_slot(client, db_session):
    proposal = make_proposal(db_session)
    meta = {"name": "budget.pdf", "size": 2048, "mimeType": "application/pdf", "path": "proposals/1/budget.pdf"}

    response = client.put(
        f"/api/proposals/{proposal.uuid}/files",
        json={"files": {"budget": meta}},
        headers=auth_headers(),
    )

    assert response.status_code == 200
    assert response.json()["files"] == {"budget": meta}

    other = client.put(
        f"/api/proposals/{proposal.id}/files",
        json={"files": {"budget": meta}},
        headers=auth_headers(OTHER_USER_ID),
    )
    assert other.status_code == 403


def test_report_flow(client, db_session):
    proposal = make_proposal(db_session, proposal_status=ProposalStatusType.APPROVED)
    report_file = {"name": "report.pdf", "size": 10, "mimeType": "application/pdf", "path": "r/report.pdf"}

    submitted = client.post(
        f"/api/proposals/{proposal.uuid}/report",
        json={
            "reportDescription": "Planted 300 trees",
            "attendanceCount": 85,
            "eventOutcome": "completed",
            "accomplishmentReportFile": report_file,
        },
        headers=auth_headers(),
    )
    assert submitted.status_code == 200
    body = submitted.json()
    assert (body["previousStatus"], body["newStatus"]) == ("draft", "pending")
    assert body["proposal"]["reportStatus"] == "pending"
    assert body["proposal"]["files"]["accomplishment_report"] == report_file

    reviewed = client.patch(
        f"/api/admin/proposals/{proposal.id}/report-status",
        json={"status": "approved"},
        headers=admin_headers(),
    )
    assert reviewed.json()["newStatus"] == "approved"


def test_report_before_approval_is_409(client, db_session):
    proposal = make_proposal(db_session, proposal_status=ProposalStatusType.PENDING)

    response = client.post(
        f"/api/proposals/{proposal.id}/report",
        json={"reportDescription": "too early"},
        headers=auth_headers(),
    )

    assert response.status_code == 409
