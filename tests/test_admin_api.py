from sqlalchemy import select

from cedo.models import AuditLog, Notification, NotificationTargetType, ProposalStatusType
from tests.conftest import OWNER_ID, admin_headers, auth_headers, make_proposal


def test_bulk_deny_writes_audit_and_owner_notification(client, db_session, channel):
    make_proposal(db_session, id=5, proposal_status=ProposalStatusType.PENDING)

    response = client.patch(
        "/api/admin/proposals/bulk-status",
        json={"ids": [5], "status": "denied", "adminComments": "missing budget"},
        headers=admin_headers(),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["updatedCount"] == 1
    assert body["failedCount"] == 0
    assert body["results"][0] == {
        "id": 5,
        "success": True,
        "previousStatus": "pending",
        "newStatus": "denied",
        "error": None,
        "message": None,
    }

    audit = db_session.execute(
        select(AuditLog).where(AuditLog.record_id == 5, AuditLog.action_type == "status_denied")
    ).scalars().all()
    assert len(audit) == 1
    assert audit[0].note == "missing budget"

    owner_rows = db_session.execute(
        select(Notification).where(
            Notification.target_type == NotificationTargetType.USER,
            Notification.target_user_id == OWNER_ID,
        )
    ).scalars().all()
    assert len(owner_rows) == 1
    assert owner_rows[0].related_proposal_id == 5
    assert "missing budget" in owner_rows[0].message
    assert channel.sent[0][1] == "proposal-denied"


def test_bulk_reports_bad_ids_without_failing_the_batch(client, db_session):
    good = make_proposal(db_session, proposal_status=ProposalStatusType.PENDING)
    approved = make_proposal(db_session, proposal_status=ProposalStatusType.APPROVED)

    response = client.patch(
        "/api/admin/proposals/bulk-status",
        json={
            "ids": [good.id, approved.id, 9999, "3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b"],
            "status": "approved",
        },
        headers=admin_headers(),
    )

    body = response.json()
    assert response.status_code == 200
    assert body["updatedCount"] == 1
    assert body["failedCount"] == 3
    errors = [r["error"] for r in body["results"]]
    assert errors == [None, "InvalidTransitionError", "NotFoundError", "IdentifierFormatError"]


def test_bulk_requires_admin(client, db_session):
    make_proposal(db_session, proposal_status=ProposalStatusType.PENDING)
    response = client.patch(
        "/api/admin/proposals/bulk-status",
        json={"ids": [1], "status": "approved"},
        headers=auth_headers(),
    )
    assert response.status_code == 403


def test_single_status_update_by_public_id(client, db_session):
    proposal = make_proposal(db_session, proposal_status=ProposalStatusType.PENDING)

    response = client.patch(
        f"/api/admin/proposals/{proposal.uuid}/status",
        json={"status": "revision_requested", "adminComments": "add a budget table"},
        headers=admin_headers(),
    )

    assert response.status_code == 200
    assert response.json()["previousStatus"] == "pending"
    assert response.json()["newStatus"] == "revision_requested"
    assert response.json()["autoPromoted"] is False


def test_invalid_transition_is_409(client, db_session):
    proposal = make_proposal(db_session, proposal_status=ProposalStatusType.DENIED)

    response = client.patch(
        f"/api/admin/proposals/{proposal.id}/status",
        json={"status": "approved"},
        headers=admin_headers(),
    )

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "InvalidTransitionError"
    assert body["currentStatus"] == "denied"
    assert body["event"] == "admin_approve"


def test_admin_comment_is_audited(client, db_session):
    proposal = make_proposal(db_session, proposal_status=ProposalStatusType.PENDING)

    response = client.post(
        f"/api/admin/proposals/{proposal.id}/comment",
        json={"comment": "please attach the venue permit"},
        headers=admin_headers(),
    )

    assert response.status_code == 200
    assert response.json()["adminComments"] == "please attach the venue permit"
    audit = client.get(f"/api/admin/proposals/{proposal.id}/audit", headers=admin_headers()).json()
    assert [e["actionType"] for e in audit] == ["admin_comment_added"]
    assert audit[0]["note"] == "please attach the venue permit"
    assert audit[0]["recordId"] == proposal.id


def test_audit_route_lists_most_recent_first(client, db_session):
    proposal = make_proposal(db_session, proposal_status=ProposalStatusType.PENDING)
    headers = admin_headers()
    client.post(f"/api/admin/proposals/{proposal.id}/comment", json={"comment": "first"}, headers=headers)
    client.patch(
        f"/api/admin/proposals/{proposal.id}/status",
        json={"status": "approved"},
        headers=headers,
    )

    audit = client.get(f"/api/admin/proposals/{proposal.id}/audit", headers=headers).json()

    assert [e["actionType"] for e in audit] == ["status_approved", "admin_comment_added"]


def test_audit_route_rejects_public_ids(client, db_session):
    proposal = make_proposal(db_session)

    response = client.get(f"/api/admin/proposals/{proposal.uuid}/audit", headers=admin_headers())

    assert response.status_code == 400
    assert response.json()["error"] == "IdentifierFormatError"
