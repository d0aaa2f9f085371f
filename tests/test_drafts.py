from datetime import datetime

import pytest

from cedo.exceptions import NotFoundError, ValidationError
from cedo.repositories.draft_repository import DraftRepository
from cedo.services.identifier_resolver import PUBLIC_ID_PATTERN
from tests.conftest import auth_headers


class TestDraftService:
    def test_create_defaults_to_school_based(self, draft_service):
        draft = draft_service.create()

        assert PUBLIC_ID_PATTERN.match(draft["draftId"])
        assert draft["status"] == "draft"
        assert draft["formData"]["eventType"] == "school-based"
        assert draft["formData"]["proposalStatus"] == "draft"

    def test_create_rejects_unknown_event_type(self, draft_service):
        with pytest.raises(ValidationError):
            draft_service.create("festival")

    def test_draft_is_stored_with_ttl(self, draft_service, redis_client):
        draft = draft_service.create()
        assert redis_client.ttl(f"{DraftRepository.KEY_PREFIX}{draft['draftId']}") > 0

    def test_patch_section_stores_payload_and_bumps_updated_at(self, draft_service):
        draft = draft_service.create()
        before = draft["updatedAt"]

        patched = draft_service.patch_section(draft["draftId"], "overview", {"title": "X"})

        assert patched["draftId"] == draft["draftId"]
        assert patched["formData"]["overview"] == {"title": "X"}
        assert patched["formData"]["currentSection"] == "overview"
        assert datetime.fromisoformat(patched["updatedAt"]) > datetime.fromisoformat(before)

    def test_updated_at_strictly_increases(self, draft_service):
        draft = draft_service.create()
        stamps = [
            draft_service.patch_section(draft["draftId"], "overview", {"n": n})["updatedAt"]
            for n in range(5)
        ]
        parsed = [datetime.fromisoformat(s) for s in stamps]
        assert parsed == sorted(set(parsed))

    def test_update_replaces_form_data_and_keeps_bookkeeping(self, draft_service):
        draft = draft_service.create()

        updated = draft_service.update(draft["draftId"], {
            "formData": {"eventType": "community-based", "overview": {"title": "Y"}},
            "status": "submitted",
            "draftId": "something-else",
            "notes": "call the venue",
        })

        assert updated["draftId"] == draft["draftId"]
        assert updated["status"] == "draft"
        assert updated["createdAt"] == draft["createdAt"]
        assert updated["formData"] == {"eventType": "community-based", "overview": {"title": "Y"}}
        assert updated["notes"] == "call the venue"
        assert draft_service.get(draft["draftId"])[0] == updated

    def test_update_rejects_unknown_draft_and_bad_form_data(self, draft_service):
        with pytest.raises(NotFoundError):
            draft_service.update("school-event-42", {"notes": "x"})
        draft = draft_service.create()
        with pytest.raises(ValidationError):
            draft_service.update(draft["draftId"], {"formData": ["not", "an", "object"]})

    def test_legacy_label_is_migrated_on_patch(self, draft_service):
        draft = draft_service.patch_section("school-event-42", "overview", {"title": "X"})

        assert PUBLIC_ID_PATTERN.match(draft["draftId"])
        assert draft["originalLegacyLabel"] == "school-event-42"
        assert draft["formData"]["eventType"] == "school-based"
        assert draft["formData"]["overview"] == {"title": "X"}
        # only the generated id is addressable afterwards
        fetched, migrated_from = draft_service.get(draft["draftId"])
        assert migrated_from is None
        assert fetched["formData"]["overview"] == {"title": "X"}

    def test_legacy_migration_is_not_idempotent(self, draft_service):
        first, _ = draft_service.get("community-event-7")
        second, _ = draft_service.get("community-event-7")

        assert first["draftId"] != second["draftId"]
        assert first["formData"]["eventType"] == "community-based"
        assert draft_service.list()["count"] == 2

    def test_unknown_public_id_is_not_found(self, draft_service):
        with pytest.raises(NotFoundError):
            draft_service.get("3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b")

    def test_malformed_id_is_not_found(self, draft_service):
        with pytest.raises(NotFoundError):
            draft_service.get("hello")

    def test_submit_and_delete_unknown_draft(self, draft_service):
        with pytest.raises(NotFoundError):
            draft_service.submit("3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b")
        with pytest.raises(NotFoundError):
            draft_service.delete("3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b")

    def test_set_event_type(self, draft_service):
        draft = draft_service.create()
        updated = draft_service.set_event_type(draft["draftId"], "community-based")

        assert updated["formData"]["eventType"] == "community-based"
        assert updated["formData"]["selectedEventType"] == "community-based"
        with pytest.raises(ValidationError):
            draft_service.set_event_type(draft["draftId"], "party")

    def test_list_counts_identifier_kinds(self, draft_service):
        draft_service.create()
        draft_service.create("community-based")

        listing = draft_service.list()

        assert listing["count"] == 2
        assert listing["uuidCount"] == 2
        assert listing["descriptiveCount"] == 0

    def test_require_submitted(self, draft_service):
        draft = draft_service.create()
        with pytest.raises(ValidationError):
            draft_service.require_submitted(draft["draftId"])

        draft_service.submit(draft["draftId"])
        assert draft_service.require_submitted(draft["draftId"])["status"] == "submitted"


class TestDraftApi:
    def test_requires_authentication(self, client):
        assert client.post("/api/proposals/drafts", json={}).status_code == 401

    def test_create_then_patch_overview(self, client):
        headers = auth_headers()
        created = client.post("/api/proposals/drafts", json={}, headers=headers)
        assert created.status_code == 200
        body = created.json()
        assert body["success"] is True
        assert body["eventType"] == "school-based"
        draft_id = body["draftId"]

        patched = client.patch(
            f"/api/proposals/drafts/{draft_id}/overview",
            json={"title": "X"},
            headers=headers,
        )
        assert patched.status_code == 200
        draft = patched.json()["draft"]
        assert draft["draftId"] == draft_id
        assert draft["formData"]["overview"] == {"title": "X"}

    def test_whole_draft_update(self, client):
        headers = auth_headers()
        draft_id = client.post("/api/proposals/drafts", json={}, headers=headers).json()["draftId"]

        updated = client.patch(
            f"/api/proposals/drafts/{draft_id}",
            json={"formData": {"overview": {"title": "Z"}}},
            headers=headers,
        )
        missing = client.patch(
            "/api/proposals/drafts/3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b",
            json={"formData": {}},
            headers=headers,
        )

        assert updated.status_code == 200
        assert updated.json()["draft"]["formData"] == {"overview": {"title": "Z"}}
        assert missing.status_code == 404

    def test_legacy_label_get_reports_migration(self, client):
        response = client.get("/api/proposals/drafts/school-event-42", headers=auth_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["migratedFrom"] == "school-event-42"
        assert body["originalLegacyLabel"] == "school-event-42"
        assert body["formData"]["eventType"] == "school-based"
        assert PUBLIC_ID_PATTERN.match(body["draftId"])

    def test_unknown_and_malformed_ids_are_404(self, client):
        headers = auth_headers()
        missing = client.get(
            "/api/proposals/drafts/3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b", headers=headers
        )
        malformed = client.get("/api/proposals/drafts/hello", headers=headers)

        assert missing.status_code == 404
        assert malformed.status_code == 404
        assert malformed.json()["error"] == "NotFoundError"

    def test_event_type_submit_and_delete(self, client):
        headers = auth_headers()
        draft_id = client.post("/api/proposals/drafts", json={}, headers=headers).json()["draftId"]

        typed = client.post(
            f"/api/proposals/drafts/{draft_id}/event-type",
            json={"eventType": "community-based"},
            headers=headers,
        )
        assert typed.json()["eventType"] == "community-based"

        bad = client.post(
            f"/api/proposals/drafts/{draft_id}/event-type",
            json={"eventType": "party"},
            headers=headers,
        )
        assert bad.status_code == 400

        submitted = client.post(f"/api/proposals/drafts/{draft_id}/submit", headers=headers)
        assert submitted.json()["draft"]["status"] == "submitted"
        assert submitted.json()["draft"]["submittedAt"] is not None

        assert client.delete(f"/api/proposals/drafts/{draft_id}", headers=headers).status_code == 200
        assert client.delete(f"/api/proposals/drafts/{draft_id}", headers=headers).status_code == 404

    def test_list_drafts(self, client):
        headers = auth_headers()
        client.post("/api/proposals/drafts", json={}, headers=headers)
        client.get("/api/proposals/drafts/community-event-1", headers=headers)

        listing = client.get("/api/proposals/drafts", headers=headers).json()

        assert listing["count"] == 2
        assert listing["uuidCount"] == 2
        assert listing["descriptiveCount"] == 0
