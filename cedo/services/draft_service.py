import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from cedo.exceptions import NotFoundError, ValidationError
from cedo.models.proposal import EventTypeChoice
from cedo.repositories.draft_repository import DraftRepository
from cedo.services.identifier_resolver import (
    IdentifierKind, PUBLIC_ID_PATTERN, classify, infer_event_type
)
from cedo.utils.security import utcnow

logger = logging.getLogger(__name__)

EVENT_TYPES = tuple(choice.value for choice in EventTypeChoice)

DRAFT = "draft"
SUBMITTED = "submitted"

# keys only the service writes
MANAGED_KEYS = frozenset({"draftId", "status", "createdAt", "updatedAt", "submittedAt"})


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _next_timestamp(previous: str | None) -> str:
    """updatedAt is strictly increasing per draft, even within one clock tick"""
    now = utcnow()
    last = _parse_ts(previous)
    if last is not None and now <= last:
        now = last + timedelta(microseconds=1)
    return now.isoformat()


def validate_event_type(event_type: str | None) -> str:
    if event_type not in EVENT_TYPES:
        raise ValidationError(
            message="Invalid event type",
            detail=f'Event type must be one of {", ".join(EVENT_TYPES)}; got {event_type!r}'
        )
    return event_type


class DraftService:
    """
    Pre-submission working copies of proposals

    Drafts are plain JSON documents:
        {draftId, formData, status, createdAt, updatedAt,
         submittedAt?, originalLegacyLabel?}
    """

    def __init__(self, draft_repo: DraftRepository):
        self.draft_repo = draft_repo

    def _new_draft(
        self,
        event_type: str,
        current_section: str = "overview",
        original_legacy_label: str | None = None,
    ) -> dict:
        draft_id = str(uuid4())
        now = utcnow().isoformat()
        draft = {
            "draftId": draft_id,
            "formData": {
                "proposalStatus": DRAFT,
                "organizationType": event_type,
                "eventType": event_type,
                "selectedEventType": event_type,
                "currentSection": current_section,
            },
            "status": DRAFT,
            "createdAt": now,
            "updatedAt": now,
            "submittedAt": None,
            "originalLegacyLabel": original_legacy_label,
        }
        self.draft_repo.put(draft_id, draft)
        return draft

    def _migrate_legacy(self, label: str, current_section: str) -> dict:
        """
        Synthesize a draft for a legacy label under a fresh public id.

        No label -> id mapping is kept, so migrating the same label twice
        yields two distinct drafts.
        """
        event_type = infer_event_type(label)
        draft = self._new_draft(
            event_type,
            current_section=current_section,
            original_legacy_label=label,
        )
        logger.info(
            "Migrated legacy draft label %r to %s (eventType=%s)",
            label, draft["draftId"], event_type
        )
        return draft

    def _load(self, draft_id: str, current_section: str = "overview") -> tuple[dict, str | None]:
        """
        Returns (draft, migrated_from)
        - existing draft: (draft, None)
        - unknown legacy label: freshly migrated draft, (draft, label)
        - anything else unknown: NotFoundError
        """
        draft = self.draft_repo.get(draft_id)
        if draft is not None:
            return draft, None

        kind = classify(draft_id)
        if kind == IdentifierKind.LEGACY_LABEL:
            return self._migrate_legacy(draft_id, current_section), draft_id

        if kind == IdentifierKind.PUBLIC_ID:
            detail = "Draft not found"
        else:
            detail = "Invalid draft id format. Expected a public id or a legacy event label."
        raise NotFoundError(message="Draft not found", detail=f"{detail} ({draft_id})")

    def create(self, event_type: str | None = None, original_legacy_label: str | None = None) -> dict:
        event_type = validate_event_type(event_type or EventTypeChoice.SCHOOL_BASED.value)
        draft = self._new_draft(event_type, original_legacy_label=original_legacy_label)
        logger.info("Draft created: %s (eventType=%s)", draft["draftId"], event_type)
        return draft

    def get(self, draft_id: str) -> tuple[dict, str | None]:
        return self._load(draft_id)

    def patch_section(self, draft_id: str, section: str, payload: Any) -> dict:
        if not section or not section.strip():
            raise ValidationError(message="Section name is required")

        draft, _ = self._load(draft_id, current_section=section)
        draft["formData"][section] = payload
        draft["formData"]["currentSection"] = section
        draft["updatedAt"] = _next_timestamp(draft["updatedAt"])
        # a migrated draft lives under its generated id only
        self.draft_repo.put(draft["draftId"], draft)
        logger.debug("Draft section updated: %s/%s", draft["draftId"], section)
        return draft

    def update(self, draft_id: str, changes: dict[str, Any]) -> dict:
        """
        Merge top-level keys into an existing draft.

        formData, when given, replaces the stored one. Bookkeeping keys
        (id, timestamps, status) are ignored; submission goes through submit().
        Unknown ids are not migrated.
        """
        draft = self.draft_repo.get(draft_id)
        if draft is None:
            raise NotFoundError(message="Draft not found", detail=f"No draft {draft_id} to update")
        if "formData" in changes and not isinstance(changes["formData"], dict):
            raise ValidationError(
                message="Invalid draft",
                detail="formData must be an object"
            )

        ignored = sorted(MANAGED_KEYS.intersection(changes))
        if ignored:
            logger.debug("Ignoring managed draft keys %s on %s", ignored, draft_id)
        draft.update({k: v for k, v in changes.items() if k not in MANAGED_KEYS})
        draft["updatedAt"] = _next_timestamp(draft["updatedAt"])
        self.draft_repo.put(draft_id, draft)
        logger.info("Draft updated: %s", draft_id)
        return draft

    def set_event_type(self, draft_id: str, event_type: str) -> dict:
        event_type = validate_event_type(event_type)
        draft, _ = self._load(draft_id, current_section="event-type")
        form = draft["formData"]
        form["eventType"] = event_type
        form["selectedEventType"] = event_type
        form["organizationType"] = event_type
        draft["updatedAt"] = _next_timestamp(draft["updatedAt"])
        self.draft_repo.put(draft["draftId"], draft)
        return draft

    def submit(self, draft_id: str) -> dict:
        draft = self.draft_repo.get(draft_id)
        if draft is None:
            raise NotFoundError(message="Draft not found", detail=f"No draft {draft_id} to submit")

        draft["status"] = SUBMITTED
        draft["submittedAt"] = utcnow().isoformat()
        draft["updatedAt"] = _next_timestamp(draft["updatedAt"])
        self.draft_repo.put(draft_id, draft)
        logger.info("Draft submitted: %s", draft_id)
        return draft

    def delete(self, draft_id: str) -> None:
        if not self.draft_repo.delete(draft_id):
            raise NotFoundError(message="Draft not found", detail=f"No draft {draft_id} to delete")
        logger.info("Draft deleted: %s", draft_id)

    def list(self) -> dict:
        drafts = sorted(self.draft_repo.iter_all(), key=lambda d: d.get("createdAt") or "")
        uuid_count = sum(1 for d in drafts if PUBLIC_ID_PATTERN.match(d.get("draftId", "")))
        return {
            "drafts": drafts,
            "count": len(drafts),
            "uuidCount": uuid_count,
            "descriptiveCount": len(drafts) - uuid_count,
        }

    def require_submitted(self, draft_id: str) -> dict:
        """Draft that may be turned into a Proposal"""
        draft = self.draft_repo.get(draft_id)
        if draft is None:
            raise NotFoundError(message="Draft not found", detail=f"No draft {draft_id}")
        if draft.get("status") != SUBMITTED:
            raise ValidationError(
                message="Draft is not submitted",
                detail=f"Draft {draft_id} must be submitted before a proposal is created"
            )
        return draft
