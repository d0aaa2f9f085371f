from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from cedo.exceptions import IdentifierFormatError, NotFoundError
from cedo.models import AuditLog
from cedo.repositories.audit_repository import AuditRepository
from cedo.repositories.proposal_repository import ProposalRepository
from cedo.services.audit_service import AuditLogWriter
from cedo.services.identifier_resolver import (
    IdentifierKind,
    IdentifierResolver,
    LegacyLabel,
    PublicId,
    SurrogateId,
    classify,
    infer_event_type,
    parse,
    require_surrogate,
)
from tests.conftest import make_proposal


PUBLIC = "3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b"


@pytest.mark.parametrize("token, kind", [
    (PUBLIC, IdentifierKind.PUBLIC_ID),
    (PUBLIC.upper(), IdentifierKind.PUBLIC_ID),
    ("42", IdentifierKind.SURROGATE_ID),
    ("school-event-42", IdentifierKind.LEGACY_LABEL),
    ("community-event-7", IdentifierKind.LEGACY_LABEL),
    ("hello", IdentifierKind.MALFORMED),
    ("", IdentifierKind.MALFORMED),
])
def test_classify(token, kind):
    assert classify(token) == kind


def test_parse_returns_typed_identifiers():
    assert parse(PUBLIC) == PublicId(UUID(PUBLIC))
    assert parse("7") == SurrogateId(7)
    assert parse("school-event-42") == LegacyLabel("school-event-42")


@pytest.mark.parametrize("token", ["0", "hello", "12ab"])
def test_parse_rejects_malformed_tokens(token):
    with pytest.raises(IdentifierFormatError):
        parse(token)


@pytest.mark.parametrize("value, expected", [
    (5, 5),
    ("5", 5),
    (SurrogateId(9), 9),
])
def test_require_surrogate_accepts_positive_integers(value, expected):
    assert require_surrogate(value) == expected


@pytest.mark.parametrize("value", [
    0, -3, True, PUBLIC, UUID(PUBLIC), PublicId(UUID(PUBLIC)), "school-event-42", 1.5,
])
def test_require_surrogate_rejects_everything_else(value):
    with pytest.raises(IdentifierFormatError):
        require_surrogate(value)


def test_infer_event_type_from_label():
    assert infer_event_type("school-event-42") == "school-based"
    assert infer_event_type("community-event-7") == "community-based"
    assert infer_event_type("outreach-event") == "community-based"


def test_resolve_by_either_identifier(db_session):
    proposal = make_proposal(db_session)
    resolver = IdentifierResolver(ProposalRepository(db_session))

    by_public = resolver.resolve(str(proposal.uuid))
    by_surrogate = resolver.resolve(str(proposal.id))

    assert by_public == by_surrogate
    assert by_public.surrogate_id == proposal.id
    assert by_public.public_id == proposal.uuid


def test_resolve_unknown_public_id_is_not_found(db_session):
    resolver = IdentifierResolver(ProposalRepository(db_session))
    with pytest.raises(NotFoundError):
        resolver.resolve(str(uuid4()))


def test_resolve_legacy_label_is_a_format_error(db_session):
    resolver = IdentifierResolver(ProposalRepository(db_session))
    with pytest.raises(IdentifierFormatError):
        resolver.resolve("school-event-42")


def test_audit_write_takes_the_resolved_surrogate_only(db_session):
    proposal = make_proposal(db_session)
    resolved = IdentifierResolver(ProposalRepository(db_session)).resolve(str(proposal.uuid))
    writer = AuditLogWriter(AuditRepository(db_session))

    entry = writer.record(resolved.surrogate_id, "status_pending", user_id=proposal.user_id)
    db_session.commit()

    assert entry.record_id == proposal.id
    for public in (str(resolved.public_id), resolved.public_id):
        with pytest.raises(IdentifierFormatError):
            writer.record(public, "status_pending", user_id=proposal.user_id)
    db_session.commit()

    entries = db_session.execute(select(AuditLog)).scalars().all()
    assert [(e.record_id, e.action_type) for e in entries] == [(proposal.id, "status_pending")]
