import os
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("SENDGRID_API_KEY", None)

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from main import app
from cedo.db import Base, get_db
from cedo.kv import get_redis
from cedo.dependencies.services import get_notification_channel
from cedo.models import Proposal, ProposalStatusType, ReportStatusType
from cedo.repositories.draft_repository import DraftRepository
from cedo.repositories.outbox_repository import OutboxRepository
from cedo.repositories.proposal_repository import ProposalRepository
from cedo.schemas.auth import AuthContext
from cedo.services.draft_service import DraftService
from cedo.services.identifier_resolver import IdentifierResolver
from cedo.services.outbox_dispatcher import OutboxDispatcher
from cedo.services.proposal_service import ProposalService
from cedo.services.transition_engine import TransitionEngine
from cedo.utils.mailer import MailerError
from cedo.utils.security import issue_access_token

OWNER_ID = 101
OTHER_USER_ID = 202
ADMIN_ID = 1

OWNER = AuthContext(user_id=OWNER_ID, role="student", email="ana@example.com")
ADMIN = AuthContext(user_id=ADMIN_ID, role="head_admin", email="admin@example.com")


class RecordingChannel:
    """Email channel double: records sends, or fails every send"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, to, template, data):
        if self.fail:
            raise MailerError("SendGrid unavailable")
        self.sent.append((to, template, dict(data)))


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def draft_service(redis_client):
    return DraftService(DraftRepository(redis_client))


@pytest.fixture
def proposal_service(db_session, draft_service, channel):
    proposal_repo = ProposalRepository(db_session)
    outbox_repo = OutboxRepository(db_session)
    return ProposalService(
        db=db_session,
        proposal_repo=proposal_repo,
        outbox_repo=outbox_repo,
        resolver=IdentifierResolver(proposal_repo),
        engine=TransitionEngine(proposal_repo, outbox_repo),
        dispatcher=OutboxDispatcher(db_session, outbox_repo, channel),
        draft_service=draft_service,
    )


@pytest.fixture
def client(session_factory, redis_client, channel):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis_client
    app.dependency_overrides[get_notification_channel] = lambda: channel
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_proposal(db, **overrides) -> Proposal:
    values = dict(
        user_id=OWNER_ID,
        organization_name="Green Club",
        organization_type="school-based",
        contact_name="Ana Cruz",
        contact_email="ana@example.com",
        event_name="Tree Planting",
        proposal_status=ProposalStatusType.DRAFT,
        report_status=ReportStatusType.DRAFT,
    )
    values.update(overrides)
    proposal = Proposal(**values)
    db.add(proposal)
    db.commit()
    db.refresh(proposal)
    return proposal


def auth_headers(user_id: int = OWNER_ID, role: str = "student", email: str | None = "ana@example.com") -> dict:
    token = issue_access_token(user_id, role, email=email)
    return {"Authorization": f"Bearer {token}"}


def admin_headers() -> dict:
    return auth_headers(ADMIN_ID, "head_admin", "admin@example.com")


VALID_EVENT_DETAILS = {
    "venue": "Main Gym",
    "start_date": "2025-03-01",
    "end_date": "2025-03-02",
    "time_start": "09:00",
    "time_end": "17:00",
    "event_type": "academic-enhancement",
    "event_mode": "offline",
    "target_audience": ["students"],
}
