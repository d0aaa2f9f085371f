from contextlib import contextmanager
from sqlalchemy.orm import Session


@contextmanager
def transaction(db: Session):
    """
    Transaction context manager

    Usage:
        with transaction(self.db):
            self.proposal_repo.create(proposal)
            self.outbox_repo.create_outbox_event(...)
            # rollback on exception, commit on normal exit

    Rules:
        - commit() on normal exit
        - rollback() then re-raise on exception
        - services never commit directly; this manager does
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
