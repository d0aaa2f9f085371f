import logging
import os
import signal
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from cedo.repositories.idempotency_repository import IdempotencyRepository
from cedo.repositories.notification_repository import NotificationRepository
from cedo.repositories.outbox_repository import OutboxRepository, get_worker_id
from cedo.services.outbox_dispatcher import OutboxDispatcher
from cedo.services.notification_service import NotificationInboxService
from cedo.utils.mailer import NotificationChannel, build_channel_from_env
from cedo.utils.transaction import transaction

logger = logging.getLogger(__name__)


class OutboxWorker:
    def __init__(
        self,
        db: Session,
        channel: NotificationChannel,
        batch_size: int | None = None,
        poll_interval: float | None = None,
        max_attempts: int | None = None,
    ):
        self.db = db
        self.repos = OutboxRepository(db)
        self.dispatcher = OutboxDispatcher(db, self.repos, channel)
        self.batch_size = batch_size or int(os.getenv("OUTBOX_BATCH_SIZE", "10"))
        self.poll_interval = poll_interval or float(os.getenv("OUTBOX_POLL_INTERVAL", "5"))
        self.max_attempts = max_attempts or int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))
        self.worker_id = get_worker_id()
        self.running = True

    def process_batch(self) -> int:
        """Process one batch; returns how many events were claimed"""
        now = datetime.now(timezone.utc)

        # claim, then commit so other workers skip these rows
        with transaction(self.db):
            events = self.repos.claim_pending_events(
                batch_size=self.batch_size,
                worker_id=self.worker_id,
                now=now
            )

        # handlers run outside the claiming transaction
        for event in events:
            event_id, attempts = event.id, event.attempts
            try:
                self.dispatcher.dispatch(event)

                with transaction(self.db):
                    self.repos.mark_done(event_id, datetime.now(timezone.utc))

            except Exception as e:
                self.db.rollback()
                backoff_seconds = 2 ** attempts
                next_retry_at = datetime.now(timezone.utc) + timedelta(seconds=backoff_seconds)

                with transaction(self.db):
                    can_retry = self.repos.mark_failed(
                        event_id=event_id,
                        error=str(e),
                        next_retry_at=next_retry_at,
                        max_attempts=self.max_attempts
                    )
                if can_retry:
                    logger.warning(
                        "Outbox event %s failed (attempt %d), retrying in %ds: %s",
                        event_id, attempts + 1, backoff_seconds, e
                    )
                else:
                    logger.error(
                        "Outbox event %s failed after %d attempts: %s",
                        event_id, self.max_attempts, e
                    )

        return len(events)

    def housekeeping(self) -> None:
        """Expire stale notifications and drop old handler markers"""
        NotificationInboxService(self.db, NotificationRepository(self.db)).expire_stale()
        with transaction(self.db):
            removed = IdempotencyRepository(self.db).delete_expired(datetime.now(timezone.utc))
        if removed:
            logger.debug("Removed %d expired idempotency markers", removed)

    def run(self) -> None:
        """Main loop"""
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

        logger.info("Outbox worker started: %s", self.worker_id)

        while self.running:
            try:
                self.process_batch()
                self.housekeeping()
            except Exception:
                self.db.rollback()
                logger.exception("Error processing outbox batch")

            time.sleep(self.poll_interval)

        logger.info("Outbox worker stopped")

    def _handle_shutdown(self, signum, frame):
        """Graceful shutdown"""
        logger.info("Shutdown signal received")
        self.running = False


if __name__ == "__main__":
    # run as a separate process: python -m cedo.workers.outbox_worker
    from cedo.db import get_db

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    db = next(get_db())
    worker = OutboxWorker(db, channel=build_channel_from_env())
    worker.run()
