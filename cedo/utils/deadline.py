import time
from os import getenv

from cedo.exceptions import DeadlineExceededError, DependencyFailure


def default_deadline_seconds() -> float:
    return float(getenv("REQUEST_DEADLINE_SECONDS", "10"))


class Deadline:
    """Request-scoped time budget shared by every persistence step of one call."""

    def __init__(self, seconds: float | None = None):
        self.seconds = default_deadline_seconds() if seconds is None else seconds
        self._expires_at = time.monotonic() + self.seconds

    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check_primary(self, operation: str) -> None:
        """Hard failure: the primary mutation must not start past the deadline."""
        if self.expired():
            raise DeadlineExceededError(
                message="Request deadline exceeded",
                detail=f"{operation} was not attempted: {self.seconds}s budget spent"
            )

    def check_side_effect(self, operation: str) -> None:
        """Soft failure: side effects past the deadline are left to the outbox worker."""
        if self.expired():
            raise DependencyFailure(
                message="Request deadline exceeded",
                detail=f"{operation} deferred: {self.seconds}s budget spent"
            )
