import logging
import os

import redis

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
_redis = None


def get_redis() -> redis.Redis:
    """Shared key-value client (drafts). Lazily connected on first use."""
    global _redis
    if _redis is None:
        _redis = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=float(os.getenv("REDIS_CONNECT_TIMEOUT", "2")),
        )
        logger.info("Draft store: using Redis at %s", REDIS_URL.split("@")[-1])
    return _redis
