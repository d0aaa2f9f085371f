import json
import os
from typing import Iterator

import redis


def default_draft_ttl() -> int:
    return int(os.getenv("DRAFT_TTL_SECONDS", str(30 * 24 * 3600)))


class DraftRepository:
    """
    Draft documents in the shared key-value store

    - one JSON document per key `cedo:draft:<id>`
    - every put refreshes the TTL, so drafts expire after inactivity
    - last write wins; there is no cross-request locking
    """

    KEY_PREFIX = "cedo:draft:"

    def __init__(self, client: redis.Redis, ttl_seconds: int | None = None):
        self.client = client
        self.ttl_seconds = default_draft_ttl() if ttl_seconds is None else ttl_seconds

    def _key(self, draft_id: str) -> str:
        return f"{self.KEY_PREFIX}{draft_id}"

    def get(self, draft_id: str) -> dict | None:
        raw = self.client.get(self._key(draft_id))
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, draft_id: str, draft: dict) -> dict:
        self.client.setex(self._key(draft_id), self.ttl_seconds, json.dumps(draft))
        return draft

    def delete(self, draft_id: str) -> bool:
        return self.client.delete(self._key(draft_id)) > 0

    def iter_all(self) -> Iterator[dict]:
        for key in self.client.scan_iter(match=f"{self.KEY_PREFIX}*"):
            raw = self.client.get(key)
            # expired between SCAN and GET
            if raw is not None:
                yield json.loads(raw)
