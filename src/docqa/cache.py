"""Response cache on Redis.

Two kinds of entries share one namespace:

* ``query:<sha256>`` — answers for a ``(document URL, questions)`` pair.
* ``get:<sha256>`` — a read-only endpoint response keyed by request URL.

Every entry expires after ``ttl`` seconds; nothing invalidates an entry
early. The cache is best-effort: a broker failure is logged and treated as a
miss so it never fails a request that could otherwise be served.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

import redis
from redis.exceptions import RedisError

from docqa.config import Settings
from docqa.redis_client import create_redis_client

logger = logging.getLogger(__name__)


def hash_str(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ResponseCache:
    def __init__(self, client: redis.Redis, *, ttl: int = 600, namespace: str = "docqa:cache") -> None:
        self._redis = client
        self.ttl = ttl
        self.namespace = namespace

    @classmethod
    def from_settings(cls, settings: Settings, client: redis.Redis | None = None) -> ResponseCache:
        return cls(client or create_redis_client(settings), ttl=settings.cache_ttl)

    def query_key(self, document_url: str, questions: list[str]) -> str:
        """Key for the answers to *questions* about *document_url* (order-sensitive)."""
        return f"{self.namespace}:query:{hash_str(json.dumps([document_url, questions]))}"

    def url_key(self, url: str) -> str:
        return f"{self.namespace}:get:{hash_str(url)}"

    def get(self, key: str) -> dict[str, Any] | None:
        try:
            raw = self._redis.get(key)
        except RedisError as exc:
            logger.warning("Failed to read cache entry %s: %s", key, exc)
            return None
        if raw is None:
            logger.debug("Cache MISS %s", key)
            return None
        logger.debug("Cache HIT %s", key)
        return json.loads(raw)

    def set(self, key: str, value: dict[str, Any]) -> None:
        try:
            self._redis.setex(key, self.ttl, json.dumps(value))
            logger.debug("Cached %s for %ds", key, self.ttl)
        except RedisError as exc:
            logger.warning("Failed to write cache entry %s: %s", key, exc)
