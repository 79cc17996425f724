"""Redis connection factory shared by the job queue and the response cache."""

from __future__ import annotations

import logging

import redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from docqa.config import Settings

logger = logging.getLogger(__name__)


def create_redis_client(settings: Settings) -> redis.Redis:
    """Return a client that retries its own connection with bounded backoff.

    After ``queue_connect_retries`` failed attempts the underlying
    ``ConnectionError`` / ``TimeoutError`` is raised to the caller instead of
    blocking forever; callers translate it into ``QueueUnavailable``.
    """
    retry = Retry(
        ExponentialBackoff(cap=settings.queue_backoff_cap, base=settings.queue_backoff_base),
        settings.queue_connect_retries,
    )
    logger.info(
        "Connecting to Redis at %s:%d/%d", settings.redis_host, settings.redis_port, settings.redis_db
    )
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        decode_responses=True,
        socket_timeout=settings.queue_socket_timeout,
        socket_connect_timeout=settings.queue_socket_timeout,
        retry=retry,
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
        health_check_interval=30,
    )
