"""Ingestion queue: Celery for delivery, a Redis record per job for bookkeeping.

Celery owns delivery, retries with exponential backoff, and redelivery of
jobs whose worker died. Next to each task the queue keeps a hash::

    docqa:jobs:<id>     data, attempts_made, max_attempts, enqueued_at,
                        processed_at, finished_at, failed_reason

The record tells an unknown id (404) apart from a job that is merely
``PENDING`` in Celery, and its ``attempts_made`` counter is bumped on every
delivery. Redeliveries therefore count against the attempt cap the same way
retries do, and a late finish from a superseded delivery can be recognised
and dropped.
"""

from __future__ import annotations

import contextlib
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterator

from celery.exceptions import BackendError
from celery.exceptions import TimeoutError as CeleryTimeoutError
from kombu.exceptions import OperationalError
from redis.exceptions import RedisError

from docqa.config import Settings
from docqa.errors import JobFailed, JobNotFound, JobWaitTimeout, MalformedJob, QueueUnavailable
from docqa.jobs.models import IngestionJob, JobState
from docqa.jobs.tasks import ingest_document
from docqa.redis_client import create_redis_client

if TYPE_CHECKING:
    import redis
    from celery import Celery

logger = logging.getLogger(__name__)

_BROKER_ERRORS = (RedisError, OperationalError, BackendError, OSError)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _reason(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


class JobQueue:
    """Enqueue ingestion jobs and report their state.

    Parameters
    ----------
    app:
        The Celery app whose result backend holds task states.
    client:
        A ``redis.Redis`` created with ``decode_responses=True``; holds the
        job records.
    attempts:
        Maximum number of deliveries per job.
    record_ttl:
        Seconds a job record is kept after its last update.
    poll_interval:
        Result-backend polling interval in :meth:`wait_for_completion`.
    """

    def __init__(
        self,
        app: Celery,
        client: redis.Redis,
        *,
        attempts: int = 3,
        record_ttl: int = 86400,
        poll_interval: float = 0.5,
        namespace: str = "docqa:jobs",
    ) -> None:
        self._app = app
        self._redis = client
        self.attempts = attempts
        self.record_ttl = record_ttl
        self.poll_interval = poll_interval
        self.namespace = namespace

    @classmethod
    def from_settings(
        cls, settings: Settings, client: redis.Redis | None = None, app: Celery | None = None
    ) -> JobQueue:
        return cls(
            app or ingest_document.app,
            client or create_redis_client(settings),
            attempts=settings.job_attempts,
            record_ttl=settings.job_record_ttl,
            poll_interval=settings.job_poll_interval,
        )

    @property
    def name(self) -> str:
        return self._app.conf.task_default_queue

    def _key(self, job_id: str) -> str:
        return f"{self.namespace}:{job_id}"

    @contextlib.contextmanager
    def _broker(self, action: str) -> Iterator[None]:
        """Translate broker and result-backend failures into :class:`QueueUnavailable`."""
        try:
            yield
        except _BROKER_ERRORS as exc:
            logger.warning("Queue broker error during %s: %s", action, exc)
            raise QueueUnavailable(f"Queue broker unavailable during {action}: {exc}") from exc

    # -- producer side ----------------------------------------------------------

    def enqueue(self, payload: dict[str, Any]) -> IngestionJob:
        """Record a new job and publish its task; returns the ``waiting`` snapshot."""
        job = IngestionJob(
            id=uuid.uuid4().hex,
            data=json.loads(json.dumps(payload, default=str)),
            max_attempts=self.attempts,
        )
        key = self._key(job.id)
        with self._broker("enqueue"):
            pipe = self._redis.pipeline(transaction=True)
            pipe.hset(key, mapping=job.to_redis())
            pipe.expire(key, self.record_ttl)
            pipe.execute()
        try:
            with self._broker("enqueue"):
                ingest_document.apply_async(args=[job.id, job.data], task_id=job.id)
        except QueueUnavailable:
            with contextlib.suppress(RedisError):
                self._redis.delete(key)
            raise
        logger.info("Enqueued job %s on %s", job.id, self.name)
        return job

    def get_job(self, job_id: str) -> IngestionJob:
        """Return the job snapshot or raise :class:`JobNotFound`."""
        with self._broker("get_job"):
            mapping = self._redis.hgetall(self._key(job_id))
            if not mapping:
                raise JobNotFound(job_id)
            task = self._app.AsyncResult(job_id)
            state = JobState.from_celery(task.state)

            job = IngestionJob.from_redis(job_id, mapping)
            update: dict[str, Any] = {"state": state}
            if state.is_terminal and (state is JobState.COMPLETED or job.failed_reason is None):
                outcome = task.result
                if state is JobState.COMPLETED:
                    update["result"] = outcome if isinstance(outcome, dict) else {}
                else:
                    # Killed by the time limit or lost with its worker: nothing was recorded.
                    update["failed_reason"] = _reason(outcome) if isinstance(outcome, BaseException) else None
        return job.model_copy(update=update)

    def get_state(self, job_id: str) -> JobState:
        return self.get_job(job_id).state

    def wait_for_completion(self, job_id: str, timeout: float) -> dict[str, Any]:
        """Block until the job finishes and return its result.

        Raises :class:`JobFailed` once the job reaches ``failed`` (all
        attempts exhausted) and :class:`JobWaitTimeout` when *timeout*
        seconds pass first.
        """
        self.get_job(job_id)
        try:
            with self._broker("wait_for_completion"):
                self._app.AsyncResult(job_id).get(
                    timeout=timeout, interval=self.poll_interval, propagate=False
                )
        except CeleryTimeoutError as exc:
            raise JobWaitTimeout(job_id, timeout) from exc

        job = self.get_job(job_id)
        if job.state is JobState.FAILED:
            raise JobFailed(job_id, job.failed_reason)
        return job.result or {}

    # -- consumer side (called from the task) -------------------------------------

    def record_attempt(self, job_id: str) -> tuple[int, int]:
        """Count one more delivery of *job_id*; returns ``(attempt, max_attempts)``."""
        key = self._key(job_id)
        with self._broker("record_attempt"):
            if not self._redis.exists(key):
                raise MalformedJob(f"No job record for {job_id}")
            pipe = self._redis.pipeline(transaction=True)
            pipe.hincrby(key, "attempts_made", 1)
            pipe.hset(key, "processed_at", _now())
            pipe.hget(key, "max_attempts")
            pipe.expire(key, self.record_ttl)
            attempt, _, max_attempts, _ = pipe.execute()
        return int(attempt), int(max_attempts or self.attempts)

    def is_current_attempt(self, job_id: str, attempt: int) -> bool:
        """``False`` once a later delivery of the job has started."""
        with self._broker("is_current_attempt"):
            current = self._redis.hget(self._key(job_id), "attempts_made")
        return current is not None and int(current) == attempt

    def record_success(self, job_id: str) -> None:
        key = self._key(job_id)
        with self._broker("record_success"):
            pipe = self._redis.pipeline(transaction=True)
            pipe.hset(key, "finished_at", _now())
            pipe.hdel(key, "failed_reason")
            pipe.execute()

    def record_failure(self, job_id: str, error: BaseException, *, final: bool) -> None:
        mapping = {"failed_reason": _reason(error)}
        if final:
            mapping["finished_at"] = _now()
        with self._broker("record_failure"):
            self._redis.hset(self._key(job_id), mapping=mapping)

    # -- lifecycle ---------------------------------------------------------------

    def ping(self) -> bool:
        try:
            self._redis.ping()
            with self._app.connection_for_write() as conn:
                conn.ensure_connection(max_retries=1)
        except _BROKER_ERRORS:
            logger.warning("Queue broker ping failed", exc_info=True)
            return False
        return True

    def close(self) -> None:
        """Release the job-record connection pool."""
        self._redis.close()
        logger.info("Closed connection to queue %s", self.name)
