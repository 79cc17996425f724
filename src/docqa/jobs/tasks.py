"""Celery task that runs one ingestion job.

Any failure is retried with exponential backoff until the job's attempt cap
is reached; :class:`UnrecoverableJobError` fails the job at once. Every
delivery, including a redelivery after a lost worker, counts one attempt in
the job record. A delivery that finds the cap already spent fails the job
without running it, and a run that finishes after a newer delivery started is
dropped so it cannot overwrite the newer outcome.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from celery.exceptions import Ignore
from celery.signals import worker_process_shutdown, worker_shutdown

from docqa.config import settings
from docqa.errors import UnrecoverableJobError
from docqa.jobs.celery_app import celery_app
from docqa.jobs.models import IngestionJob

if TYPE_CHECKING:
    from docqa.services import Services

logger = logging.getLogger(__name__)

_services: Services | None = None


def bind_services(services: Services | None) -> None:
    """Use *services* for tasks run in this process (API process, tests)."""
    global _services
    _services = services


def get_services() -> Services:
    """Services for this process, built from the environment on first use."""
    global _services
    if _services is None:
        from docqa.services import build_services

        _services = build_services(settings)
    return _services


@worker_shutdown.connect
@worker_process_shutdown.connect
def _close_services(**_kwargs: Any) -> None:
    global _services
    if _services is not None:
        _services.close()
        _services = None


def run_ingestion(job_id: str, payload: dict[str, Any], services: Services) -> dict[str, Any]:
    """Run one delivery of *job_id* and return its result."""
    queue = services.queue
    attempt, max_attempts = queue.record_attempt(job_id)
    if attempt > max_attempts:
        error = UnrecoverableJobError(f"Job {job_id} exhausted its {max_attempts} attempts")
        queue.record_failure(job_id, error, final=True)
        logger.error("Job %s redelivered after its last attempt; failing it", job_id)
        raise error

    job = IngestionJob(id=job_id, data=payload, attempts_made=attempt - 1, max_attempts=max_attempts)
    logger.info(
        "Worker received job %s for %s (attempt %d/%d)", job_id, job.source_url, attempt, max_attempts
    )
    try:
        result = services.pipeline.run(job)
    except Exception as exc:
        if not queue.is_current_attempt(job_id, attempt):
            logger.warning("Dropping failure of superseded attempt %d of job %s", attempt, job_id)
            raise Ignore() from exc
        final = attempt >= max_attempts or isinstance(exc, UnrecoverableJobError)
        queue.record_failure(job_id, exc, final=final)
        logger.error("Worker error on job %s: %s", job_id, exc, exc_info=True)
        if final and not isinstance(exc, UnrecoverableJobError):
            raise UnrecoverableJobError(f"{type(exc).__name__}: {exc}") from exc
        raise

    if not queue.is_current_attempt(job_id, attempt):
        logger.warning("Dropping result of superseded attempt %d of job %s", attempt, job_id)
        raise Ignore()
    queue.record_success(job_id)
    logger.info("Job %s completed", job_id)
    return result


@celery_app.task(
    bind=True,
    name="docqa.ingest_document",
    max_retries=settings.job_attempts - 1,
    autoretry_for=(Exception,),
    dont_autoretry_for=(UnrecoverableJobError,),
    retry_backoff=settings.job_backoff_delay,
    retry_backoff_max=settings.job_backoff_cap,
    retry_jitter=False,
)
def ingest_document(self, job_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Download, parse, chunk, embed and index one document."""
    return run_ingestion(job_id, payload, get_services())
