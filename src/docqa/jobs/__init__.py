"""
Jobs — the Celery-backed ingestion queue and its job model.

Public API
----------
- :class:`JobQueue` — enqueue jobs, read their state, wait for completion.
- :data:`ingest_document` — the Celery task that runs one job.
- :class:`IngestionJob` — a job snapshot (job record + task state).
- :class:`IngestionPayload` — validated job data consumed by the worker.
- :class:`JobState` — ``waiting → active → completed | failed`` (+ ``delayed``).
"""

from docqa.jobs.models import IngestionJob, IngestionPayload, JobState
from docqa.jobs.queue import JobQueue
from docqa.jobs.tasks import ingest_document

__all__ = [
    "IngestionJob",
    "IngestionPayload",
    "JobQueue",
    "JobState",
    "ingest_document",
]
