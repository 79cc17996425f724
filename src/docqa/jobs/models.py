"""Job data model: the job record kept in Redis plus the Celery task state."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from celery import states
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from docqa.errors import MalformedJob


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)

    @classmethod
    def from_celery(cls, state: str) -> JobState:
        """Map a Celery task state onto the job lifecycle."""
        return _CELERY_STATES.get(state, cls.ACTIVE)


_CELERY_STATES = {
    states.PENDING: JobState.WAITING,
    states.RECEIVED: JobState.WAITING,
    states.STARTED: JobState.ACTIVE,
    states.RETRY: JobState.DELAYED,
    states.SUCCESS: JobState.COMPLETED,
    states.FAILURE: JobState.FAILED,
    states.REVOKED: JobState.FAILED,
}


class IngestionPayload(BaseModel):
    """Job data understood by the ingestion worker.

    Attributes
    ----------
    document_url:
        Location of the source document.
    saved_path:
        Local path of an already-downloaded copy. When absent the worker
        downloads ``document_url`` itself.
    questions:
        Questions to answer once ingestion succeeds (async mode). Empty for
        jobs enqueued by the synchronous path, which answers inline.
    """

    document_url: str = Field(min_length=1)
    saved_path: str | None = None
    questions: list[str] = Field(default_factory=list)
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_job_data(cls, data: dict[str, Any]) -> IngestionPayload:
        """Validate raw job data, raising :class:`MalformedJob` on failure."""
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            raise MalformedJob(f"Invalid job payload: {exc.errors(include_url=False)}") from exc


class IngestionJob(BaseModel):
    """Snapshot of one job.

    ``state`` and ``result`` come from the Celery result backend; the other
    fields from the job record the queue keeps next to it.
    """

    id: str
    data: dict[str, Any]
    state: JobState = JobState.WAITING
    attempts_made: int = 0
    max_attempts: int = 3
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    processed_at: datetime | None = None
    finished_at: datetime | None = None
    result: dict[str, Any] | None = None
    failed_reason: str | None = None

    @property
    def source_url(self) -> str | None:
        return self.data.get("document_url")

    @property
    def saved_path(self) -> str | None:
        return self.data.get("saved_path")

    # -- record encoding ------------------------------------------------------

    def to_redis(self) -> dict[str, str]:
        """Flatten the record fields into a Redis hash mapping."""
        mapping = {
            "data": json.dumps(self.data, default=str),
            "attempts_made": str(self.attempts_made),
            "max_attempts": str(self.max_attempts),
            "enqueued_at": self.enqueued_at.isoformat(),
        }
        if self.processed_at is not None:
            mapping["processed_at"] = self.processed_at.isoformat()
        if self.finished_at is not None:
            mapping["finished_at"] = self.finished_at.isoformat()
        if self.failed_reason is not None:
            mapping["failed_reason"] = self.failed_reason
        return mapping

    @classmethod
    def from_redis(cls, job_id: str, mapping: dict[str, str]) -> IngestionJob:
        return cls(
            id=job_id,
            data=json.loads(mapping.get("data") or "{}"),
            attempts_made=int(mapping.get("attempts_made", 0)),
            max_attempts=int(mapping.get("max_attempts", 3)),
            enqueued_at=mapping["enqueued_at"],
            processed_at=mapping.get("processed_at"),
            finished_at=mapping.get("finished_at"),
            failed_reason=mapping.get("failed_reason"),
        )
