"""Exception hierarchy shared by the queue, pipeline, retrieval and API layers.

The HTTP layer maps these onto status codes:

* :class:`ValidationError` → 400
* :class:`NotFound` → 404
* everything else → 500 (synchronous mode) or a ``failed`` job state (async mode)

:class:`DependencyError` subclasses are transient and retried by the job
queue up to the attempt cap. :class:`UnrecoverableJobError` subclasses fail
a job on the first occurrence.
"""

from __future__ import annotations


class DocQAError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(DocQAError):
    """A request is missing required fields or carries malformed values."""


class NotFound(DocQAError):
    """A referenced entity does not exist."""


class JobNotFound(NotFound):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


# -- external dependencies ---------------------------------------------------


class DependencyError(DocQAError):
    """An external service failed or timed out."""


class QueueUnavailable(DependencyError):
    """The queue broker cannot be reached."""


class IndexUnavailable(DependencyError):
    """The vector store cannot be reached within the configured timeout."""


class ModelServiceError(DependencyError):
    """The embedding or generation service failed."""


class DocumentDownloadError(DependencyError):
    """The source document could not be downloaded."""


class CollectionNotFound(DocQAError):
    """Similarity search against a collection that has never been written."""

    def __init__(self, collection: str) -> None:
        super().__init__(f"Collection does not exist: {collection!r}")
        self.collection = collection


# -- pipeline / data integrity -------------------------------------------------


class PipelineError(DocQAError):
    """A data-integrity failure inside the ingestion pipeline."""


class SourceMissing(PipelineError):
    """The downloaded file is absent at the path recorded on the job."""


class UnrecoverableJobError(PipelineError):
    """Retrying cannot succeed; the job is failed without further attempts."""


class MalformedJob(UnrecoverableJobError):
    """The job payload lacks required fields."""


class ConfigurationError(UnrecoverableJobError):
    """Deployment configuration is inconsistent."""


class EmbeddingDimensionMismatch(ConfigurationError):
    def __init__(self, collection: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Collection {collection!r} holds {expected}-dim vectors, got {actual}-dim"
        )
        self.expected = expected
        self.actual = actual


# -- job completion --------------------------------------------------------------


class JobFailed(DocQAError):
    def __init__(self, job_id: str, reason: str | None) -> None:
        super().__init__(f"Job {job_id} failed: {reason or 'unknown error'}")
        self.job_id = job_id
        self.reason = reason


class JobWaitTimeout(DocQAError):
    def __init__(self, job_id: str, timeout: float) -> None:
        super().__init__(f"Job {job_id} did not finish within {timeout:.1f}s")
        self.job_id = job_id


class AnswerGenerationError(DocQAError):
    """Answering one question of a batch failed; the whole batch is rejected."""

    def __init__(self, index: int, question: str, cause: Exception) -> None:
        super().__init__(f"Failed to answer question #{index} ({question[:60]!r}): {cause}")
        self.index = index
        self.question = question
