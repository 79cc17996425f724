"""FastAPI application: document submission, job status and synchronous query.

Two interaction modes share the response cache:

* ``POST /submit`` enqueues an ingestion job and returns ``202`` with a
  status URL straight away; ``GET /submit/status/{job_id}`` reports the job
  state and, once completed, the answers.
* ``POST /query`` downloads the document, waits for its ingestion job to
  actually complete, then answers the questions inline.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from docqa.errors import DocQAError, NotFound, ValidationError
from docqa.ingestion.loader import download_document
from docqa.jobs.models import JobState
from docqa.jobs.tasks import bind_services
from docqa.services import Services, build_services

logger = logging.getLogger(__name__)


# ── Request / Response schemas ────────────────────────────────────────
class QueryRequest(BaseModel):
    """A document URL plus the questions to answer about it."""

    document_url: str = Field(min_length=1, validation_alias=AliasChoices("documentURL", "documents"))
    questions: list[str] = Field(min_length=1)


class AnswersResponse(BaseModel):
    answers: list[str]


# ── Application factory ───────────────────────────────────────────────
def create_app(services: Services | None = None) -> FastAPI:
    """Build the API around injected *services*.

    When *services* is omitted they are built from the environment at
    startup and closed at shutdown. Either way they are bound to the
    ingestion task, so jobs run inline (eager mode) use the same stack.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        if owned:
            from docqa.config import settings

            app.state.services = build_services(settings)
        svc: Services = app.state.services
        bind_services(svc)
        try:
            yield
        finally:
            logger.info("Shutting down...")
            if owned:
                bind_services(None)
                svc.close()

    app = FastAPI(
        title="DocQA API",
        version="0.1.0",
        description="Queue-backed document ingestion and retrieval-augmented question answering.",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services
        bind_services(services)

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _services(request: Request) -> Services:
    return request.app.state.services


def _error_body(request: Request, exc: Exception, error: str) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": error}
    if _services(request).settings.is_development:
        body["message"] = str(exc)
    return body


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Missing documents or questions"},
        )

    @app.exception_handler(ValidationError)
    async def _invalid(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})

    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"success": False, "error": "Job not found"})

    @app.exception_handler(DocQAError)
    async def _pipeline_failure(request: Request, exc: DocQAError) -> JSONResponse:
        logger.error("Request failed: %s", exc, exc_info=exc)
        return JSONResponse(status_code=500, content=_error_body(request, exc, "Failed to process request"))

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error: %s", exc, exc_info=exc)
        return JSONResponse(status_code=500, content=_error_body(request, exc, "Internal Server Error"))


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok"}

    @app.get("/ready")
    def ready(request: Request) -> JSONResponse:
        """Readiness probe: queue broker and vector store reachable."""
        svc = _services(request)
        checks = {"queue": svc.queue.ping(), "vector_store": svc.store.health_check()}
        status = 200 if all(checks.values()) else 503
        return JSONResponse(status_code=status, content={"ready": status == 200, **checks})

    @app.post("/submit", status_code=202)
    def submit(body: QueryRequest, request: Request) -> Any:
        """Enqueue ingestion + answering and return a job handle immediately."""
        svc = _services(request)
        cached = svc.cache.get(svc.cache.query_key(body.document_url, body.questions))
        if cached is not None:
            return JSONResponse(status_code=200, content=cached)

        job = svc.queue.enqueue({"document_url": body.document_url, "questions": body.questions})
        return {
            "success": True,
            "jobId": job.id,
            "status": "processing",
            "statusURL": str(request.url_for("submission_status", job_id=job.id)),
        }

    @app.get("/submit/status/{job_id}", name="submission_status")
    def submission_status(job_id: str, request: Request) -> dict[str, Any]:
        """Current job state; the result is present once the job completed."""
        svc = _services(request)
        url_key = svc.cache.url_key(str(request.url))
        cached = svc.cache.get(url_key)
        if cached is not None:
            return cached

        job = svc.queue.get_job(job_id)
        completed = job.state is JobState.COMPLETED
        body = {
            "success": True,
            "jobId": job.id,
            "state": job.state.value,
            "result": job.result if completed else None,
            "failedReason": job.failed_reason if job.state is JobState.FAILED else None,
        }
        if completed:
            svc.cache.set(url_key, body)
            answers = (job.result or {}).get("answers")
            questions = job.data.get("questions")
            if answers is not None and questions and job.source_url:
                svc.cache.set(svc.cache.query_key(job.source_url, questions), {"answers": answers})
        return body

    @app.post("/query", response_model=AnswersResponse)
    def query(body: QueryRequest, request: Request) -> Any:
        """Download, wait for ingestion to complete, then answer inline."""
        svc = _services(request)
        settings = svc.settings
        key = svc.cache.query_key(body.document_url, body.questions)
        cached = svc.cache.get(key)
        if cached is not None:
            return cached

        saved_path = download_document(
            body.document_url,
            settings.uploads_dir,
            timeout=settings.download_timeout,
            max_retries=settings.download_retries,
        )
        job = svc.queue.enqueue({"document_url": body.document_url, "saved_path": str(saved_path)})
        svc.queue.wait_for_completion(job.id, timeout=settings.job_wait_timeout)

        answers = svc.orchestrator.answer_all(body.document_url, body.questions)
        response = {"answers": answers}
        svc.cache.set(key, response)
        return response


def main() -> None:
    """Entry point: serve the API with uvicorn."""
    import uvicorn

    from docqa.config import settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
