"""Ingestion worker — a Celery worker consuming the ingestion queue.

Run with ``docqa-worker`` (or ``python -m docqa.ingestion.worker``). Celery
handles SIGTERM/SIGINT with a warm shutdown: jobs in flight finish, and
unacknowledged ones are redelivered to the next worker.
"""

from __future__ import annotations

import logging

from docqa.config import settings

logger = logging.getLogger(__name__)


def worker_argv(concurrency: int | None = None) -> list[str]:
    """Command line handed to ``celery worker``."""
    return [
        "worker",
        f"--loglevel={settings.log_level}",
        f"--queues={settings.queue_name}",
        f"--concurrency={concurrency or settings.worker_concurrency}",
        "--prefetch-multiplier=1",
    ]


def main() -> None:
    """Entry point for the standalone worker process."""
    from docqa.jobs.tasks import celery_app

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Worker starting on queue: %s", settings.queue_name)
    celery_app.worker_main(worker_argv())


if __name__ == "__main__":
    main()
