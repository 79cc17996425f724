"""
Celery application for the ingestion queue.

Redis serves as both broker and result backend. Delivery is at-least-once:
tasks are acknowledged only after they finish (``task_acks_late``) and a
worker that dies mid-task leaves its message to be redelivered once the
broker's visibility timeout passes. Executions are killed at
``job_time_limit``, which is kept below the visibility timeout so a task
still running is never handed to a second worker.
"""

from __future__ import annotations

from celery import Celery

from docqa.config import Settings, settings


def create_celery_app(settings: Settings) -> Celery:
    """Build the Celery app from *settings*."""
    app = Celery("docqa")
    app.conf.update(
        broker_url=settings.broker_url,
        result_backend=settings.result_backend_url,
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        task_default_queue=settings.queue_name,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        task_track_started=True,
        task_time_limit=settings.job_time_limit,
        task_always_eager=settings.celery_task_always_eager,
        task_store_eager_result=True,
        worker_prefetch_multiplier=1,
        worker_concurrency=settings.worker_concurrency,
        result_expires=settings.job_record_ttl,
        broker_transport_options={
            "visibility_timeout": settings.job_visibility_timeout,
            "socket_timeout": settings.queue_socket_timeout,
            "socket_connect_timeout": settings.queue_socket_timeout,
        },
        result_backend_transport_options={"visibility_timeout": settings.job_visibility_timeout},
        redis_socket_timeout=settings.queue_socket_timeout,
        redis_socket_connect_timeout=settings.queue_socket_timeout,
        broker_connection_retry_on_startup=True,
        broker_connection_max_retries=settings.queue_connect_retries,
        task_publish_retry=True,
        task_publish_retry_policy={
            "max_retries": settings.queue_connect_retries,
            "interval_start": 0,
            "interval_step": settings.queue_backoff_base,
            "interval_max": settings.queue_backoff_cap,
        },
    )
    return app


celery_app = create_celery_app(settings)
