"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Queue broker (Redis, shared by Celery, the job registry and the response cache)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    celery_broker_url: str = Field(default="", description="Defaults to the redis_* settings when empty")
    celery_result_backend: str = Field(default="", description="Defaults to the redis_* settings when empty")
    queue_name: str = "file-upload-queue"
    queue_socket_timeout: float = Field(default=5.0, description="Seconds before a broker call is abandoned")
    queue_connect_retries: int = 3
    queue_backoff_base: float = 0.5
    queue_backoff_cap: float = 2.0

    # Job policy
    job_attempts: int = Field(default=3, description="Maximum executions per ingestion job, redeliveries included")
    job_backoff_delay: int = Field(default=1, ge=1, description="Base retry delay in seconds, doubled per attempt")
    job_backoff_cap: int = 30
    job_time_limit: int = Field(default=300, description="Hard limit on one execution; the worker child is killed after it")
    job_visibility_timeout: int = Field(
        default=900,
        description="Seconds before an unacknowledged job is redelivered; must exceed job_time_limit",
    )
    job_record_ttl: int = Field(default=86400, description="How long job records and results are kept")
    job_wait_timeout: float = Field(default=300.0, description="Synchronous-mode wait for ingestion")
    job_poll_interval: float = 0.5

    # Worker
    worker_concurrency: int = 1
    celery_task_always_eager: bool = Field(
        default=False, description="Run jobs inline in the submitting process (development only)"
    )
    uploads_dir: str = "uploads"

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "langchainjs-testing"
    vector_store_timeout: float = 10.0
    distance_metric: str = "cosine"

    # Embedding
    embedding_provider: str = Field(default="openai", description="'openai' or 'huggingface'")
    embedding_model: str = "text-embedding-3-small"
    embedding_api_key: str = Field(default="", description="Falls back to OPENAI_API_KEY when empty")
    embedding_batch_size: int = 64
    embedding_timeout: float = 30.0

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    llm_model_name: str = Field(default="gpt-4o-mini", description="LLM model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible API. Leave empty to use OpenAI cloud, "
            "e.g. 'http://localhost:8001/v1' for a local vLLM server"
        ),
    )
    llm_timeout: float = 60.0
    llm_temperature: float = 0.0

    # Retrieval / answering
    chunk_size: int = 1000
    chunk_overlap: int = 200
    top_k: int = 2
    query_concurrency: int = 4
    max_context_chars: int = 8000

    # Download
    download_timeout: float = 60.0
    download_retries: int = 3

    # Serving
    cache_ttl: int = Field(default=600, description="Response cache TTL in seconds")
    environment: str = "production"
    port: int = 3000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_chunking(self) -> Settings:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )
        return self

    @model_validator(mode="after")
    def _check_job_timing(self) -> Settings:
        if self.job_visibility_timeout <= self.job_time_limit:
            raise ValueError(
                f"job_visibility_timeout ({self.job_visibility_timeout}) must be > "
                f"job_time_limit ({self.job_time_limit})"
            )
        return self

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    @property
    def broker_url(self) -> str:
        return self.celery_broker_url or self.redis_url

    @property
    def result_backend_url(self) -> str:
        return self.celery_result_backend or self.redis_url

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


# Default instance for entry points; components receive Settings explicitly.
settings = Settings()
