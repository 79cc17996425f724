"""
Ingestion — download, parse, chunk, embed and index source documents.

The :class:`~docqa.ingestion.pipeline.IngestionPipeline` runs one job end to
end; :mod:`docqa.ingestion.worker` starts the Celery worker that delivers
jobs to it.
"""
