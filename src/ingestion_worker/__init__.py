"""
Top-level package for the ingestion worker project.

Each pipeline stage lives in its own component subpackage; the event-batch
assembly stage for the ingestion queue is `ingestion_worker.ingestion_queue`.
"""

__all__: list[str] = []
