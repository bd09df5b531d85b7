"""Logging setup for the ingestion queue worker process."""

from __future__ import annotations

import logging
from pathlib import Path


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
# Chatty at INFO on every S3 request; only shown when the worker itself runs at DEBUG.
AWS_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def resolve_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level or "INFO").strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_worker_logging(level: int | str | None = "INFO", log_paths: list[str] | None = None) -> int:
    """Configure root logging once for the worker and return the effective level."""
    worker_level = resolve_level(level)
    for name in AWS_LOGGERS:
        logging.getLogger(name).setLevel(worker_level if worker_level <= logging.DEBUG else logging.WARNING)
    if logging.getLogger().handlers:
        return worker_level
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    for entry in log_paths or []:
        path = Path(entry)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    logging.basicConfig(level=worker_level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S", handlers=handlers)
    return worker_level
