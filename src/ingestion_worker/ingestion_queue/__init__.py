"""Ingestion queue: event-batch assembly from buffered fragments."""

from .assembler import BatchAssembler
from .config import IngestionQueueConfig, load_worker_config
from .contracts import QueueJob, TypedEvent, event_type_prefix
from .errors import (
    ConfigurationError,
    FragmentStorageError,
    FragmentValidationError,
    IngestionQueueError,
    JobInputError,
    is_retryable,
    reason_code,
)
from .merge import EventMerger, MergeInvoker, ObjectStoreEventMerger
from .processor import IngestionJobProcessor, JobOutcome
from .schemas import EventSchemaValidator
from .storage import LocalFragmentStore, S3FragmentStore, build_fragment_store

__all__ = [
    "BatchAssembler",
    "ConfigurationError",
    "EventMerger",
    "EventSchemaValidator",
    "FragmentStorageError",
    "FragmentValidationError",
    "IngestionJobProcessor",
    "IngestionQueueConfig",
    "IngestionQueueError",
    "JobInputError",
    "JobOutcome",
    "LocalFragmentStore",
    "MergeInvoker",
    "ObjectStoreEventMerger",
    "QueueJob",
    "S3FragmentStore",
    "TypedEvent",
    "build_fragment_store",
    "event_type_prefix",
    "is_retryable",
    "load_worker_config",
    "reason_code",
]
