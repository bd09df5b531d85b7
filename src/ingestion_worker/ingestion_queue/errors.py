"""Ingestion queue error taxonomy and helpers."""

from __future__ import annotations


class IngestionQueueError(RuntimeError):
    """Stable error surfaced to the queue as a reason code."""

    retryable: bool = False

    def __init__(self, code: str, detail: str | None = None) -> None:
        self.code = code
        self.detail = detail
        message = f"{code}:{detail}" if detail else code
        super().__init__(message)


class ConfigurationError(IngestionQueueError):
    """Required flag, bucket, profile entry or merger is missing."""


class JobInputError(IngestionQueueError):
    """The job payload cannot be turned into fragment coordinates."""


class FragmentStorageError(IngestionQueueError):
    """Listing, downloading or writing an object failed."""

    retryable = True

    def __init__(self, code: str, key: str, detail: str | None = None, *, retryable: bool = True) -> None:
        self.key = key
        self.retryable = retryable
        super().__init__(code, f"{key}:{detail}" if detail else key)


class FragmentValidationError(IngestionQueueError):
    """A fragment matched neither the batch nor the single-event schema."""

    def __init__(self, key: str, batch_error: str, event_error: str) -> None:
        self.key = key
        self.batch_error = batch_error
        self.event_error = event_error
        super().__init__(
            "FRAGMENT_SCHEMA_INVALID",
            f"{key}: batch shape: {batch_error}; single event shape: {event_error}",
        )


def reason_code(exc: BaseException) -> str:
    if isinstance(exc, IngestionQueueError):
        return exc.code
    text = str(exc or "").strip()
    if text.isupper():
        return text
    if ":" in text:
        head = text.split(":", 1)[0].strip()
        if head.isupper():
            return head
    return "INTERNAL_ERROR"


def is_retryable(exc: BaseException) -> bool:
    """Permanent failures (config, input, schema) are not worth redelivering.

    Errors raised outside this package, such as merge failures, keep the
    queue's default retry behaviour.
    """
    if isinstance(exc, IngestionQueueError):
        return exc.retryable
    return True
