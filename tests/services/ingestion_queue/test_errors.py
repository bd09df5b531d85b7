from __future__ import annotations

from ingestion_worker.ingestion_queue.errors import (
    ConfigurationError,
    FragmentStorageError,
    FragmentValidationError,
    JobInputError,
    is_retryable,
    reason_code,
)


def test_reason_code_prefers_error_code() -> None:
    assert reason_code(ConfigurationError("S3_EVENT_STORE_DISABLED")) == "S3_EVENT_STORE_DISABLED"
    assert reason_code(RuntimeError("S3_APPEND_CONFLICT")) == "S3_APPEND_CONFLICT"
    assert reason_code(RuntimeError("MERGE_FAILED: lock timeout")) == "MERGE_FAILED"
    assert reason_code(ValueError("boom")) == "INTERNAL_ERROR"


def test_retryable_split_between_permanent_and_transient() -> None:
    assert not is_retryable(ConfigurationError("MERGER_UNAVAILABLE"))
    assert not is_retryable(JobInputError("EVENT_NAME_NOT_FOUND"))
    assert not is_retryable(FragmentValidationError("k", "a", "b"))
    assert is_retryable(FragmentStorageError("FRAGMENT_DOWNLOAD_FAILED", "k", "timeout"))
    assert is_retryable(RuntimeError("merge exploded"))


def test_validation_error_keeps_both_schema_messages() -> None:
    exc = FragmentValidationError("p1/trace/b1/a.json", "not an array", "missing id")
    assert exc.key == "p1/trace/b1/a.json"
    assert "not an array" in str(exc)
    assert "missing id" in str(exc)
    assert exc.code == "FRAGMENT_SCHEMA_INVALID"
