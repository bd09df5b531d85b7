from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from ingestion_worker.ingestion_queue.contracts import (
    EVENT_TYPES,
    QueueJob,
    TypedEvent,
    entity_type_for,
    event_type_prefix,
)
from ingestion_worker.ingestion_queue.errors import JobInputError
from ingestion_worker.ingestion_queue.schemas import EVENT_SCHEMA, SCHEMA_ROOT


def _payload() -> dict:
    return {
        "authCheck": {"scope": {"projectId": "p1"}},
        "data": {"type": "trace-create", "eventBodyId": "b1"},
    }


def test_queue_job_from_payload_reads_coordinates() -> None:
    job = QueueJob.from_payload(_payload(), timestamp_ms=1_700_000_000_000)
    assert job.project_id == "p1"
    assert job.event_type_tag == "trace-create"
    assert job.event_body_id == "b1"
    assert job.enqueued_at_ms == 1_700_000_000_000
    assert job.event_name == "trace"
    assert job.fragment_prefix("events/") == "events/p1/trace/b1/"
    assert job.fragment_prefix() == "p1/trace/b1/"


@pytest.mark.parametrize("missing", ["projectId", "type", "eventBodyId"])
def test_queue_job_requires_coordinates(missing: str) -> None:
    payload = _payload()
    if missing == "projectId":
        payload["authCheck"]["scope"].pop("projectId")
    else:
        payload["data"].pop(missing)
    with pytest.raises(JobInputError) as excinfo:
        QueueJob.from_payload(payload, timestamp_ms=0)
    assert excinfo.value.code == "JOB_PAYLOAD_INVALID"


def test_event_type_prefix_takes_text_before_first_dash() -> None:
    assert event_type_prefix("trace-create") == "trace"
    assert event_type_prefix("dataset-run-item-create") == "dataset"
    assert event_type_prefix("sdk") == "sdk"


def test_event_type_prefix_fails_without_prefix() -> None:
    with pytest.raises(JobInputError) as excinfo:
        event_type_prefix("-create")
    assert excinfo.value.code == "EVENT_NAME_NOT_FOUND"
    job = QueueJob(project_id="p1", event_type_tag="-create", event_body_id="b1", enqueued_at_ms=0)
    with pytest.raises(JobInputError):
        job.fragment_prefix()


def test_entity_type_mapping() -> None:
    assert entity_type_for("trace-create") == "trace"
    assert entity_type_for("score-create") == "score"
    assert entity_type_for("dataset-run-item-create") == "dataset_run_item"
    assert entity_type_for("generation-update") == "observation"
    assert entity_type_for("guardrail-create") == "observation"
    with pytest.raises(JobInputError) as excinfo:
        entity_type_for("sdk-log")
    assert excinfo.value.code == "ENTITY_TYPE_UNSUPPORTED"


def test_event_types_match_event_schema_enum() -> None:
    schema = yaml.safe_load((Path(SCHEMA_ROOT) / EVENT_SCHEMA).read_text(encoding="utf-8"))
    assert tuple(sorted(schema["properties"]["type"]["enum"])) == EVENT_TYPES


def test_typed_event_from_record_keeps_full_record() -> None:
    record = {"id": "t1", "type": "trace-create", "timestamp": "2026-01-01T00:00:00Z", "body": {"name": "n"}, "extra": 1}
    event = TypedEvent.from_record(record)
    assert event.event_id == "t1"
    assert event.body == {"name": "n"}
    assert event.metadata is None
    assert event.entity_type == "trace"
    assert event.as_dict() == record


@pytest.mark.parametrize(
    ("field", "value"),
    [("projectId", "../../escaped"), ("projectId", "."), ("eventBodyId", "b1/../../x"), ("eventBodyId", "..\\x")],
)
def test_queue_job_refuses_relative_path_ids(field: str, value: str) -> None:
    payload = _payload()
    if field == "projectId":
        payload["authCheck"]["scope"]["projectId"] = value
    else:
        payload["data"]["eventBodyId"] = value
    with pytest.raises(JobInputError) as excinfo:
        QueueJob.from_payload(payload, timestamp_ms=0)
    assert excinfo.value.code == "JOB_PAYLOAD_INVALID"
    assert not excinfo.value.retryable


def test_queue_job_keeps_ids_and_type_verbatim() -> None:
    payload = _payload()
    payload["authCheck"]["scope"]["projectId"] = " p1 "
    payload["data"]["type"] = " trace-create"
    job = QueueJob.from_payload(payload, timestamp_ms=0)
    assert job.project_id == " p1 "
    assert job.event_name == " trace"
    assert job.fragment_prefix() == " p1 / trace/b1/"
