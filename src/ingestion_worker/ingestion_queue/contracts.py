"""Ingestion queue contracts: queue jobs and typed events."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .errors import JobInputError


TRACE_ENTITY = "trace"
OBSERVATION_ENTITY = "observation"
SCORE_ENTITY = "score"
DATASET_RUN_ITEM_ENTITY = "dataset_run_item"

_ENTITY_BY_EVENT_TYPE: dict[str, str] = {
    "trace-create": TRACE_ENTITY,
    "score-create": SCORE_ENTITY,
    "dataset-run-item-create": DATASET_RUN_ITEM_ENTITY,
    "span-create": OBSERVATION_ENTITY,
    "span-update": OBSERVATION_ENTITY,
    "generation-create": OBSERVATION_ENTITY,
    "generation-update": OBSERVATION_ENTITY,
    "event-create": OBSERVATION_ENTITY,
    "observation-create": OBSERVATION_ENTITY,
    "observation-update": OBSERVATION_ENTITY,
    "agent-create": OBSERVATION_ENTITY,
    "tool-create": OBSERVATION_ENTITY,
    "chain-create": OBSERVATION_ENTITY,
    "retriever-create": OBSERVATION_ENTITY,
    "evaluator-create": OBSERVATION_ENTITY,
    "embedding-create": OBSERVATION_ENTITY,
    "guardrail-create": OBSERVATION_ENTITY,
}

# Accepted by the event schema but never written to the analytical store.
UNPERSISTED_EVENT_TYPES: frozenset[str] = frozenset({"sdk-log"})

EVENT_TYPES: tuple[str, ...] = tuple(sorted(set(_ENTITY_BY_EVENT_TYPE) | UNPERSISTED_EVENT_TYPES))


def event_type_prefix(type_tag: str) -> str:
    """Return the part of a dash-delimited type tag before the first dash."""
    prefix = str(type_tag or "").split("-", 1)[0]
    if not prefix:
        raise JobInputError("EVENT_NAME_NOT_FOUND", repr(type_tag))
    return prefix


def entity_type_for(event_type: str) -> str:
    entity = _ENTITY_BY_EVENT_TYPE.get(event_type)
    if entity is None:
        raise JobInputError("ENTITY_TYPE_UNSUPPORTED", event_type)
    return entity


@dataclass(frozen=True)
class QueueJob:
    project_id: str
    event_type_tag: str
    event_body_id: str
    enqueued_at_ms: int
    payload_data: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, timestamp_ms: int | float) -> "QueueJob":
        if not isinstance(payload, Mapping):
            raise JobInputError("JOB_PAYLOAD_INVALID", "payload must be a mapping")
        auth_check = payload.get("authCheck") if isinstance(payload.get("authCheck"), Mapping) else {}
        scope = auth_check.get("scope") if isinstance(auth_check.get("scope"), Mapping) else {}
        data = payload.get("data") if isinstance(payload.get("data"), Mapping) else {}
        return cls(
            project_id=_key_segment(scope.get("projectId"), "authCheck.scope.projectId"),
            event_type_tag=_required(data.get("type"), "data.type"),
            event_body_id=_key_segment(data.get("eventBodyId"), "data.eventBodyId"),
            enqueued_at_ms=int(timestamp_ms),
            payload_data=dict(data),
        )

    @property
    def event_name(self) -> str:
        return event_type_prefix(self.event_type_tag)

    def fragment_prefix(self, upload_prefix: str = "") -> str:
        return f"{upload_prefix}{self.project_id}/{self.event_name}/{self.event_body_id}/"


@dataclass(frozen=True)
class TypedEvent:
    event_id: str
    event_type: str
    timestamp: str | None
    body: Mapping[str, Any]
    metadata: Mapping[str, Any] | None
    record: Mapping[str, Any]

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "TypedEvent":
        body = record.get("body")
        metadata = record.get("metadata")
        return cls(
            event_id=str(record["id"]),
            event_type=str(record["type"]),
            timestamp=record.get("timestamp"),
            body=dict(body) if isinstance(body, Mapping) else {},
            metadata=dict(metadata) if isinstance(metadata, Mapping) else None,
            record=dict(record),
        )

    @property
    def entity_type(self) -> str:
        return entity_type_for(self.event_type)

    def as_dict(self) -> dict[str, Any]:
        return dict(self.record)


def _required(value: Any, field_name: str) -> str:
    text = str(value or "")
    if not text.strip():
        raise JobInputError("JOB_PAYLOAD_INVALID", f"{field_name} is required")
    return text


def _key_segment(value: Any, field_name: str) -> str:
    """Ids become object-key segments; relative path parts are refused."""
    text = _required(value, field_name)
    if any(part in {".", ".."} for part in text.replace("\\", "/").split("/")):
        raise JobInputError("JOB_PAYLOAD_INVALID", f"{field_name} is not a valid key segment: {text!r}")
    return text
