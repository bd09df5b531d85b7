"""Merge invocation: the single hand-off to the merge-and-persist component."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Protocol, Sequence

from .contracts import TypedEvent
from .errors import ConfigurationError
from .storage import ArtifactRef, FragmentStore


logger = logging.getLogger(__name__)


class EventMerger(Protocol):
    def merge_and_write(
        self,
        entity_type: str,
        project_id: str,
        event_body_id: str,
        events: Sequence[TypedEvent],
    ) -> Any:
        ...


@dataclass
class MergeInvoker:
    merger: EventMerger | None

    def merge(
        self,
        entity_type: str,
        project_id: str,
        event_body_id: str,
        events: Sequence[TypedEvent],
    ) -> None:
        if self.merger is None:
            raise ConfigurationError("MERGER_UNAVAILABLE", "no merge-and-persist component configured")
        if not events:
            raise ValueError("merge requires a non-empty event batch")
        self.merger.merge_and_write(entity_type, project_id, event_body_id, list(events))


@dataclass
class ObjectStoreEventMerger:
    """Local stand-in merger: appends each batch as JSON lines.

    Keeps no state between calls and does not reconcile against earlier
    batches; duplicate deliveries append duplicate lines.
    """

    store: FragmentStore
    prefix: str = "merged"

    def merge_and_write(
        self,
        entity_type: str,
        project_id: str,
        event_body_id: str,
        events: Sequence[TypedEvent],
    ) -> ArtifactRef:
        key = f"{project_id}/{entity_type}/{event_body_id}.jsonl"
        if self.prefix.strip("/"):
            key = f"{self.prefix.strip('/')}/{key}"
        ref = self.store.append_jsonl(key, (event.as_dict() for event in events))
        logger.info("Merged %s %s events into %s", len(events), entity_type, ref.path)
        return ref
