"""Ingestion queue job processor: one attempt per claimed queue job."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any, Callable, Mapping

from .assembler import BatchAssembler
from .config import IngestionQueueConfig
from .contracts import QueueJob
from .merge import MergeInvoker
from .metrics import (
    PROCESSING_TIME_HISTOGRAM,
    REQUEST_COUNTER,
    UNIT_MILLISECONDS,
    WAIT_TIME_HISTOGRAM,
    MetricsRecorder,
    safe_record,
)
from .observability import DiagnosticsSink, LoggingDiagnosticsSink, QueueDepthProbe, record_queue_depth


logger = logging.getLogger(__name__)

OUTCOME_COMPLETED = "COMPLETED"
OUTCOME_SKIPPED_EMPTY = "SKIPPED_EMPTY"


@dataclass(frozen=True)
class JobOutcome:
    status: str
    project_id: str
    event_body_id: str
    event_count: int
    entity_type: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "project_id": self.project_id,
            "event_body_id": self.event_body_id,
            "event_count": self.event_count,
            "entity_type": self.entity_type,
        }


def _now_ms() -> int:
    return int(time.time() * 1000)


class IngestionJobProcessor:
    """Runs assemble -> merge -> telemetry under one failure boundary.

    Any failure is logged with the tenant, handed to the diagnostics sink and
    re-raised; retry and dead-lettering belong to the queue.
    """

    def __init__(
        self,
        config: IngestionQueueConfig,
        assembler: BatchAssembler,
        merge_invoker: MergeInvoker,
        *,
        metrics: MetricsRecorder | None = None,
        diagnostics: DiagnosticsSink | None = None,
        queue_probe: QueueDepthProbe | None = None,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self.config = config
        self.assembler = assembler
        self.merge_invoker = merge_invoker
        self.metrics = metrics or MetricsRecorder(flush_interval_seconds=config.metrics_flush_seconds)
        self.diagnostics = diagnostics or LoggingDiagnosticsSink()
        self.queue_probe = queue_probe
        self.clock_ms = clock_ms

    def process_payload(self, payload: Mapping[str, Any], *, timestamp_ms: int | float) -> JobOutcome:
        try:
            job = QueueJob.from_payload(payload, timestamp_ms=timestamp_ms)
        except Exception as exc:
            self._report_failure(exc, project_id=_project_id_hint(payload))
            raise
        return self.process(job)

    def process(self, job: QueueJob) -> JobOutcome:
        started_ms = self.clock_ms()
        safe_record(lambda: self.metrics.increment(REQUEST_COUNTER), what="request counter")
        try:
            self.config.require_event_store()
            event_name = job.event_name
            logger.info(
                "Processing ingestion event project_id=%s event=%s payload=%s",
                job.project_id,
                event_name,
                dict(job.payload_data),
            )
            events = self.assembler.assemble(job)
            if not events:
                logger.warning(
                    "No events found for project %s and event %s",
                    job.project_id,
                    job.event_body_id,
                )
                outcome = JobOutcome(
                    status=OUTCOME_SKIPPED_EMPTY,
                    project_id=job.project_id,
                    event_body_id=job.event_body_id,
                    event_count=0,
                )
            else:
                entity_type = events[0].entity_type
                self.merge_invoker.merge(entity_type, job.project_id, job.event_body_id, events)
                outcome = JobOutcome(
                    status=OUTCOME_COMPLETED,
                    project_id=job.project_id,
                    event_body_id=job.event_body_id,
                    event_count=len(events),
                    entity_type=entity_type,
                )
        except Exception as exc:
            self._report_failure(exc, project_id=job.project_id, event_body_id=job.event_body_id)
            raise
        self._record_success(job, started_ms)
        return outcome

    def _record_success(self, job: QueueJob, started_ms: int) -> None:
        wait_ms = self.clock_ms() - job.enqueued_at_ms
        safe_record(
            lambda: self.metrics.histogram(WAIT_TIME_HISTOGRAM, wait_ms, unit=UNIT_MILLISECONDS),
            what="wait time",
        )
        record_queue_depth(self.queue_probe, self.metrics)
        elapsed_ms = self.clock_ms() - started_ms
        safe_record(
            lambda: self.metrics.histogram(PROCESSING_TIME_HISTOGRAM, elapsed_ms, unit=UNIT_MILLISECONDS),
            what="processing time",
        )
        safe_record(lambda: self.metrics.flush_if_due(), what="flush")

    def _report_failure(self, exc: Exception, **context: Any) -> None:
        logger.error("Failed job ingestion processing for %s: %s", context.get("project_id"), exc)
        try:
            self.diagnostics.capture_exception(exc, context)
        except Exception:
            logger.warning("Ingestion queue diagnostics sink failed", exc_info=True)


def _project_id_hint(payload: Any) -> str | None:
    if not isinstance(payload, Mapping):
        return None
    auth_check = payload.get("authCheck")
    scope = auth_check.get("scope") if isinstance(auth_check, Mapping) else None
    project_id = scope.get("projectId") if isinstance(scope, Mapping) else None
    return str(project_id) if project_id else None
