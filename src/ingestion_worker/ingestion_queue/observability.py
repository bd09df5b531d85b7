"""Ingestion queue diagnostics sink and queue-depth probing."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import traceback
from typing import Any, Mapping, Protocol

from .errors import is_retryable, reason_code
from .metrics import QUEUE_LENGTH_GAUGE, UNIT_RECORDS, MetricsRecorder
from .storage import FragmentStore


logger = logging.getLogger(__name__)


class DiagnosticsSink(Protocol):
    def capture_exception(self, exc: BaseException, context: Mapping[str, Any]) -> None:
        ...


class QueueDepthProbe(Protocol):
    def count(self) -> int:
        ...


@dataclass
class LoggingDiagnosticsSink:
    """Logs failures with traceback and optionally appends them to a JSONL path."""

    store: FragmentStore | None = None
    path: str | None = None

    def capture_exception(self, exc: BaseException, context: Mapping[str, Any]) -> None:
        record = build_failure_record(exc, context)
        logger.warning(
            "Ingestion queue failure captured code=%s retryable=%s context=%s",
            record["reason_code"],
            record["retryable"],
            dict(context),
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        if self.store is None or not self.path:
            return
        try:
            self.store.append_jsonl(self.path, [record])
        except Exception:
            logger.warning("Ingestion queue diagnostics write failed path=%s", self.path, exc_info=True)


def build_failure_record(exc: BaseException, context: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "observed_at_utc": _utc_now(),
        "reason_code": reason_code(exc),
        "retryable": is_retryable(exc),
        "error_type": type(exc).__name__,
        "message": str(exc)[:1024],
        "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))[-4096:],
        "context": {str(k): str(v) for k, v in context.items()},
    }


def record_queue_depth(probe: QueueDepthProbe | None, metrics: MetricsRecorder) -> int | None:
    """Best-effort queue length gauge; never raises."""
    if probe is None:
        return None
    try:
        count = int(probe.count())
    except Exception:
        logger.debug("Ingestion queue length probe failed", exc_info=True)
        return None
    logger.debug("Ingestion queue length: %s", count)
    try:
        metrics.gauge(QUEUE_LENGTH_GAUGE, count, unit=UNIT_RECORDS)
    except Exception:
        logger.debug("Ingestion queue length gauge failed", exc_info=True)
    return count


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()
