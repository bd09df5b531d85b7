"""In-process metrics aggregation (log-flushed)."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)
narrative_logger = logging.getLogger("ingestion_worker.platform_narrative")

REQUEST_COUNTER = "ingestion_queue.request"
WAIT_TIME_HISTOGRAM = "ingestion_queue.wait_time"
QUEUE_LENGTH_GAUGE = "ingestion_queue.length"
PROCESSING_TIME_HISTOGRAM = "ingestion_queue.processing_time"

UNIT_MILLISECONDS = "milliseconds"
UNIT_RECORDS = "records"


@dataclass
class MetricsRecorder:
    flush_interval_seconds: int = 30
    counters: dict[str, int] = field(default_factory=dict)
    gauges: dict[str, float] = field(default_factory=dict)
    histograms: dict[str, list[float]] = field(default_factory=dict)
    units: dict[str, str] = field(default_factory=dict)
    last_flush_ts: float = field(default_factory=time.time)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + amount

    def gauge(self, name: str, value: float, *, unit: str | None = None) -> None:
        with self._lock:
            self.gauges[name] = value
            if unit:
                self.units[name] = unit

    def histogram(self, name: str, value: float, *, unit: str | None = None) -> None:
        with self._lock:
            self.histograms.setdefault(name, []).append(value)
            if unit:
                self.units[name] = unit

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self.counters),
                "gauges": dict(self.gauges),
                "histograms": {k: _summarize(v) for k, v in self.histograms.items()},
                "units": dict(self.units),
            }

    def flush_if_due(self, context: dict[str, Any] | None = None) -> None:
        now = time.time()
        if (now - self.last_flush_ts) < self.flush_interval_seconds:
            return
        payload = self.snapshot()
        if context:
            payload["context"] = context
        logger.info("Ingestion queue metrics %s", payload)
        if payload["counters"]:
            narrative_logger.info(
                "Ingestion queue summary requests=%s queue_length=%s",
                payload["counters"].get(REQUEST_COUNTER, 0),
                payload["gauges"].get(QUEUE_LENGTH_GAUGE),
            )
        with self._lock:
            self.counters.clear()
            self.histograms.clear()
            self.last_flush_ts = now


def safe_record(action: Callable[[], Any], *, what: str) -> None:
    """Run one telemetry call; a failure is logged and dropped."""
    try:
        action()
    except Exception:
        logger.debug("Ingestion queue telemetry %s failed", what, exc_info=True)


def _summarize(values: list[float]) -> dict[str, float]:
    if not values:
        return {"count": 0}
    values_sorted = sorted(values)
    count = len(values_sorted)
    return {
        "count": count,
        "min": values_sorted[0],
        "max": values_sorted[-1],
        "p50": values_sorted[count // 2],
        "p95": values_sorted[max(int(count * 0.95) - 1, 0)],
    }
