"""Ingestion queue worker: composition root and single-job CLI."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import Any, Mapping

from .assembler import BatchAssembler
from .config import IngestionQueueConfig, load_worker_config
from .errors import ConfigurationError, JobInputError, is_retryable, reason_code
from .logging_utils import configure_worker_logging
from .merge import EventMerger, MergeInvoker, ObjectStoreEventMerger
from .metrics import MetricsRecorder
from .observability import DiagnosticsSink, LoggingDiagnosticsSink, QueueDepthProbe
from .processor import IngestionJobProcessor, JobOutcome
from .schemas import EventSchemaValidator
from .storage import FragmentStore, LocalFragmentStore, build_fragment_store, build_output_store


logger = logging.getLogger(__name__)


class IngestionQueueWorker:
    """Owns the process-lifetime collaborators shared by every job."""

    def __init__(
        self,
        config: IngestionQueueConfig,
        *,
        merger: EventMerger | None = None,
        queue_probe: QueueDepthProbe | None = None,
        store: FragmentStore | None = None,
        diagnostics: DiagnosticsSink | None = None,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self.config = config
        if store is None and config.event_upload_enabled and config.event_upload_bucket:
            store = build_fragment_store(config)
        # Left unset when the blob flow is off; every job then fails the config check.
        self.store = store
        self.metrics = metrics or MetricsRecorder(flush_interval_seconds=config.metrics_flush_seconds)
        if merger is None and config.merge_output_root:
            merge_store, merge_prefix = build_output_store(config.merge_output_root, config)
            merger = ObjectStoreEventMerger(store=merge_store, prefix=merge_prefix)
        self.processor = IngestionJobProcessor(
            config,
            BatchAssembler(
                store=self.store,
                validator=EventSchemaValidator(),
                upload_prefix=config.event_upload_prefix,
                max_workers=config.fragment_concurrency,
            ),
            MergeInvoker(merger=merger),
            metrics=self.metrics,
            diagnostics=diagnostics or _diagnostics_sink(config),
            queue_probe=queue_probe,
        )
        logger.info(
            "Ingestion queue worker ready profile=%s enabled=%s concurrency=%s merger=%s",
            config.profile_id,
            config.event_upload_enabled,
            config.fragment_concurrency,
            type(merger).__name__ if merger is not None else None,
        )

    def handle(self, job_record: Mapping[str, Any]) -> JobOutcome:
        """Process one queue job record shaped `{"payload": ..., "timestamp": ...}`."""
        if not isinstance(job_record, Mapping):
            raise JobInputError("JOB_PAYLOAD_INVALID", "job record must be a mapping")
        payload = job_record.get("payload")
        timestamp = job_record.get("timestamp")
        if timestamp is None:
            timestamp = self.processor.clock_ms()
        return self.processor.process_payload(payload if isinstance(payload, Mapping) else {}, timestamp_ms=timestamp)


def _diagnostics_sink(config: IngestionQueueConfig) -> DiagnosticsSink:
    if not config.diagnostics_path:
        return LoggingDiagnosticsSink()
    location = config.diagnostics_path.strip()
    if location.startswith("s3://"):
        store, key = build_output_store(location, config)
    else:
        path = Path(location)
        store, key = LocalFragmentStore(path.parent), path.name
    if not key:
        raise ConfigurationError("PROFILE_INVALID", f"diagnostics_path names no object: {location}")
    return LoggingDiagnosticsSink(store=store, path=key)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Ingestion queue worker (single job)")
    parser.add_argument("--profile", help="Path to worker profile YAML (defaults to environment variables)")
    parser.add_argument("--job", required=True, help="Path to a queue job JSON file, or '-' for stdin")
    parser.add_argument("--log-path", action="append", default=None, help="Additional log file path")
    args = parser.parse_args(argv)

    config = load_worker_config(Path(args.profile)) if args.profile else IngestionQueueConfig.from_env()
    configure_worker_logging(config.log_level, args.log_path)
    raw = sys.stdin.read() if args.job == "-" else Path(args.job).read_text(encoding="utf-8")
    job_record = json.loads(raw)

    worker = IngestionQueueWorker(config)
    try:
        outcome = worker.handle(job_record)
    except Exception as exc:
        print(
            json.dumps(
                {"status": "FAILED", "reason_code": reason_code(exc), "retryable": is_retryable(exc)},
                ensure_ascii=True,
            )
        )
        raise SystemExit(1) from exc
    print(json.dumps(outcome.as_dict(), ensure_ascii=True))


if __name__ == "__main__":
    main()
