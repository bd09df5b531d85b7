"""Batch assembly: list fragments, fetch + validate concurrently, flatten."""

from __future__ import annotations

from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
import logging

from .config import DEFAULT_FRAGMENT_CONCURRENCY
from .contracts import QueueJob, TypedEvent
from .schemas import EventSchemaValidator
from .storage import FragmentStore


logger = logging.getLogger(__name__)


@dataclass
class BatchAssembler:
    store: FragmentStore
    validator: EventSchemaValidator = field(default_factory=EventSchemaValidator)
    upload_prefix: str = ""
    max_workers: int = DEFAULT_FRAGMENT_CONCURRENCY

    def assemble(self, job: QueueJob) -> list[TypedEvent]:
        prefix = job.fragment_prefix(self.upload_prefix)
        keys = self.store.list_keys(prefix)
        logger.debug("Ingestion queue listed fragments prefix=%s count=%s", prefix, len(keys))
        if not keys:
            return []
        per_fragment = self._fetch_all(keys)
        return [event for events in per_fragment for event in events]

    def fetch_fragment(self, key: str) -> list[TypedEvent]:
        content = self.store.read_text(key)
        return self.validator.parse_fragment(key, content)

    def _fetch_all(self, keys: list[str]) -> list[list[TypedEvent]]:
        results: list[list[TypedEvent] | None] = [None] * len(keys)
        max_workers = max(1, min(self.max_workers, len(keys)))
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="fragment") as executor:
            futures = {executor.submit(self.fetch_fragment, key): index for index, key in enumerate(keys)}
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in pending:
                future.cancel()
            # Re-raise the earliest-listed failure among the settled fragments.
            for future in sorted(done, key=futures.__getitem__):
                exc = future.exception()
                if exc is not None:
                    raise exc
            for future in done:
                results[futures[future]] = future.result()
        return [events or [] for events in results]
