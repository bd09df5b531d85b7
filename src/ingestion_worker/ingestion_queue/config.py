"""Ingestion queue configuration loaders (profile + environment)."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import re
from typing import Any, Mapping

import yaml

from .errors import ConfigurationError


_ENV_PATTERN = re.compile(r"^\$\{([^}:]+)(?::-([^}]*))?\}$")
_TRUE_VALUES = {"1", "true", "yes"}

DEFAULT_FRAGMENT_CONCURRENCY = 16


@dataclass(frozen=True)
class IngestionQueueConfig:
    profile_id: str = "local"
    event_upload_enabled: bool = False
    event_upload_bucket: str | None = None
    event_upload_prefix: str = ""
    object_store_root: str | None = None
    object_store_endpoint: str | None = None
    object_store_region: str | None = None
    object_store_path_style: bool = False
    access_key_id: str | None = None
    secret_access_key: str | None = None
    fragment_concurrency: int = DEFAULT_FRAGMENT_CONCURRENCY
    merge_output_root: str | None = None
    diagnostics_path: str | None = None
    metrics_flush_seconds: int = 30
    log_level: str = "INFO"

    def require_event_store(self) -> str:
        """Return the bucket, or fail when the blob-backed flow is off."""
        if not self.event_upload_enabled or not self.event_upload_bucket:
            raise ConfigurationError(
                "S3_EVENT_STORE_DISABLED",
                "event upload must be enabled and a bucket configured",
            )
        return self.event_upload_bucket

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "IngestionQueueConfig":
        env = os.environ if environ is None else environ
        return cls.from_mapping(
            {
                "event_upload_enabled": env.get("EVENT_UPLOAD_ENABLED"),
                "event_upload_bucket": env.get("EVENT_UPLOAD_BUCKET"),
                "event_upload_prefix": env.get("EVENT_UPLOAD_PREFIX"),
                "object_store_root": env.get("EVENT_UPLOAD_ROOT"),
                "object_store_endpoint": env.get("EVENT_UPLOAD_ENDPOINT"),
                "object_store_region": env.get("EVENT_UPLOAD_REGION"),
                "object_store_path_style": env.get("EVENT_UPLOAD_FORCE_PATH_STYLE"),
                "access_key_id": env.get("EVENT_UPLOAD_ACCESS_KEY_ID"),
                "secret_access_key": env.get("EVENT_UPLOAD_SECRET_ACCESS_KEY"),
                "fragment_concurrency": env.get("INGESTION_QUEUE_FRAGMENT_CONCURRENCY"),
                "merge_output_root": env.get("INGESTION_QUEUE_MERGE_OUTPUT_ROOT"),
                "diagnostics_path": env.get("INGESTION_QUEUE_DIAGNOSTICS_PATH"),
                "metrics_flush_seconds": env.get("INGESTION_QUEUE_METRICS_FLUSH_SECONDS"),
                "log_level": env.get("LOG_LEVEL"),
            }
        )

    @classmethod
    def from_mapping(cls, wiring: Mapping[str, Any], *, profile_id: str = "local") -> "IngestionQueueConfig":
        try:
            concurrency = int(_env(wiring.get("fragment_concurrency")) or DEFAULT_FRAGMENT_CONCURRENCY)
            flush_seconds = int(_env(wiring.get("metrics_flush_seconds")) or 30)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError("PROFILE_INVALID", str(exc)) from exc
        return cls(
            profile_id=profile_id,
            event_upload_enabled=_flag(wiring.get("event_upload_enabled")),
            event_upload_bucket=_none_if_blank(_env(wiring.get("event_upload_bucket"))),
            event_upload_prefix=str(_env(wiring.get("event_upload_prefix")) or ""),
            object_store_root=_none_if_blank(_env(wiring.get("object_store_root"))),
            object_store_endpoint=_none_if_blank(_env(wiring.get("object_store_endpoint"))),
            object_store_region=_none_if_blank(_env(wiring.get("object_store_region"))),
            object_store_path_style=_flag(wiring.get("object_store_path_style")),
            access_key_id=_none_if_blank(_env(wiring.get("access_key_id"))),
            secret_access_key=_none_if_blank(_env(wiring.get("secret_access_key"))),
            fragment_concurrency=max(1, concurrency),
            merge_output_root=_none_if_blank(_env(wiring.get("merge_output_root"))),
            diagnostics_path=_none_if_blank(_env(wiring.get("diagnostics_path"))),
            metrics_flush_seconds=max(0, flush_seconds),
            log_level=str(_env(wiring.get("log_level")) or "INFO").strip().upper(),
        )


def load_worker_config(profile_path: Path) -> IngestionQueueConfig:
    payload = yaml.safe_load(profile_path.read_text(encoding="utf-8"))
    if not isinstance(payload, Mapping):
        raise ConfigurationError("PROFILE_INVALID", str(profile_path))
    profile_id = str(payload.get("profile_id") or "local").strip() or "local"
    section = payload.get("ingestion_queue") if isinstance(payload.get("ingestion_queue"), Mapping) else {}
    wiring = section.get("wiring") if isinstance(section.get("wiring"), Mapping) else {}
    return IngestionQueueConfig.from_mapping(wiring, profile_id=profile_id)


def _env(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    token = value.strip()
    match = _ENV_PATTERN.fullmatch(token)
    if not match:
        return value
    return os.getenv(match.group(1), match.group(2) or "")


def _flag(value: Any) -> bool:
    resolved = _env(value)
    if isinstance(resolved, bool):
        return resolved
    return str(resolved or "").strip().lower() in _TRUE_VALUES


def _none_if_blank(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None
