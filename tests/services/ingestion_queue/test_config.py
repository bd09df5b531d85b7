from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from ingestion_worker.ingestion_queue.config import IngestionQueueConfig, load_worker_config
from ingestion_worker.ingestion_queue.errors import ConfigurationError


def _write_profile(path: Path, wiring: dict) -> Path:
    payload = {"profile_id": "local_test", "ingestion_queue": {"wiring": wiring}}
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return path


def test_load_worker_config_resolves_env_placeholders(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("EVENT_UPLOAD_BUCKET", "events-bucket")
    monkeypatch.delenv("EVENT_UPLOAD_PREFIX", raising=False)
    profile = _write_profile(
        tmp_path / "profile.yaml",
        {
            "event_upload_enabled": "true",
            "event_upload_bucket": "${EVENT_UPLOAD_BUCKET:-}",
            "event_upload_prefix": "${EVENT_UPLOAD_PREFIX:-events/}",
            "object_store_path_style": True,
            "fragment_concurrency": 4,
        },
    )
    config = load_worker_config(profile)
    assert config.profile_id == "local_test"
    assert config.event_upload_enabled is True
    assert config.event_upload_bucket == "events-bucket"
    assert config.event_upload_prefix == "events/"
    assert config.object_store_path_style is True
    assert config.fragment_concurrency == 4
    assert config.require_event_store() == "events-bucket"


def test_load_worker_config_defaults_when_section_missing(tmp_path: Path) -> None:
    profile = tmp_path / "profile.yaml"
    profile.write_text("profile_id: bare\n", encoding="utf-8")
    config = load_worker_config(profile)
    assert config.event_upload_enabled is False
    assert config.fragment_concurrency == 16
    with pytest.raises(ConfigurationError):
        config.require_event_store()


def test_load_worker_config_rejects_non_mapping(tmp_path: Path) -> None:
    profile = tmp_path / "profile.yaml"
    profile.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationError) as excinfo:
        load_worker_config(profile)
    assert excinfo.value.code == "PROFILE_INVALID"


def test_load_worker_config_rejects_bad_concurrency(tmp_path: Path) -> None:
    profile = _write_profile(tmp_path / "profile.yaml", {"fragment_concurrency": "many"})
    with pytest.raises(ConfigurationError):
        load_worker_config(profile)


def test_from_env_reads_upload_settings() -> None:
    config = IngestionQueueConfig.from_env(
        {
            "EVENT_UPLOAD_ENABLED": "true",
            "EVENT_UPLOAD_BUCKET": "events-bucket",
            "EVENT_UPLOAD_PREFIX": "events/",
            "EVENT_UPLOAD_ENDPOINT": "http://localhost:9000",
            "EVENT_UPLOAD_REGION": "auto",
            "EVENT_UPLOAD_FORCE_PATH_STYLE": "true",
            "EVENT_UPLOAD_ACCESS_KEY_ID": "minio",
            "EVENT_UPLOAD_SECRET_ACCESS_KEY": "miniosecret",
            "INGESTION_QUEUE_FRAGMENT_CONCURRENCY": "0",
        }
    )
    assert config.event_upload_enabled is True
    assert config.object_store_endpoint == "http://localhost:9000"
    assert config.object_store_path_style is True
    assert config.access_key_id == "minio"
    assert config.fragment_concurrency == 1
    assert config.log_level == "INFO"


def test_from_env_disabled_by_default() -> None:
    config = IngestionQueueConfig.from_env({})
    assert config.event_upload_enabled is False
    assert config.event_upload_bucket is None
