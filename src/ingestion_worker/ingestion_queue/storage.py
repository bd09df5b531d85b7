"""Fragment store clients (local + S3-compatible)."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Protocol

from .errors import ConfigurationError, FragmentStorageError

if TYPE_CHECKING:
    from .config import IngestionQueueConfig


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArtifactRef:
    path: str


class FragmentStore(Protocol):
    def list_keys(self, prefix: str) -> list[str]:
        ...

    def read_text(self, key: str) -> str:
        ...

    def append_jsonl(self, key: str, records: Iterable[dict[str, Any]]) -> ArtifactRef:
        ...


class LocalFragmentStore:
    """Directory-backed store; keys are `/`-separated paths under `root`."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self._resolved_root = root.resolve()

    def _full_path(self, key: str) -> Path:
        path = (self._resolved_root / key.lstrip("/")).resolve()
        if not path.is_relative_to(self._resolved_root):
            raise FragmentStorageError("FRAGMENT_KEY_OUTSIDE_ROOT", key, str(self.root), retryable=False)
        return path

    def list_keys(self, prefix: str) -> list[str]:
        base = self._full_path(prefix)
        try:
            if not base.is_dir():
                return []
            keys = [path.relative_to(self._resolved_root).as_posix() for path in base.rglob("*") if path.is_file()]
        except OSError as exc:
            raise FragmentStorageError("FRAGMENT_LIST_FAILED", prefix, str(exc)) from exc
        # Lexicographic like an S3 listing, so both stores agree on fragment order.
        return sorted(keys)

    def read_text(self, key: str) -> str:
        try:
            return self._full_path(key).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FragmentStorageError("FRAGMENT_DOWNLOAD_FAILED", key, str(exc)) from exc

    def append_jsonl(self, key: str, records: Iterable[dict[str, Any]]) -> ArtifactRef:
        path = self._full_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            for record in records:
                line = json.dumps(record, sort_keys=True, ensure_ascii=True, separators=(",", ":"))
                handle.write(line + "\n")
        return ArtifactRef(path=str(path))


class S3FragmentStore:
    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        path_style: bool | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ) -> None:
        import boto3
        from botocore.config import Config

        self.bucket = bucket
        config = None
        if path_style:
            config = Config(s3={"addressing_style": "path"})
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region_name,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=config,
        )

    def list_keys(self, prefix: str) -> list[str]:
        from botocore.exceptions import BotoCoreError, ClientError

        paginator = self._client.get_paginator("list_objects_v2")
        keys: list[str] = []
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    keys.append(item["Key"])
        except (BotoCoreError, ClientError) as exc:
            raise FragmentStorageError("FRAGMENT_LIST_FAILED", prefix, str(exc)) from exc
        return keys

    def read_text(self, key: str) -> str:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read().decode("utf-8")
        except (BotoCoreError, ClientError, UnicodeDecodeError) as exc:
            raise FragmentStorageError("FRAGMENT_DOWNLOAD_FAILED", key, str(exc)) from exc

    def append_jsonl(self, key: str, records: Iterable[dict[str, Any]]) -> ArtifactRef:
        from botocore.exceptions import ClientError

        existing = ""
        etag = None
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            existing = response["Body"].read().decode("utf-8")
            etag = response.get("ETag")
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code")
            if error_code not in {"404", "NoSuchKey", "NotFound"}:
                raise
        lines = [json.dumps(record, sort_keys=True, ensure_ascii=True, separators=(",", ":")) for record in records]
        content = existing + "".join(line + "\n" for line in lines)
        condition = {"IfMatch": etag} if etag else {"IfNoneMatch": "*"}
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=content.encode("utf-8"), **condition)
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code")
            if error_code in {"PreconditionFailed", "412"}:
                raise RuntimeError("S3_APPEND_CONFLICT") from exc
            raise
        return ArtifactRef(path=f"s3://{self.bucket}/{key}")


def build_fragment_store(config: "IngestionQueueConfig") -> FragmentStore:
    """Build the store the processor reads fragments from.

    A local `object_store_root` wins over the bucket so local runs never touch
    S3; otherwise the configured bucket is required.
    """
    root = str(config.object_store_root or "").strip()
    if root and not root.startswith("s3://"):
        return LocalFragmentStore(Path(root))
    bucket = config.event_upload_bucket
    if root.startswith("s3://"):
        bucket = root[len("s3://"):].split("/", 1)[0] or bucket
    if not bucket:
        raise ConfigurationError("S3_EVENT_STORE_DISABLED", "event upload bucket is not configured")
    logger.info("Ingestion queue fragment store bucket=%s", bucket)
    return _s3_store(bucket, config)


def build_output_store(location: str, config: "IngestionQueueConfig") -> tuple[FragmentStore, str]:
    """Resolve an output location (merged events, diagnostics) to a store and key prefix.

    `s3://bucket/prefix` goes to S3 with the same endpoint and credentials as
    the fragment store; anything else is a local directory with no prefix.
    """
    text = str(location or "").strip()
    if not text.startswith("s3://"):
        return LocalFragmentStore(Path(text)), ""
    bucket, _, prefix = text[len("s3://"):].partition("/")
    if not bucket:
        raise ConfigurationError("PROFILE_INVALID", f"no bucket in output location {text}")
    return _s3_store(bucket, config), prefix.strip("/")


def _s3_store(bucket: str, config: "IngestionQueueConfig") -> S3FragmentStore:
    endpoint = config.object_store_endpoint or os.getenv("AWS_ENDPOINT_URL")
    region = config.object_store_region or os.getenv("AWS_DEFAULT_REGION")
    logger.debug("Ingestion queue S3 client bucket=%s endpoint=%s region=%s", bucket, endpoint, region)
    return S3FragmentStore(
        bucket=bucket,
        endpoint_url=endpoint,
        region_name=region,
        path_style=config.object_store_path_style,
        access_key_id=config.access_key_id,
        secret_access_key=config.secret_access_key,
    )
