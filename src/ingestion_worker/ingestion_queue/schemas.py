"""Fragment schema registry and dual-shape (batch / single event) parser."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

import yaml
from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.exceptions import NoSuchResource
from referencing.jsonschema import DRAFT202012

from .contracts import TypedEvent
from .errors import FragmentValidationError


SCHEMA_ROOT = Path(__file__).resolve().parent / "event_schemas"
EVENT_SCHEMA = "ingestion_event.schema.yaml"
BATCH_SCHEMA = "ingestion_batch.schema.yaml"


class SchemaMismatch(ValueError):
    """Raised when a document does not satisfy one named schema."""


@dataclass
class SchemaRegistry:
    root: Path = SCHEMA_ROOT

    def __post_init__(self) -> None:
        self._cache: dict[str, dict[str, Any]] = {}
        self._validators: dict[str, Draft202012Validator] = {}
        self._resources: dict[str, Resource[Any]] = {}

    def load(self, name: str) -> dict[str, Any]:
        if name in self._cache:
            return self._cache[name]
        path = (self.root / name).resolve()
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if isinstance(data, dict) and not data.get("$id"):
            data = dict(data)
            data["$id"] = path.as_uri()
        self._cache[name] = data
        return data

    def validator(self, name: str) -> Draft202012Validator:
        cached = self._validators.get(name)
        if cached is not None:
            return cached
        schema = self.load(name)
        registry = Registry(retrieve=self._retrieve_resource)
        registry = registry.with_resource(
            schema["$id"],
            Resource.from_contents(schema, default_specification=DRAFT202012),
        )
        validator = Draft202012Validator(schema, registry=registry)
        self._validators[name] = validator
        return validator

    def validate(self, name: str, payload: Any) -> None:
        errors = sorted(self.validator(name).iter_errors(payload), key=lambda e: e.json_path)
        if errors:
            messages = "; ".join(f"{error.json_path}: {error.message}" for error in errors)
            raise SchemaMismatch(messages)

    def _retrieve_resource(self, uri: str) -> Resource[Any]:
        if uri in self._resources:
            return self._resources[uri]
        parsed = urlparse(uri)
        if parsed.scheme not in ("", "file"):
            raise NoSuchResource(uri)
        path = Path(unquote(parsed.path))
        if not path.exists():
            raise NoSuchResource(uri)
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        resource = Resource.from_contents(data, default_specification=DRAFT202012)
        self._resources[uri] = resource
        return resource


@dataclass
class EventSchemaValidator:
    """Turns one fragment's text into typed events.

    The batch shape is tried first, then the single-event shape. The two are
    disjoint (array vs object), so at most one succeeds; when both fail the
    error keeps the messages from each attempt.
    """

    registry: SchemaRegistry = field(default_factory=SchemaRegistry)

    def __post_init__(self) -> None:
        # Build both validators up front; fragments are parsed from worker threads.
        self.registry.validator(BATCH_SCHEMA)
        self.registry.validator(EVENT_SCHEMA)

    def parse_fragment(self, key: str, content: str | bytes) -> list[TypedEvent]:
        try:
            document = json.loads(content)
        except ValueError as exc:
            message = f"invalid JSON: {exc}"
            raise FragmentValidationError(key, message, message) from exc
        return self.parse_document(key, document)

    def parse_document(self, key: str, document: Any) -> list[TypedEvent]:
        try:
            self.registry.validate(BATCH_SCHEMA, document)
        except SchemaMismatch as batch_exc:
            try:
                self.registry.validate(EVENT_SCHEMA, document)
            except SchemaMismatch as event_exc:
                raise FragmentValidationError(key, str(batch_exc), str(event_exc)) from event_exc
            return [TypedEvent.from_record(document)]
        return [TypedEvent.from_record(record) for record in document]
