"""Report sanitization and versioned validation.

Exporters may be newer than the importer, so resource events can carry keys
the endpoint does not accept. ``sanitize_report`` keeps only the recognized
event fields. ``validate`` is a standalone acceptance check against the
report shape active for a given ``store report`` version.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Any

from jsonschema import Draft202012Validator, FormatChecker, ValidationError
from pydantic import BaseModel, Field


class SchemaError(ValueError):
    """Raised when a report does not match its schema; carries every violation."""

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class ResourceEvent(BaseModel):
    """The recognized resource event fields, in wire (hyphenated) form.

    Values are kept verbatim; this model only decides which keys survive.
    """

    containment_path: Any = Field(default=None, alias="containment-path")
    resource_type: Any = Field(default=None, alias="resource-type")
    resource_title: Any = Field(default=None, alias="resource-title")
    property: Any = None
    old_value: Any = Field(default=None, alias="old-value")
    new_value: Any = Field(default=None, alias="new-value")
    status: Any = None
    message: Any = None
    file: Any = None
    line: Any = None
    timestamp: Any = None

    model_config = dict(populate_by_name=False, extra="ignore")


RESOURCE_EVENT_FIELDS: tuple[str, ...] = tuple(
    f.alias or name for name, f in ResourceEvent.model_fields.items()
)


def sanitize_events(events: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Return copies of ``events`` holding only recognized fields."""
    return [
        ResourceEvent.model_validate(dict(event)).model_dump(by_alias=True, exclude_unset=True)
        for event in events
    ]


def sanitize_report(report: Mapping[str, Any]) -> dict[str, Any]:
    """Sanitize the report's ``resource-events``; other keys are untouched."""
    out = dict(report)
    events = out.get("resource-events")
    if isinstance(events, list):
        out["resource-events"] = sanitize_events(events)
    return out


# --- Validation ---------------------------------------------------------------


class FieldType(Enum):
    STRING = "String"
    INTEGER = "Integer"
    DATETIME = "Datetime"
    COLLECTION = "Collection"
    JSON = "JSON"


# Datetime values are RFC 3339 strings; ``format`` is only asserted because the
# validator is built with a FormatChecker.
_JSON_TYPES: dict[FieldType, dict[str, Any]] = {
    FieldType.STRING: {"type": "string"},
    FieldType.INTEGER: {"type": "integer"},
    FieldType.DATETIME: {"type": "string", "format": "date-time"},
    FieldType.COLLECTION: {"type": "array"},
    FieldType.JSON: {},
}

# Lower wins when several keywords fail for the same value.
_KEYWORD_PRIORITY = {"required": 0, "type": 0, "format": 1, "enum": 2}


@dataclass(frozen=True)
class FieldSpec:
    type: FieldType
    optional: bool = False
    choices: tuple[str, ...] = ()

    def json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"title": self.type.value, **_JSON_TYPES[self.type]}
        if self.optional and "type" in schema:
            schema["type"] = [schema["type"], "null"]
        if self.choices:
            schema["enum"] = [*self.choices, *([None] if self.optional else [])]
        return schema


def _object_schema(fields: Mapping[str, FieldSpec]) -> dict[str, Any]:
    return {
        "title": "a map",
        "type": "object",
        "required": [k for k, spec in fields.items() if not spec.optional],
        "properties": {k: spec.json_schema() for k, spec in fields.items()},
    }


@dataclass(frozen=True)
class ReportSchema:
    version: int
    report_fields: Mapping[str, FieldSpec]
    event_fields: Mapping[str, FieldSpec]

    @property
    def required_keys(self) -> frozenset[str]:
        return frozenset(k for k, spec in self.report_fields.items() if not spec.optional)

    @cached_property
    def json_schema(self) -> dict[str, Any]:
        """The JSON Schema (draft 2020-12) equivalent of this table."""
        schema = _object_schema(self.report_fields)
        schema["$schema"] = "https://json-schema.org/draft/2020-12/schema"
        events = schema["properties"].get("resource-events")
        if events is not None:
            events["items"] = _object_schema(self.event_fields)
        return schema

    @cached_property
    def validator(self) -> Draft202012Validator:
        return Draft202012Validator(self.json_schema, format_checker=FormatChecker())

    def position(self, path: Sequence[Any]) -> tuple[int, int, int]:
        """Sort key for a violation at ``path``: report, its fields, then events."""
        if not path:
            return (0, 0, 0)
        report_keys = list(self.report_fields)
        if len(path) == 1:
            key = path[0]
            return (1, report_keys.index(key) if key in report_keys else len(report_keys), 0)
        if path[0] == "resource-events" and isinstance(path[1], int):
            if len(path) == 2:
                return (2, path[1], 0)
            event_keys = list(self.event_fields)
            key = path[2]
            offset = event_keys.index(key) if key in event_keys else len(event_keys)
            return (2, path[1], 1 + offset)
        return (3, 0, 0)


EVENT_STATUSES: tuple[str, ...] = ("success", "failure", "noop", "skipped")
REPORT_STATUSES: tuple[str, ...] = ("changed", "unchanged", "failed")

_EVENT_FIELDS: dict[str, FieldSpec] = {
    "resource-type": FieldSpec(FieldType.STRING),
    "resource-title": FieldSpec(FieldType.STRING),
    "property": FieldSpec(FieldType.STRING, optional=True),
    "timestamp": FieldSpec(FieldType.DATETIME),
    "status": FieldSpec(FieldType.STRING, choices=EVENT_STATUSES),
    "old-value": FieldSpec(FieldType.JSON, optional=True),
    "new-value": FieldSpec(FieldType.JSON, optional=True),
    "message": FieldSpec(FieldType.STRING, optional=True),
    "file": FieldSpec(FieldType.STRING, optional=True),
    "line": FieldSpec(FieldType.INTEGER, optional=True),
    "containment-path": FieldSpec(FieldType.COLLECTION, optional=True),
}

_V2_REPORT_FIELDS: dict[str, FieldSpec] = {
    "certname": FieldSpec(FieldType.STRING),
    "puppet-version": FieldSpec(FieldType.STRING),
    "report-format": FieldSpec(FieldType.INTEGER),
    "configuration-version": FieldSpec(FieldType.STRING),
    "start-time": FieldSpec(FieldType.DATETIME),
    "end-time": FieldSpec(FieldType.DATETIME),
    "resource-events": FieldSpec(FieldType.COLLECTION),
}
_V3_REPORT_FIELDS = {**_V2_REPORT_FIELDS, "transaction-uuid": FieldSpec(FieldType.STRING)}
_V4_REPORT_FIELDS = {
    **_V3_REPORT_FIELDS,
    "environment": FieldSpec(FieldType.STRING),
    "status": FieldSpec(FieldType.STRING, choices=REPORT_STATUSES),
}

REPORT_SCHEMAS: dict[int, ReportSchema] = {
    2: ReportSchema(2, _V2_REPORT_FIELDS, _EVENT_FIELDS),
    3: ReportSchema(3, _V3_REPORT_FIELDS, _EVENT_FIELDS),
    4: ReportSchema(4, _V4_REPORT_FIELDS, _EVENT_FIELDS),
}


def _field_path(path: Sequence[Any]) -> str:
    out = ""
    for part in path:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else str(part)
    return out or "report"


def _describe(error: ValidationError) -> str:
    path = list(error.absolute_path)
    if error.validator == "required":
        missing = sorted(k for k in error.validator_value if k not in error.instance)
        owner = f"Resource event {path[-1]}" if path else "Report"
        return f"{owner} is missing keys: " + ", ".join(missing)
    if error.validator == "enum":
        choices = [c for c in error.validator_value if c is not None]
        return f"`{_field_path(path)}` should be one of " + ", ".join(choices)
    return f"`{_field_path(path)}` should be {error.schema.get('title', 'valid')}"


def validate(schema_version: int, report: Mapping[str, Any]) -> Mapping[str, Any]:
    """Validate ``report`` against the schema for ``schema_version``.

    Returns the report unchanged on success.

    Raises:
        SchemaError: listing every missing key, type mismatch and value
            outside an enumerated set
    """
    schema = REPORT_SCHEMAS.get(schema_version)
    if schema is None:
        raise SchemaError([f"Unsupported report version: {schema_version}"])

    found: dict[tuple[int, int, int], tuple[int, str]] = {}
    for error in schema.validator.iter_errors(report):
        where = schema.position(list(error.absolute_path))
        rank = _KEYWORD_PRIORITY.get(error.validator, len(_KEYWORD_PRIORITY))
        if where not in found or rank < found[where][0]:
            found[where] = (rank, _describe(error))

    if found:
        raise SchemaError([message for _, (_, message) in sorted(found.items())])
    return report
