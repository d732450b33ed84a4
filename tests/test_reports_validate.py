"""Tests for versioned report validation."""

import pytest
from jsonschema import Draft202012Validator

from Restorator.reports import REPORT_SCHEMAS, SchemaError, validate


def test_valid_v4_report_is_returned_unchanged(basic_report):
    assert validate(4, basic_report) is basic_report


def test_missing_key(basic_report):
    del basic_report["certname"]
    with pytest.raises(SchemaError, match=r"Report is missing keys: certname$"):
        validate(4, basic_report)


def test_missing_keys_are_sorted_into_one_message(basic_report):
    del basic_report["status"]
    del basic_report["certname"]
    with pytest.raises(SchemaError) as excinfo:
        validate(4, basic_report)
    assert excinfo.value.errors == ["Report is missing keys: certname, status"]


def test_event_timestamp_must_be_datetime(basic_report):
    basic_report["resource-events"][0]["timestamp"] = "foo"
    with pytest.raises(SchemaError, match=r"timestamp` should be Datetime"):
        validate(4, basic_report)


def test_every_violation_is_reported(basic_report):
    del basic_report["environment"]
    basic_report["report-format"] = "4"
    basic_report["resource-events"][1]["line"] = "twelve"
    del basic_report["resource-events"][2]["status"]
    with pytest.raises(SchemaError) as excinfo:
        validate(4, basic_report)
    assert excinfo.value.errors == [
        "Report is missing keys: environment",
        "`report-format` should be Integer",
        "`resource-events[1].line` should be Integer",
        "Resource event 2 is missing keys: status",
    ]


def test_optional_event_fields_may_be_absent(basic_report):
    for key in ("property", "old-value", "new-value", "message", "file", "line", "containment-path"):
        basic_report["resource-events"][0].pop(key)
    assert validate(4, basic_report) is basic_report


def test_older_versions_need_fewer_keys(basic_report):
    for key in ("transaction-uuid", "environment", "status"):
        del basic_report[key]
    assert validate(2, basic_report) is basic_report
    with pytest.raises(SchemaError, match="transaction-uuid"):
        validate(3, basic_report)


def test_schema_versions_grow_monotonically():
    assert REPORT_SCHEMAS[2].required_keys < REPORT_SCHEMAS[3].required_keys
    assert REPORT_SCHEMAS[3].required_keys < REPORT_SCHEMAS[4].required_keys


def test_non_map_event(basic_report):
    basic_report["resource-events"].append("oops")
    with pytest.raises(SchemaError, match=r"`resource-events\[3\]` should be a map"):
        validate(4, basic_report)


def test_boolean_is_not_an_integer(basic_report):
    basic_report["report-format"] = True
    with pytest.raises(SchemaError, match="`report-format` should be Integer"):
        validate(4, basic_report)


def test_unsupported_version(basic_report):
    with pytest.raises(SchemaError, match="Unsupported report version: 99"):
        validate(99, basic_report)


def test_event_status_must_be_a_known_value(basic_report):
    basic_report["resource-events"][0]["status"] = "bogus-status"
    with pytest.raises(SchemaError) as excinfo:
        validate(4, basic_report)
    assert excinfo.value.errors == [
        "`resource-events[0].status` should be one of success, failure, noop, skipped"
    ]


def test_report_status_must_be_a_known_value(basic_report):
    basic_report["status"] = "whatever"
    basic_report["resource-events"][2]["status"] = "noop"
    with pytest.raises(SchemaError) as excinfo:
        validate(4, basic_report)
    assert excinfo.value.errors == ["`status` should be one of changed, unchanged, failed"]


@pytest.mark.parametrize("status", ["changed", "unchanged", "failed"])
def test_every_report_status_is_accepted(basic_report, status):
    basic_report["status"] = status
    assert validate(4, basic_report) is basic_report


def test_non_string_status_is_a_type_error(basic_report):
    basic_report["resource-events"][1]["status"] = 3
    with pytest.raises(SchemaError) as excinfo:
        validate(4, basic_report)
    assert excinfo.value.errors == ["`resource-events[1].status` should be String"]


@pytest.mark.parametrize("field", ["start-time", "end-time"])
def test_report_times_must_be_datetime(basic_report, field):
    basic_report[field] = "last tuesday"
    with pytest.raises(SchemaError) as excinfo:
        validate(4, basic_report)
    assert excinfo.value.errors == [f"`{field}` should be Datetime"]


@pytest.mark.parametrize("value", ["2011-01-01", "20110101", "20110101T120000Z", "12:00:00"])
def test_partial_or_basic_format_times_are_rejected(basic_report, value):
    basic_report["start-time"] = value
    with pytest.raises(SchemaError, match="`start-time` should be Datetime"):
        validate(4, basic_report)


def test_utc_designator_is_accepted(basic_report):
    basic_report["end-time"] = "2011-01-01T15:10:00Z"
    assert validate(4, basic_report) is basic_report


def test_generated_schema_is_a_valid_json_schema():
    for schema in REPORT_SCHEMAS.values():
        Draft202012Validator.check_schema(schema.json_schema)
    assert "enum" in REPORT_SCHEMAS[4].json_schema["properties"]["status"]
    assert "status" not in REPORT_SCHEMAS[2].json_schema["properties"]
