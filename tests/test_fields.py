"""Tests for typed item metadata validation."""

import pytest
from pydantic import ValidationError

from curio_sync.domain.fields import (
    FieldValidationError,
    FieldValue,
    ValueKind,
    coerce_field_value,
    dump_field_values,
    validate_item_data,
)
from curio_sync.domain.models import FieldDefinition, FieldType
from curio_sync.domain.timestamps import parse_timestamp, to_epoch_millis

SCHEMA = [
    FieldDefinition(id="maker", label="Maker", required=True),
    FieldDefinition(id="cocoa", label="Cocoa %", type=FieldType.NUMBER),
    FieldDefinition(id="kind", label="Type", type=FieldType.SELECT, options=["Dark", "Milk"]),
    FieldDefinition(id="tasted", label="Tasted on", type=FieldType.DATE),
    FieldDefinition(id="vegan", label="Vegan", type=FieldType.BOOLEAN),
]


class TestCoerceFieldValue:

    def test_number_from_string(self):
        value = coerce_field_value(SCHEMA[1], "72")
        assert value == FieldValue(kind=ValueKind.NUMBER, value=72)

    def test_number_rejects_booleans_and_words(self):
        with pytest.raises(FieldValidationError):
            coerce_field_value(SCHEMA[1], True)
        with pytest.raises(FieldValidationError) as exc_info:
            coerce_field_value(SCHEMA[1], "lots")
        assert exc_info.value.field_id == "cocoa"

    def test_rating_range(self):
        rating = FieldDefinition(id="stars", type=FieldType.RATING)
        assert coerce_field_value(rating, 5).value == 5
        with pytest.raises(FieldValidationError):
            coerce_field_value(rating, 6)

    def test_select_checks_options(self):
        assert coerce_field_value(SCHEMA[2], "Dark").kind == ValueKind.ENUM
        with pytest.raises(FieldValidationError):
            coerce_field_value(SCHEMA[2], "White")

    def test_boolean_from_strings(self):
        assert coerce_field_value(SCHEMA[4], "yes").value is True
        assert coerce_field_value(SCHEMA[4], "off").value is False
        with pytest.raises(FieldValidationError):
            coerce_field_value(SCHEMA[4], "maybe")

    def test_date(self):
        assert coerce_field_value(SCHEMA[3], " 2024-05-01 ").value == "2024-05-01"
        with pytest.raises(FieldValidationError):
            coerce_field_value(SCHEMA[3], "last tuesday")

    def test_text_rejects_containers(self):
        with pytest.raises(FieldValidationError):
            coerce_field_value(SCHEMA[0], {"nested": True})


class TestValidateItemData:

    def test_schema_order_then_extras(self):
        data = {"extra": "kept", "cocoa": 70, "maker": "Valrhona"}
        typed = validate_item_data(data, SCHEMA)
        assert list(typed) == ["maker", "cocoa", "extra"]
        assert typed["extra"].kind == ValueKind.TEXT

    def test_empty_values_skipped(self):
        typed = validate_item_data({"maker": "Amedei", "kind": "  ", "cocoa": None}, SCHEMA)
        assert list(typed) == ["maker"]

    def test_missing_required_field_strict(self):
        with pytest.raises(FieldValidationError):
            validate_item_data({"cocoa": 70}, SCHEMA)

    def test_lenient_keeps_invalid_values(self):
        typed = validate_item_data({"cocoa": "lots", "kind": "White"}, SCHEMA, strict=False)
        assert typed["cocoa"] == FieldValue(kind=ValueKind.TEXT, value="lots")
        assert typed["kind"].value == "White"

    def test_dump_round_trips_to_json_values(self):
        typed = validate_item_data({"maker": "Amedei", "cocoa": "70.0", "vegan": "true"}, SCHEMA)
        assert dump_field_values(typed) == {"maker": "Amedei", "cocoa": 70, "vegan": True}

    def test_structured_extras_are_preserved(self):
        data = {"maker": "Amedei", "tags": ["single origin", "bar"], "awards": {"2023": "gold"}}

        typed = validate_item_data(data, SCHEMA)

        assert typed["tags"].kind == ValueKind.STRUCTURED
        assert dump_field_values(typed) == data

    def test_lenient_keeps_structured_value_of_schema_field(self):
        typed = validate_item_data({"maker": ["Amedei", "Domori"]}, SCHEMA, strict=False)
        assert typed["maker"] == FieldValue(kind=ValueKind.STRUCTURED, value=["Amedei", "Domori"])

    def test_values_are_immutable(self):
        value = FieldValue(kind=ValueKind.TEXT, value="Amedei")
        with pytest.raises(ValidationError):
            value.value = "Domori"


class TestParseTimestamp:

    def test_invalid_values(self):
        for value in (None, "", "   ", "nope", "2024-01-01T25:00:00Z", "2024T10:00", 1704067200):
            assert parse_timestamp(value) is None

    def test_space_separator_and_offset(self):
        parsed = parse_timestamp("2024-01-01 10:30+01:00")
        assert parsed.isoformat() == "2024-01-01T09:30:00+00:00"

    def test_out_of_range_instant(self):
        assert parse_timestamp("0001-01-01T00:00:00+01:00") is None
        assert parse_timestamp("9999-12-31T23:30:00-01:00") is None

    def test_epoch_millis(self):
        assert to_epoch_millis("1970-01-01T00:00:01.5Z") == 1500
