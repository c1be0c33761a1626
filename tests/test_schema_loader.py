"""Tests for ``core.validation.loader``: YAML schema declarations."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import AppErrorException, ErrorCode
from core.validation import FieldType, load_schema, load_schema_file, validate_record

PRODUCT_SCHEMA = Path(__file__).parent.parent / "data" / "schemas" / "product.yaml"


class TestLoadSchema:
    def test_builds_rules_in_declared_order(self):
        schema = load_schema({
            "name": "contact",
            "fields": [
                {"key": "full_name", "required": True},
                {"key": "email", "type": "email", "required": True},
                {"key": "age", "type": "number", "constraints": {"min": 0, "max": 150}},
            ],
        })

        assert schema.name == "contact"
        assert [r.key for r in schema] == ["full_name", "email", "age"]
        assert schema["email"].type is FieldType.EMAIL
        assert schema["full_name"].label == "Full name"
        assert validate_record({"email": "x", "age": 200}, schema) == {
            "full_name": "Full name is required",
            "email": "Email must be a valid email address",
            "age": "Age must be at most 150",
        }

    def test_resolves_custom_checks_by_name(self):
        def even(value, record, context):
            return None if int(value) % 2 == 0 else "Quantity must be even"

        schema = load_schema(
            {"fields": [{"key": "quantity", "type": "number", "constraints": {"custom": "even"}}]},
            custom_checks={"even": even},
        )

        assert validate_record({"quantity": 3}, schema) == {"quantity": "Quantity must be even"}
        assert validate_record({"quantity": 4}, schema) == {}

    def test_unknown_custom_check_is_rejected(self):
        with pytest.raises(AppErrorException) as exc_info:
            load_schema({"fields": [{"key": "q", "constraints": {"custom": "nope"}}]})
        assert exc_info.value.error.metadata["available"] == []

    @pytest.mark.parametrize("data", [
        {"fields": [{"key": "a", "type": "date"}]},
        {"fields": [{"key": "a", "colour": "red"}]},
        {"fields": [{"key": "a", "constraints": {"min": 5, "max": 1}}]},
        {"fields": [{"key": ""}]},
        {"name": "no fields"},
    ])
    def test_malformed_declarations_are_rejected(self, data):
        with pytest.raises(AppErrorException) as exc_info:
            load_schema(data)
        assert exc_info.value.error.code is ErrorCode.E5003_PRECONDITION_FAILED

    def test_duplicate_keys_are_rejected(self):
        with pytest.raises(AppErrorException):
            load_schema({"fields": [{"key": "a"}, {"key": "a"}]})


class TestLoadSchemaFile:
    def test_bundled_product_schema(self):
        schema = load_schema_file(PRODUCT_SCHEMA)

        assert schema.name == "product"
        assert schema.unique_keys == ("code",)
        assert schema["code"].label == "Product code"
        assert validate_record(
            {"name": "Desk lamp", "code": "LMP-0001", "price": "24.90"}, schema,
        ) == {}

    def test_non_mapping_file_is_rejected(self, tmp_path):
        path = tmp_path / "schema.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(AppErrorException):
            load_schema_file(path)
