"""Schema Loading from Declarative Configuration

Parses YAML (or an already-decoded mapping) into a ValidationSchema.
Pydantic models check the shape of the declaration; custom checks are
referenced by name and resolved from a registry supplied by the caller.

Example:
    name: product
    fields:
      - key: name
        required: true
      - key: code
        type: pattern
        required: true
        constraints: {pattern: "[A-Z]{3}-\\d{4}", unique: true}
      - key: price
        type: number
        constraints: {min: 0}
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from core.errors import AppErrorException, precondition_failed

from .rules import FieldConstraints, FieldRule, FieldType, ValidationSchema
from .validators import CustomCheck


class ConstraintsSpec(BaseModel):
    """Declared constraints of a field."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    custom: str | None = None
    unique: bool = False

    @model_validator(mode="after")
    def _check_bounds(self) -> ConstraintsSpec:
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min ({self.min}) must not exceed max ({self.max})")
        return self


class FieldSpec(BaseModel):
    """Declared rule for one field."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    key: str = Field(min_length=1)
    type: FieldType = FieldType.TEXT
    required: bool = False
    label: str | None = None
    constraints: ConstraintsSpec = Field(default_factory=ConstraintsSpec)


class SchemaSpec(BaseModel):
    """Declared validation schema."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = "schema"
    fields: list[FieldSpec]


def _int_if_whole(value: float | None) -> float | int | None:
    if value is not None and float(value).is_integer():
        return int(value)
    return value


def load_schema(
    data: Mapping[str, Any],
    custom_checks: Mapping[str, CustomCheck] | None = None,
) -> ValidationSchema:
    """Build a ValidationSchema from a decoded declaration."""
    try:
        spec = SchemaSpec.model_validate(data)
    except ValidationError as e:
        raise AppErrorException(precondition_failed(
            "schema declaration is well-formed", str(e), origin="schema_loader",
        ).error) from e

    registry = custom_checks or {}
    rules = []
    for f in spec.fields:
        c = f.constraints
        check = None
        if c.custom is not None:
            if c.custom not in registry:
                raise AppErrorException(precondition_failed(
                    f"custom check '{c.custom}' is registered",
                    f"field '{f.key}'",
                    origin="schema_loader",
                    available=sorted(registry),
                ).error)
            check = registry[c.custom]
        rules.append(FieldRule(
            key=f.key,
            type=f.type,
            required=f.required,
            label=f.label or "",
            constraints=FieldConstraints(
                min=_int_if_whole(c.min),
                max=_int_if_whole(c.max),
                pattern=c.pattern,
                custom=check,
                custom_name=c.custom or "custom",
                unique=c.unique,
            ),
        ))
    return ValidationSchema(rules, name=spec.name)


def load_schema_file(
    path: str | Path,
    custom_checks: Mapping[str, CustomCheck] | None = None,
) -> ValidationSchema:
    """Read a YAML schema declaration from disk."""
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if not isinstance(data, dict):
        raise AppErrorException(precondition_failed(
            "schema file contains a mapping", str(path), origin="schema_loader",
        ).error)
    return load_schema(data, custom_checks)
