"""Declarative Record Validation

Schemas are declared as data (FieldRule sequences, usually loaded from
YAML) and evaluated by pure functions. Each field reports at most one
message: the first failing check in declared order.

Usage:
    from core.validation import load_schema_file, validate_batch, RuleContext

    schema = load_schema_file("data/schemas/product.yaml")
    context = RuleContext(taken={"code": frozenset(existing_codes)})
    errors = validate_batch(records, schema, context)
    # {"<client_id>": {"name": "Name is required"}}
"""
from .rules import (
    FieldConstraints,
    FieldRule,
    FieldType,
    RuleContext,
    ValidationSchema,
)

from .validators import (
    AtomicValidator,
    CheckResult,
    CustomCheck,
    CustomValidator,
    EmailValidator,
    NumberType,
    NumericRange,
    RegexPattern,
    StringLength,
    TextType,
    Unique,
)

from .batch import (
    ValidationResult,
    is_missing,
    validate_batch,
    validate_field,
    validate_record,
)

from .loader import (
    load_schema,
    load_schema_file,
)

__all__ = [
    # Rules
    "FieldConstraints",
    "FieldRule",
    "FieldType",
    "RuleContext",
    "ValidationSchema",
    # Checks
    "AtomicValidator",
    "CheckResult",
    "CustomCheck",
    "CustomValidator",
    "EmailValidator",
    "NumberType",
    "NumericRange",
    "RegexPattern",
    "StringLength",
    "TextType",
    "Unique",
    # Validation
    "ValidationResult",
    "is_missing",
    "validate_batch",
    "validate_field",
    "validate_record",
    # Loading
    "load_schema",
    "load_schema_file",
]
