"""Record and Batch Validation

Pure functions over records, a ValidationSchema and a RuleContext.
Nothing is cached: every call recomputes from its inputs, so validating
an unchanged batch twice yields identical results.
"""
from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from core.logging import validation_logger

from .rules import FieldRule, RuleContext, ValidationSchema

log = validation_logger()

# field key -> first failing message; empty means valid
ValidationResult = dict[str, str]

_EMPTY_CONTEXT = RuleContext()


class IdentifiedRecord(Protocol):
    """A record mapping that carries a client-side identity."""

    @property
    def client_id(self) -> str: ...

    def get(self, key: str, default: Any = None) -> Any: ...


def is_missing(value: Any) -> bool:
    """None and blank strings count as absent."""
    return value is None or (isinstance(value, str) and not value.strip())


def validate_field(
    record: Mapping[str, Any],
    rule: FieldRule,
    context: RuleContext | None = None,
) -> str | None:
    """Return the message of the first failing check for one field, or None.

    Required is evaluated first. An absent optional field is valid whatever
    its other constraints say.
    """
    value = record.get(rule.key)
    if is_missing(value):
        return f"{rule.label} is required" if rule.required else None

    ctx = context or _EMPTY_CONTEXT
    for check in rule.checks:
        result = check.validate(value, record, ctx)
        if not result.is_valid:
            return result.error_message or f"{rule.label} is invalid"
    return None


def validate_record(
    record: Mapping[str, Any],
    schema: ValidationSchema,
    context: RuleContext | None = None,
) -> ValidationResult:
    """Validate every rule of the schema; only failing fields are returned."""
    errors: ValidationResult = {}
    for rule in schema:
        message = validate_field(record, rule, context)
        if message is not None:
            errors[rule.key] = message
    return errors


def validate_batch(
    records: Sequence[IdentifiedRecord],
    schema: ValidationSchema,
    context: RuleContext | None = None,
) -> dict[str, ValidationResult]:
    """Validate a whole batch, keyed by record client_id; valid records are omitted.

    For unique fields, values of earlier valid records in the batch count as
    taken, so only the later duplicates are reported.
    """
    ctx = context or _EMPTY_CONTEXT
    unique_keys = schema.unique_keys
    results: dict[str, ValidationResult] = {}

    for record in records:
        errors = validate_record(record, schema, ctx)  # type: ignore[arg-type]
        if errors:
            results[record.client_id] = errors
        elif unique_keys:
            ctx = ctx.with_claims({
                key: [record.get(key)] for key in unique_keys if not is_missing(record.get(key))
            })

    log.debug(
        "batch_validated",
        schema=schema.name,
        records=len(records),
        invalid=len(results),
    )
    return results
