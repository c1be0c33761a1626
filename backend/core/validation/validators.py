"""Compositional Validator System

Atomic checks for a single field value. A FieldRule compiles into an
ordered tuple of these; the first failing check supplies the field's
message.

Features:
- Frozen dataclass validators for immutability
- Label-aware messages ready for display
- Rich result metadata for error context
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
import re

from core.errors import ErrorCode

if TYPE_CHECKING:
    from .rules import RuleContext

# RFC 5322 simplified pattern
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

CustomCheck = Callable[[Any, Mapping[str, Any], "RuleContext"], "str | None"]


@dataclass(frozen=True, slots=True)
class CheckResult:
    """Result of a single check with rich context."""
    is_valid: bool
    error_message: str | None = None
    error_code: ErrorCode | None = None
    constraint: str | None = None
    expected: Any = None
    actual: Any = None

    @classmethod
    def valid(cls) -> CheckResult: return cls(is_valid=True)

    @classmethod
    def invalid(cls, message: str, code: ErrorCode = ErrorCode.E2000_VALIDATION_GENERIC, *,
                constraint: str | None = None, expected: Any = None, actual: Any = None) -> CheckResult:
        return cls(is_valid=False, error_message=message, error_code=code, constraint=constraint,
            expected=expected, actual=actual)

    def to_dict(self) -> dict[str, Any]:
        if self.is_valid: return {"valid": True}
        return {"valid": False, "message": self.error_message, "code": self.error_code.name if self.error_code else None,
            "constraint": self.constraint, "expected": self.expected, "actual": self.actual}


class AtomicValidator(ABC):
    """Base class for atomic field checks.

    Checks see the field value, the whole record (for cross-field rules)
    and the caller's RuleContext. They never mutate any of them.
    """

    @abstractmethod
    def validate(self, value: Any, record: Mapping[str, Any], context: RuleContext) -> CheckResult:
        """Validate a value. Returns CheckResult."""

    @property
    @abstractmethod
    def constraint_name(self) -> str:
        """Constraint name for error metadata."""


def as_number(value: Any) -> Decimal | None:
    """Parse ints, floats, Decimals and numeric strings; None otherwise."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value)) if value == value and value not in (float("inf"), float("-inf")) else None
    if isinstance(value, str):
        try:
            parsed = Decimal(value.strip())
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    return None


def _fmt(bound: float | int) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)


# ============================================================================
# Type Validators
# ============================================================================

@dataclass(frozen=True, slots=True)
class TextType(AtomicValidator):
    """Value must be a string."""
    label: str = "Value"

    @property
    def constraint_name(self) -> str:
        return "text"

    def validate(self, value: Any, record: Mapping[str, Any], context: RuleContext) -> CheckResult:
        if not isinstance(value, str):
            return CheckResult.invalid(f"{self.label} must be text", ErrorCode.E2004_INVALID_TYPE,
                constraint=self.constraint_name, expected="string", actual=type(value).__name__)
        return CheckResult.valid()


@dataclass(frozen=True, slots=True)
class NumberType(AtomicValidator):
    """Value must be a number or a numeric string."""
    label: str = "Value"

    @property
    def constraint_name(self) -> str:
        return "number"

    def validate(self, value: Any, record: Mapping[str, Any], context: RuleContext) -> CheckResult:
        if as_number(value) is None:
            return CheckResult.invalid(f"{self.label} must be a number", ErrorCode.E2004_INVALID_TYPE,
                constraint=self.constraint_name, expected="number", actual=value)
        return CheckResult.valid()


@dataclass(frozen=True, slots=True)
class EmailValidator(AtomicValidator):
    """Validate email address format."""
    label: str = "Email"

    @property
    def constraint_name(self) -> str:
        return "email"

    def validate(self, value: Any, record: Mapping[str, Any], context: RuleContext) -> CheckResult:
        if not isinstance(value, str) or not EMAIL_PATTERN.match(value.strip()):
            return CheckResult.invalid(
                f"{self.label} must be a valid email address",
                ErrorCode.E2010_INVALID_EMAIL,
                constraint=self.constraint_name,
                expected="valid email address",
                actual=value,
            )
        return CheckResult.valid()


# ============================================================================
# Range Validators
# ============================================================================

@dataclass(frozen=True, slots=True)
class NumericRange(AtomicValidator):
    """Validate numeric range constraints (inclusive)."""
    min_value: float | int | None = None
    max_value: float | int | None = None
    label: str = "Value"

    @property
    def constraint_name(self) -> str:
        parts = []
        if self.min_value is not None:
            parts.append(f">={self.min_value}")
        if self.max_value is not None:
            parts.append(f"<={self.max_value}")
        return f"range[{', '.join(parts)}]" if parts else "numeric"

    def validate(self, value: Any, record: Mapping[str, Any], context: RuleContext) -> CheckResult:
        num = as_number(value)
        if num is None:
            return CheckResult.invalid(f"{self.label} must be a number", ErrorCode.E2004_INVALID_TYPE,
                constraint="number", expected="number", actual=value)

        if self.min_value is not None and num < Decimal(str(self.min_value)):
            return CheckResult.invalid(
                f"{self.label} must be at least {_fmt(self.min_value)}",
                ErrorCode.E2003_OUT_OF_RANGE,
                constraint=self.constraint_name,
                expected=f">= {self.min_value}",
                actual=value,
            )

        if self.max_value is not None and num > Decimal(str(self.max_value)):
            return CheckResult.invalid(
                f"{self.label} must be at most {_fmt(self.max_value)}",
                ErrorCode.E2003_OUT_OF_RANGE,
                constraint=self.constraint_name,
                expected=f"<= {self.max_value}",
                actual=value,
            )

        return CheckResult.valid()


@dataclass(frozen=True, slots=True)
class StringLength(AtomicValidator):
    """Validate string length constraints."""
    min_length: int | None = None
    max_length: int | None = None
    label: str = "Value"

    @property
    def constraint_name(self) -> str:
        if self.min_length is not None and self.max_length is not None:
            return f"length[{self.min_length},{self.max_length}]"
        if self.min_length is not None:
            return f"min_length[{self.min_length}]"
        if self.max_length is not None:
            return f"max_length[{self.max_length}]"
        return "string_length"

    def validate(self, value: Any, record: Mapping[str, Any], context: RuleContext) -> CheckResult:
        length = len(str(value).strip())

        if self.min_length is not None and length < self.min_length:
            return CheckResult.invalid(
                f"{self.label} must be at least {self.min_length} characters",
                ErrorCode.E2003_OUT_OF_RANGE,
                constraint=self.constraint_name,
                expected=f">= {self.min_length} characters",
                actual=f"{length} characters",
            )

        if self.max_length is not None and length > self.max_length:
            return CheckResult.invalid(
                f"{self.label} must be at most {self.max_length} characters",
                ErrorCode.E2003_OUT_OF_RANGE,
                constraint=self.constraint_name,
                expected=f"<= {self.max_length} characters",
                actual=f"{length} characters",
            )

        return CheckResult.valid()


# ============================================================================
# Format Validators
# ============================================================================

@dataclass(frozen=True, slots=True)
class RegexPattern(AtomicValidator):
    """Validate the whole string against a precompiled pattern."""
    pattern: re.Pattern
    label: str = "Value"

    @property
    def constraint_name(self) -> str:
        return f"pattern[{self.pattern.pattern}]"

    def validate(self, value: Any, record: Mapping[str, Any], context: RuleContext) -> CheckResult:
        if not isinstance(value, str) or not self.pattern.fullmatch(value):
            return CheckResult.invalid(
                f"{self.label} has an invalid format",
                ErrorCode.E2002_INVALID_FORMAT,
                constraint=self.constraint_name,
                expected=f"match pattern '{self.pattern.pattern}'",
                actual=str(value)[:50] + ("..." if len(str(value)) > 50 else ""),
            )
        return CheckResult.valid()


# ============================================================================
# Context Validators
# ============================================================================

@dataclass(frozen=True, slots=True)
class Unique(AtomicValidator):
    """Value must not be among the values already taken for this field."""
    key: str
    label: str = "Value"

    @property
    def constraint_name(self) -> str:
        return "unique"

    def validate(self, value: Any, record: Mapping[str, Any], context: RuleContext) -> CheckResult:
        if context.is_taken(self.key, value):
            return CheckResult.invalid(
                f"{self.label} '{value}' is already in use",
                ErrorCode.E2013_DUPLICATE_VALUE,
                constraint=self.constraint_name,
                actual=value,
            )
        return CheckResult.valid()


@dataclass(frozen=True, slots=True)
class CustomValidator(AtomicValidator):
    """Custom check from function.

    The function returns an error message, or None when the value passes.

    Usage:
        def sku_prefix(value, record, context):
            if not str(value).startswith("SKU-"):
                return "Code must start with SKU-"
            return None

        validator = CustomValidator(sku_prefix, name="sku_prefix")
    """
    check_fn: CustomCheck
    name: str = "custom"
    label: str = "Value"

    @property
    def constraint_name(self) -> str:
        return self.name

    def validate(self, value: Any, record: Mapping[str, Any], context: RuleContext) -> CheckResult:
        try:
            message = self.check_fn(value, record, context)
        except Exception as e:
            return CheckResult.invalid(f"{self.label} could not be validated: {e}",
                ErrorCode.E2000_VALIDATION_GENERIC, constraint=self.name)
        if message:
            return CheckResult.invalid(str(message), ErrorCode.E2005_CONSTRAINT_VIOLATION,
                constraint=self.name, actual=value)
        return CheckResult.valid()

