"""Declarative Field Rules

A ValidationSchema is an ordered sequence of FieldRules supplied by
configuration. Each rule compiles once into an ordered tuple of atomic
checks: type, range, pattern, uniqueness, then the custom check. The
first failing check decides the field's message.

Malformed schemas (duplicate keys, bad patterns, a pattern/custom type
without its constraint) are contract violations and raise
AppErrorException at construction.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable, Iterable, Iterator, Mapping

from core.errors import AppErrorException, precondition_failed

from .validators import (
    AtomicValidator,
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


class FieldType(str, Enum):
    """Supported field types."""
    TEXT = "text"
    NUMBER = "number"
    EMAIL = "email"
    PATTERN = "pattern"
    CUSTOM = "custom"


@dataclass(frozen=True, slots=True)
class FieldConstraints:
    """Optional constraints on a field.

    min/max bound the value of number fields and the length of every other type.
    """
    min: float | int | None = None
    max: float | int | None = None
    pattern: str | None = None
    custom: CustomCheck | None = None
    custom_name: str = "custom"
    unique: bool = False


@dataclass(frozen=True)
class RuleContext:
    """Caller-supplied context for validation.

    taken: values already in use per field key (e.g. product codes known
    to the server). extras: free-form data for custom checks.
    """
    taken: Mapping[str, frozenset] = field(default_factory=dict)
    extras: Mapping[str, Any] = field(default_factory=dict)

    def is_taken(self, key: str, value: Any) -> bool:
        if not isinstance(value, Hashable):
            return False
        return _normalize(value) in self.taken.get(key, frozenset())

    def with_claims(self, claims: Mapping[str, Iterable[Any]]) -> RuleContext:
        """Return a new context with extra values marked as taken."""
        if not claims:
            return self
        taken = dict(self.taken)
        for key, values in claims.items():
            taken[key] = frozenset(taken.get(key, frozenset())) | {
                _normalize(v) for v in values if isinstance(v, Hashable)
            }
        return RuleContext(taken=taken, extras=self.extras)


def _normalize(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


@dataclass(frozen=True)
class FieldRule:
    """Declarative rule for one field of a record."""
    key: str
    type: FieldType = FieldType.TEXT
    required: bool = False
    constraints: FieldConstraints = field(default_factory=FieldConstraints)
    label: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", FieldType(self.type))
        if not self.label:
            object.__setattr__(self, "label", self.key.replace("_", " ").capitalize())
        object.__setattr__(self, "_checks", self._compile())

    @property
    def checks(self) -> tuple[AtomicValidator, ...]:
        return self._checks  # type: ignore[attr-defined]

    def _compile(self) -> tuple[AtomicValidator, ...]:
        c, label = self.constraints, self.label
        checks: list[AtomicValidator] = []

        if self.type is FieldType.NUMBER:
            checks.append(NumberType(label=label))
            if c.min is not None or c.max is not None:
                checks.append(NumericRange(c.min, c.max, label=label))
        else:
            if self.type is FieldType.EMAIL:
                checks.append(EmailValidator(label=label))
            elif self.type is not FieldType.CUSTOM:
                checks.append(TextType(label=label))
            if c.min is not None or c.max is not None:
                checks.append(StringLength(
                    int(c.min) if c.min is not None else None,
                    int(c.max) if c.max is not None else None,
                    label=label,
                ))

        if self.type is FieldType.PATTERN and not c.pattern:
            raise _contract(f"field '{self.key}' of type pattern needs a pattern constraint")
        if c.pattern:
            try:
                compiled = re.compile(c.pattern)
            except re.error as e:
                raise _contract(f"field '{self.key}' has an invalid pattern", str(e)) from e
            checks.append(RegexPattern(compiled, label=label))

        if c.unique:
            checks.append(Unique(self.key, label=label))

        if self.type is FieldType.CUSTOM and c.custom is None:
            raise _contract(f"field '{self.key}' of type custom needs a custom check")
        if c.custom is not None:
            checks.append(CustomValidator(c.custom, name=c.custom_name, label=label))

        return tuple(checks)


def _contract(condition: str, reason: str = "") -> AppErrorException:
    return AppErrorException(precondition_failed(condition, reason, origin="validation_schema").error)


class ValidationSchema:
    """Ordered, immutable sequence of FieldRules with unique keys."""

    __slots__ = ("_rules", "name")

    def __init__(self, rules: Iterable[FieldRule], name: str = "schema"):
        self._rules = tuple(rules)
        self.name = name
        seen: set[str] = set()
        for rule in self._rules:
            if not isinstance(rule, FieldRule):
                raise _contract("schema entries must be FieldRule", f"got {type(rule).__name__}")
            if rule.key in seen:
                raise _contract(f"field key '{rule.key}' is unique within schema '{name}'")
            seen.add(rule.key)

    @property
    def rules(self) -> tuple[FieldRule, ...]:
        return self._rules

    @property
    def unique_keys(self) -> tuple[str, ...]:
        return tuple(r.key for r in self._rules if r.constraints.unique)

    def __iter__(self) -> Iterator[FieldRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __getitem__(self, key: str) -> FieldRule:
        for rule in self._rules:
            if rule.key == key:
                return rule
        raise KeyError(key)

    def __repr__(self) -> str:
        return f"ValidationSchema(name={self.name!r}, fields={[r.key for r in self._rules]})"
