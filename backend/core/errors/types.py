"""Monadic Error Handling Types

Implements Result/Either types for deterministic, composable error
propagation through the validation, resilience and dispatch layers.
Every failure carries a typed ErrorCode whose ErrorKind decides whether
the resilience layer may retry it.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Callable, Generic, NoReturn, TypeVar, Union, final
from uuid import uuid4

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E", bound="AppError")


class ErrorKind(Enum):
    """Retry classification of a failure.

    VALIDATION: the input was rejected; resubmitting it cannot help.
    TRANSIENT: the dependency may recover; safe to retry.
    PERMANENT: any other failure; never retried.
    """
    VALIDATION = auto()
    TRANSIENT = auto()
    PERMANENT = auto()


class ErrorCode(Enum):
    """Hierarchical error code taxonomy.

    E1xxx: Network/External service failures
    E2xxx: Validation errors
    E5xxx: Business logic / contract errors
    E9xxx: Internal/Unknown errors
    """
    # Network/External (E1xxx)
    E1000_NETWORK_GENERIC = 1000
    E1001_CONNECTION_REFUSED = 1001
    E1002_TIMEOUT = 1002
    E1010_EXTERNAL_SERVICE_UNAVAILABLE = 1010
    E1011_EXTERNAL_SERVICE_ERROR = 1011
    E1012_CIRCUIT_OPEN = 1012
    E1013_RATE_LIMITED = 1013
    E1020_HTTP_CLIENT_ERROR = 1020
    E1021_HTTP_SERVER_ERROR = 1021
    E1022_HTTP_REQUEST_TIMEOUT = 1022

    # Validation (E2xxx)
    E2000_VALIDATION_GENERIC = 2000
    E2001_REQUIRED_FIELD_MISSING = 2001
    E2002_INVALID_FORMAT = 2002
    E2003_OUT_OF_RANGE = 2003
    E2004_INVALID_TYPE = 2004
    E2005_CONSTRAINT_VIOLATION = 2005
    E2010_INVALID_EMAIL = 2010
    E2013_DUPLICATE_VALUE = 2013

    # Business Logic (E5xxx)
    E5000_BUSINESS_GENERIC = 5000
    E5002_STATE_CONFLICT = 5002
    E5003_PRECONDITION_FAILED = 5003

    # Internal (E9xxx)
    E9000_INTERNAL_GENERIC = 9000
    E9001_UNEXPECTED_ERROR = 9001

    @property
    def category(self) -> str:
        """Human-readable error category."""
        code = self.value
        if 1000 <= code < 2000:
            return "network"
        if 2000 <= code < 3000:
            return "validation"
        if 5000 <= code < 6000:
            return "business"
        return "internal"

    @property
    def kind(self) -> ErrorKind:
        """Retry classification for this code."""
        if self in _TRANSIENT_CODES:
            return ErrorKind.TRANSIENT
        if self.category == "validation":
            return ErrorKind.VALIDATION
        return ErrorKind.PERMANENT

    @classmethod
    def from_http_status(cls, status_code: int) -> ErrorCode:
        """Map an HTTP response status to the matching code."""
        if status_code == 408:
            return cls.E1022_HTTP_REQUEST_TIMEOUT
        if status_code == 429:
            return cls.E1013_RATE_LIMITED
        if status_code in (400, 422):
            return cls.E2000_VALIDATION_GENERIC
        if status_code == 409:
            return cls.E2013_DUPLICATE_VALUE
        if 500 <= status_code < 600:
            return cls.E1021_HTTP_SERVER_ERROR
        if 400 <= status_code < 500:
            return cls.E1020_HTTP_CLIENT_ERROR
        return cls.E1011_EXTERNAL_SERVICE_ERROR


_TRANSIENT_CODES = frozenset({
    ErrorCode.E1000_NETWORK_GENERIC,
    ErrorCode.E1001_CONNECTION_REFUSED,
    ErrorCode.E1002_TIMEOUT,
    ErrorCode.E1010_EXTERNAL_SERVICE_UNAVAILABLE,
    ErrorCode.E1013_RATE_LIMITED,
    ErrorCode.E1021_HTTP_SERVER_ERROR,
    ErrorCode.E1022_HTTP_REQUEST_TIMEOUT,
})


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Where and when a failure happened.

    batch_id and record_id are filled in by the dispatcher once the error
    is attached to a record outcome.
    """
    correlation_id: str = field(default_factory=lambda: uuid4().hex[:8])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    origin: str = ""
    batch_id: str | None = None
    record_id: str | None = None


@dataclass(frozen=True, slots=True)
class AppError:
    """A classified failure.

    The code decides both the category shown in reports and the kind the
    resilience layer acts on. Instances are immutable; the with_* helpers
    return copies.
    """
    code: ErrorCode
    message: str
    context: ErrorContext = field(default_factory=ErrorContext)
    metadata: dict = field(default_factory=dict)
    cause: Exception | None = None

    @property
    def kind(self) -> ErrorKind:
        return self.code.kind

    @property
    def status_code(self) -> int | None:
        """HTTP status of the response that produced this error, if any."""
        return self.metadata.get("status_code")

    def with_context(self, *, metadata: dict | None = None, **fields) -> AppError:
        """Copy with context fields (origin, batch_id, record_id, ...) replaced."""
        return replace(
            self,
            context=replace(self.context, **fields),
            metadata={**self.metadata, **(metadata or {})},
        )

    def with_metadata(self, **kwargs) -> AppError:
        return replace(self, metadata={**self.metadata, **kwargs})

    def chain(self, cause: Exception) -> AppError:
        return replace(self, cause=cause)

    def to_dict(self) -> dict:
        """Serialize for batch reports. The cause is reported by type only."""
        data = {
            "code": self.code.name,
            "code_num": self.code.value,
            "kind": self.kind.name.lower(),
            "category": self.code.category,
            "message": self.message,
            "correlation_id": self.context.correlation_id,
            "timestamp": self.context.timestamp.isoformat(),
            "metadata": self.metadata,
        }
        if self.cause is not None:
            data["cause"] = type(self.cause).__name__
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (correlation_id={self.context.correlation_id})"


class AppErrorException(Exception):
    """Exception wrapper for AppError.

    Raised where a Result cannot be returned: contract violations thrown out
    of the dispatcher, and classified failures raised by submit functions.
    """

    def __init__(self, error: AppError):
        self.error = error
        super().__init__(str(error))


@final
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Success variant of Result."""
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def unwrap_err(self) -> NoReturn:
        raise ValueError(f"Called unwrap_err on Ok: {self.value!r}")

    def map(self, f: Callable[[T], U]) -> Result[U, AppError]:
        return Ok(f(self.value))


@final
@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failure variant of Result, wrapping an AppError."""
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise ValueError(f"Called unwrap on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_err(self) -> E:
        return self.error

    def map(self, f: Callable[[T], U]) -> Result[U, E]:
        return self  # type: ignore


Result = Union[Ok[T], Err[E]]
