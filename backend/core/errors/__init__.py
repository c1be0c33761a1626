"""Typed Errors and Results

Every failure in a dispatch run is an AppError inside an Err. Its
ErrorCode places it in the taxonomy (E1 network, E2 validation,
E5 contract, E9 internal) and its ErrorKind tells the retry policy and
circuit breaker how to treat it.

Usage:
    from core.errors import Ok, Err, ErrorKind

    match await breaker.call(create):
        case Ok(created):
            ...
        case Err(error) if error.kind is ErrorKind.TRANSIENT:
            log.warning("create_failed", code=error.code.name)

Submit functions raise; SubmitErrorMapper turns what they raise into
an AppError at that boundary, and capture() applies it to an awaitable.
"""
from .types import (
    AppError,
    AppErrorException,
    Err,
    ErrorCode,
    ErrorContext,
    ErrorKind,
    Ok,
    Result,
)

from .builders import (
    business_error,
    circuit_open,
    connection_refused,
    http_error,
    internal_error,
    network_error,
    precondition_failed,
    rate_limited,
    record_invalid,
    state_conflict,
    timeout_error,
    validation_error,
)

from .boundaries import (
    DEFAULT_SUBMIT_MAPPER,
    ErrorMapper,
    SubmitErrorMapper,
    capture,
    classify_exception,
)

__all__ = [
    # Types
    "AppError",
    "AppErrorException",
    "Err",
    "ErrorCode",
    "ErrorContext",
    "ErrorKind",
    "Ok",
    "Result",
    # Builders
    "business_error",
    "circuit_open",
    "connection_refused",
    "http_error",
    "internal_error",
    "network_error",
    "precondition_failed",
    "rate_limited",
    "record_invalid",
    "state_conflict",
    "timeout_error",
    "validation_error",
    # Boundary
    "DEFAULT_SUBMIT_MAPPER",
    "ErrorMapper",
    "SubmitErrorMapper",
    "capture",
    "classify_exception",
]
