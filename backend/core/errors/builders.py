"""Error Builders

Constructors returning Err[AppError] for each failure the dispatcher,
resilience layer and validators report. Metadata keys whose value is None
are dropped so reports only carry what is known.
"""
from .types import AppError, ErrorCode, ErrorContext, Err


def _err(
    code: ErrorCode,
    message: str,
    origin: str = "",
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin),
        metadata={k: v for k, v in metadata.items() if v is not None},
        cause=cause,
    ))


# =============================================================================
# Network / remote service (E1xxx)
# =============================================================================

def network_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E1000_NETWORK_GENERIC,
    url: str | None = None,
    status_code: int | None = None,
    origin: str = "",
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    """Failure talking to the remote service."""
    return _err(code, message, origin, cause, url=url, status_code=status_code, **metadata)


def connection_refused(target: str, origin: str = "", cause: Exception | None = None) -> Err[AppError]:
    return _err(ErrorCode.E1001_CONNECTION_REFUSED, f"Connection refused by {target}", origin, cause,
                target=target)


def timeout_error(
    operation: str,
    timeout_seconds: float | None = None,
    origin: str = "",
    cause: Exception | None = None,
) -> Err[AppError]:
    after = f" after {timeout_seconds}s" if timeout_seconds is not None else ""
    return _err(ErrorCode.E1002_TIMEOUT, f"'{operation}' timed out{after}", origin, cause,
                operation=operation, timeout_seconds=timeout_seconds)


def http_error(
    status_code: int,
    message: str = "",
    *,
    url: str | None = None,
    origin: str = "",
    **metadata,
) -> Err[AppError]:
    """Error response from the remote service, coded by its status."""
    return _err(
        ErrorCode.from_http_status(status_code),
        message or f"Remote service answered {status_code}",
        origin,
        url=url,
        status_code=status_code,
        **metadata,
    )


def circuit_open(service: str, retry_after: float | None = None, origin: str = "") -> Err[AppError]:
    """Synthetic failure returned while a breaker rejects calls."""
    return _err(ErrorCode.E1012_CIRCUIT_OPEN, f"Circuit open for '{service}', call not attempted", origin,
                service=service, retry_after=retry_after)


def rate_limited(service: str, retry_after: float | None = None, origin: str = "") -> Err[AppError]:
    return _err(ErrorCode.E1013_RATE_LIMITED, f"Rate limited by {service}", origin,
                status_code=429, service=service, retry_after=retry_after)


# =============================================================================
# Validation (E2xxx)
# =============================================================================

def validation_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E2000_VALIDATION_GENERIC,
    field: str | None = None,
    value: str | None = None,
    origin: str = "",
    **metadata,
) -> Err[AppError]:
    return _err(code, message, origin, field=field, value=value, **metadata)


def record_invalid(record_id: str, errors: dict[str, str], origin: str = "") -> Err[AppError]:
    """Error attached to a record skipped by pre-submit validation."""
    return validation_error(
        f"Record {record_id} failed validation: {', '.join(sorted(errors))}",
        origin=origin,
        record_id=record_id,
        errors=dict(errors),
    )


# =============================================================================
# Contract (E5xxx)
# =============================================================================

def business_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E5000_BUSINESS_GENERIC,
    origin: str = "",
    **metadata,
) -> Err[AppError]:
    return _err(code, message, origin, **metadata)


def state_conflict(entity: str, current_state: str, required_state: str, origin: str = "") -> Err[AppError]:
    return business_error(
        f"{entity} is {current_state}, needs to be {required_state}",
        code=ErrorCode.E5002_STATE_CONFLICT,
        origin=origin,
        entity=entity,
        current_state=current_state,
        required_state=required_state,
    )


def precondition_failed(condition: str, reason: str = "", origin: str = "", **metadata) -> Err[AppError]:
    """A caller broke a contract: malformed schema, duplicate ids, bad config."""
    message = f"Precondition failed: {condition}" + (f" ({reason})" if reason else "")
    return business_error(message, code=ErrorCode.E5003_PRECONDITION_FAILED, origin=origin,
                          condition=condition, **metadata)


# =============================================================================
# Internal (E9xxx)
# =============================================================================

def internal_error(
    message: str,
    *,
    code: ErrorCode = ErrorCode.E9001_UNEXPECTED_ERROR,
    origin: str = "",
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    return _err(code, message, origin, cause, **metadata)
