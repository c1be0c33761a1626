"""Error Boundary Mappers

Provides module boundary error mapping for clean error propagation.
The submit boundary is the only place where raw exceptions from the
network stack are inspected; everything downstream consumes the
classified AppError and its ErrorKind.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Generic, TypeVar

import httpx

from .types import (
    AppError,
    AppErrorException,
    Err,
    Result,
)
from .builders import (
    connection_refused,
    http_error,
    internal_error,
    network_error,
    rate_limited,
    timeout_error,
)

T = TypeVar("T")


class ErrorMapper(ABC, Generic[T]):
    """Abstract base for error mappers at module boundaries."""

    @abstractmethod
    def map_exception(self, exc: Exception) -> AppError:
        """Map a raised exception to a boundary error."""

    def map_error(self, error: AppError) -> AppError:
        """Map internal error to boundary error."""
        return error


class SubmitErrorMapper(ErrorMapper[T]):
    """Classifies failures raised by a submit function.

    AppErrorException is trusted as already classified. httpx and builtin
    network exceptions map onto transient codes; HTTP status errors map via
    ErrorCode.from_http_status. Anything else is an unexpected permanent error.
    """

    def __init__(self, origin: str = "submit"):
        self.origin = origin

    def map_error(self, error: AppError) -> AppError:
        if error.context.origin:
            return error
        return error.with_context(origin=self.origin)

    def map_exception(self, exc: Exception) -> AppError:
        if isinstance(exc, AppErrorException):
            return self.map_error(exc.error)
        if isinstance(exc, httpx.HTTPStatusError):
            return self._map_status_error(exc)
        if isinstance(exc, httpx.TimeoutException):
            return timeout_error(
                f"{exc.request.method} {exc.request.url}" if _has_request(exc) else "http request",
                origin=self.origin,
                cause=exc,
            ).error
        if isinstance(exc, httpx.ConnectError):
            return connection_refused(
                str(exc.request.url) if _has_request(exc) else "remote host",
                origin=self.origin,
                cause=exc,
            ).error
        if isinstance(exc, httpx.TransportError):
            return network_error(
                f"Network failure: {exc}",
                origin=self.origin,
                cause=exc,
            ).error
        if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
            return timeout_error("submit", origin=self.origin, cause=exc).error
        if isinstance(exc, ConnectionRefusedError):
            return connection_refused("remote host", origin=self.origin, cause=exc).error
        if isinstance(exc, ConnectionError):
            return network_error(f"Connection failure: {exc}", origin=self.origin, cause=exc).error

        return internal_error(
            f"Unexpected submit failure: {exc}",
            origin=self.origin,
            cause=exc,
            exception_type=type(exc).__name__,
        ).error

    def _map_status_error(self, exc: httpx.HTTPStatusError) -> AppError:
        response = exc.response
        url = str(exc.request.url)
        if response.status_code == 429:
            return rate_limited(
                url,
                retry_after=_retry_after(response),
                origin=self.origin,
            ).error.chain(exc)
        return http_error(
            response.status_code,
            _response_message(response),
            url=url,
            origin=self.origin,
        ).error.chain(exc)


def _has_request(exc: httpx.RequestError) -> bool:
    try:
        exc.request
    except RuntimeError:
        return False
    return True


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _response_message(response: httpx.Response) -> str:
    """Best-effort human message from an error response body."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            if isinstance(body.get(key), str):
                return body[key]
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()


DEFAULT_SUBMIT_MAPPER: SubmitErrorMapper = SubmitErrorMapper()


def classify_exception(exc: Exception, origin: str = "submit") -> AppError:
    """Classify an exception with the default submit mapper."""
    if origin == DEFAULT_SUBMIT_MAPPER.origin:
        return DEFAULT_SUBMIT_MAPPER.map_exception(exc)
    return SubmitErrorMapper(origin).map_exception(exc)


async def capture(
    fn: Callable[[], Awaitable[Result[T, AppError]]],
    mapper: ErrorMapper | None = None,
) -> Result[T, AppError]:
    """Await a Result-returning function, classifying anything it raises."""
    try:
        return await fn()
    except Exception as e:
        return Err((mapper or DEFAULT_SUBMIT_MAPPER).map_exception(e))
