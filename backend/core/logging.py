"""Structured Logging for Bulk Dispatch

structlog on top of stdlib logging:
- Colored console output for interactive runs, JSON lines for pipelines
- Logs go to stderr so CLI progress on stdout stays readable
- batch_id bound through contextvars for the length of a dispatch run
- Sensitive keys in record payloads and headers are redacted
"""
import logging
import sys
from typing import Any, TextIO
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

SERVICE_NAME = "bulk-dispatch"
SERVICE_VERSION = "0.1.0"

REDACTED_KEYS = frozenset({
    "password", "token", "secret", "authorization", "cookie", "api_key", "idempotency-key",
})
_MAX_REDACT_DEPTH = 5


def _redact_value(value: Any, depth: int) -> Any:
    if depth > _MAX_REDACT_DEPTH:
        return value
    if isinstance(value, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in REDACTED_KEYS else _redact_value(v, depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact_value(v, depth + 1) for v in value]
    return value


def redact_sensitive(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace values of sensitive keys, at any nesting depth, with a marker."""
    return _redact_value(event_dict, 0)


def add_service(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", SERVICE_VERSION)
    return event_dict


def shared_processors() -> list[Processor]:
    """Processors applied to structlog and foreign stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_service,
        redact_sensitive,
    ]


def _renderer(json_logs: bool) -> Processor:
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=True,
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(level: str = "INFO", json_logs: bool = False, stream: TextIO | None = None) -> None:
    """Configure structlog and the root stdlib logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON lines instead of colored console output
        stream: Destination, stderr by default
    """
    processors = shared_processors()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(json_logs),
        ],
    )

    structlog.configure(
        processors=[
            *processors,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # httpx logs every request at INFO
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def generate_batch_id() -> str:
    """Short correlation ID for one batch run."""
    return uuid4().hex[:8]


def bind_context(**kwargs) -> None:
    """Bind key-value pairs into every log event of the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


class LoggerRegistry:
    """One logger per domain, named bulk.<domain>."""

    _loggers: dict[str, structlog.stdlib.BoundLogger] = {}

    @classmethod
    def get(cls, domain: str) -> structlog.stdlib.BoundLogger:
        if domain not in cls._loggers:
            cls._loggers[domain] = get_logger(f"bulk.{domain}")
        return cls._loggers[domain]


def dispatch_logger() -> structlog.stdlib.BoundLogger:
    return LoggerRegistry.get("dispatch")


def resilience_logger() -> structlog.stdlib.BoundLogger:
    """Retry and circuit breaker events."""
    return LoggerRegistry.get("resilience")


def validation_logger() -> structlog.stdlib.BoundLogger:
    return LoggerRegistry.get("validation")


def client_logger() -> structlog.stdlib.BoundLogger:
    """Remote submit client events."""
    return LoggerRegistry.get("client")
