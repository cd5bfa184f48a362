"""
Structured logging configuration.

Provides consistent logging across the application with JSON formatting and
a redaction processor that keeps credentials, bearer tokens and signed URLs
out of every rendered log line.
"""

import logging
import re
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger


MAX_MESSAGE_LENGTH = 1000

_BEARER_PATTERN = re.compile(r"Authorization:\s*Bearer\s+\S+", re.IGNORECASE)
# Long opaque tokens; lower-case hex runs (report ids, UUIDs, content hashes) are left alone.
_SECRET_PATTERN = re.compile(r"\b(?![0-9a-f\-]{32,}\b)[A-Za-z0-9_\-]{32,}\b")
_QUERY_URL_PATTERN = re.compile(r"https?://[^\s\"']+\?[^\s\"']*")


def redact(text: Any, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Strip secrets from a message before it is logged or persisted.

    Args:
        text: Message (non-strings are converted with ``str``).
        max_length: Length above which the message is truncated.

    Returns:
        Sanitized message.
    """
    message = str(text)
    message = _BEARER_PATTERN.sub("Authorization: Bearer [REDACTED]", message)
    message = _QUERY_URL_PATTERN.sub("[URL_REDACTED]", message)
    message = _SECRET_PATTERN.sub("[REDACTED]", message)
    if len(message) > max_length:
        message = message[:max_length] + "... [TRUNCATED]"
    return message


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact(value)
    if isinstance(value, list):
        return [_redact_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_redact_value(item) for item in value)
    if isinstance(value, dict):
        return {key: _redact_value(item) for key, item in value.items()}
    return value


def redact_sensitive(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    structlog processor applying :func:`redact` to every string value.

    Strings nested in lists, tuples and dicts are redacted too.
    """
    for key, value in event_dict.items():
        if key not in ("timestamp", "level", "logger"):
            event_dict[key] = _redact_value(value)
    return event_dict


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure application-wide structured logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Whether to output logs in JSON format.
        log_file: Optional file path for logging output.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        redact_sensitive,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, level.upper()))
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger for the given module name.

    Args:
        name: Logger name, typically __name__.

    Returns:
        Configured structlog logger instance.
    """
    return structlog.get_logger(name)


class LogContext:
    """Context manager for adding temporary log context."""

    def __init__(self, **kwargs):
        self.context = kwargs
        self._token = None

    def __enter__(self):
        self._token = structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token:
            structlog.contextvars.unbind_contextvars(*self.context.keys())
