"""Utils module: logging, error taxonomy and retry policy."""

from product_research.utils.logger import get_logger, setup_logging, redact, LogContext
from product_research.utils.errors import (
    AppError,
    TransientError,
    PermanentCallError,
    RetryExhaustedError,
    ConfigurationError,
    ExtractionFailedError,
    InvalidTransitionError,
    ReportNotFoundError,
    StageFailedError,
    PreconditionError,
    CooldownActiveError,
    BudgetExceededError,
    SubjectNotFoundError,
    ErrorHandler,
)
from product_research.utils.retry import RetryPolicy, build_retrying

__all__ = [
    "get_logger",
    "setup_logging",
    "redact",
    "LogContext",
    "AppError",
    "TransientError",
    "PermanentCallError",
    "RetryExhaustedError",
    "ConfigurationError",
    "ExtractionFailedError",
    "InvalidTransitionError",
    "ReportNotFoundError",
    "StageFailedError",
    "PreconditionError",
    "CooldownActiveError",
    "BudgetExceededError",
    "SubjectNotFoundError",
    "ErrorHandler",
    "RetryPolicy",
    "build_retrying",
]
