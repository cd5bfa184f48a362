"""
Error taxonomy for the research pipeline.

Errors fall into a small number of classes that decide how they are handled:

    - Transient: network timeouts, HTTP 429 and 5xx. Retried inside the HTTP
      client, then surfaced as ``RetryExhaustedError``.
    - Permanent: other 4xx responses and malformed bodies. Never retried.
    - Validation: structured extraction could not produce a valid object.
      Treated as a per-URL skip.
    - Precondition: guard rejections raised before any work starts.

Every message carried by these exceptions has already been passed through
:func:`product_research.utils.logger.redact`.
"""

import asyncio
from typing import Any, Optional

import httpx

from product_research.utils.logger import redact


# =============================================================================
# Base Exception
# =============================================================================

class AppError(Exception):
    """Base application exception."""

    error_type = "UNKNOWN_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = redact(message)
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.error_type,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# HTTP Errors
# =============================================================================

class TransientError(AppError):
    """A failure worth retrying: transport error, rate limit or server error."""

    error_type = "TRANSIENT"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, {"status_code": status_code} if status_code else None)
        self.status_code = status_code


class PermanentCallError(AppError):
    """A call that will fail again if repeated (4xx other than 429, bad JSON)."""

    error_type = "PERMANENT"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, {"status_code": status_code} if status_code else None)
        self.status_code = status_code


class RetryExhaustedError(AppError):
    """Raised when the retry budget is spent on transient failures."""

    error_type = "TRANSIENT"

    def __init__(self, attempts: int, last_cause: Exception):
        super().__init__(
            f"Request failed after {attempts} attempts: {last_cause}",
            {"attempts": attempts},
        )
        self.attempts = attempts
        self.last_cause = last_cause


class ConfigurationError(AppError):
    """Missing credentials or unusable configuration."""

    error_type = "CONFIGURATION"


# =============================================================================
# Pipeline Errors
# =============================================================================

class ExtractionFailedError(AppError):
    """Structured extraction failed for one page."""

    error_type = "VALIDATION"


class InvalidTransitionError(AppError):
    """A report was asked to move to a status it cannot reach."""

    error_type = "PRECONDITION"


class ReportNotFoundError(AppError):
    error_type = "NOT_FOUND"


class StageFailedError(AppError):
    """A stage failed fatally; the report has already been marked failed."""

    error_type = "STAGE_FAILED"

    def __init__(self, stage: str, message: str, report_id: Optional[str] = None):
        super().__init__(message, {"stage": stage, "report_id": report_id})
        self.stage = stage
        self.report_id = report_id


class PreconditionError(AppError):
    """Rejected before any work started."""

    error_type = "PRECONDITION"
    code = "precondition_failed"


class CooldownActiveError(PreconditionError):
    code = "cooldown_active"

    def __init__(self, remaining_seconds: int):
        minutes = max(1, -(-remaining_seconds // 60))
        super().__init__(
            f"Please wait {minutes} minute(s) before running another analysis",
            {"remaining_seconds": remaining_seconds},
        )
        self.remaining_seconds = remaining_seconds


class BudgetExceededError(PreconditionError):
    code = "budget_exceeded"

    def __init__(self, used: float, budget: float):
        super().__init__(
            f"Daily API credit budget reached ({used:g}/{budget:g} credits used). "
            "Try again tomorrow or increase the budget.",
            {"used": used, "budget": budget},
        )


class SubjectNotFoundError(PreconditionError):
    code = "subject_not_found"


# =============================================================================
# Error Handler
# =============================================================================

class ErrorHandler:
    """Centralized error categorization."""

    @staticmethod
    def categorize_error(error: Exception) -> str:
        """Categorize errors for appropriate handling."""
        if isinstance(error, AppError):
            return error.error_type
        if isinstance(error, (httpx.TransportError, asyncio.TimeoutError, ConnectionError)):
            return "TRANSIENT"
        if isinstance(error, (ValueError, TypeError)):
            return "VALIDATION"
        return "UNKNOWN_ERROR"

    @staticmethod
    def is_retryable(error: Exception) -> bool:
        return ErrorHandler.categorize_error(error) == "TRANSIENT"

    @staticmethod
    def describe(error: Exception) -> str:
        """Operator-facing, sanitized one-line description."""
        if isinstance(error, AppError):
            return error.message
        return redact(f"{type(error).__name__}: {error}")
