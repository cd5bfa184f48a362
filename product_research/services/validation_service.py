"""
Validation service for client-supplied input.

Checks operator selections and indices before they reach the pipeline so
stage methods only ever see well-formed values.
"""

from typing import Any, Iterable, Optional
from urllib.parse import urlparse

from product_research.utils.errors import PreconditionError
from product_research.utils.logger import get_logger

logger = get_logger(__name__)


class ValidationError(PreconditionError):
    """Invalid client input."""

    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = code


class ValidationService:
    """Service for validating entry-point input."""

    def normalize_url(self, url: Any) -> Optional[str]:
        """Return a trimmed http(s) URL, or None when it is not one."""
        if not isinstance(url, str):
            return None
        url = url.strip()
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return None
        return url

    def validate_selected_urls(self, urls: Iterable[Any]) -> list[str]:
        """
        Clean the operator's URL selection.

        Invalid entries are dropped and duplicates removed, preserving order.

        Raises:
            ValidationError: If nothing usable remains
        """
        cleaned: list[str] = []
        rejected = 0
        for url in urls or []:
            normalized = self.normalize_url(url)
            if normalized is None:
                rejected += 1
                continue
            if normalized not in cleaned:
                cleaned.append(normalized)

        if rejected:
            logger.warning("Dropped invalid URLs from selection", rejected=rejected)
        if not cleaned:
            raise ValidationError(
                code="NO_URLS_SELECTED",
                message="No valid URLs selected",
            )
        return cleaned

    def validate_url_index(self, url_index: Any, total: int) -> int:
        try:
            index = int(url_index)
        except (TypeError, ValueError):
            raise ValidationError(
                code="INVALID_URL_INDEX",
                message=f"URL index must be an integer, got {url_index!r}",
            )
        if not 0 <= index < total:
            raise ValidationError(
                code="INVALID_URL_INDEX",
                message=f"Invalid URL index {index} (have {total} pages)",
                details={"index": index, "total": total},
            )
        return index

    def validate_subject_id(self, subject_id: Any) -> str:
        value = str(subject_id).strip() if subject_id is not None else ""
        if not value:
            raise ValidationError(code="INVALID_SUBJECT", message="Subject id is required")
        return value
