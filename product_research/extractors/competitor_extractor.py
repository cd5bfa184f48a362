"""
Competitor profile extraction.

Wraps the structured extraction service for one product page: builds the
prompt, requests an ``ExtractedProfile`` and applies a post-hoc domain check.
The model occasionally returns a URL from a different site (a related product
or a marketplace link); when the returned host differs from the source host
the source URL is kept instead, and the profile is otherwise accepted.

Example:
    >>> extractor = CompetitorExtractor(ClaudeExtractionService(settings))
    >>> profile = await extractor.extract_profile(page.content, page.url)
"""

from typing import Optional
from urllib.parse import urlparse

from product_research.extractors.prompts import format_competitor_profile_prompt
from product_research.models.schemas import CompetitorProfile, ExtractedProfile
from product_research.services.llm_service import StructuredExtractionService
from product_research.utils.logger import get_logger

logger = get_logger(__name__)


def host_of(url: str) -> str:
    """Lower-cased host without a leading ``www.``."""
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def url_match_key(url: str) -> str:
    """
    Comparison key for a page URL.

    The extract API may answer under a canonical form of the requested URL
    (``www.`` added or dropped, a trailing slash, host case). Those forms
    share a key; scheme and fragment are ignored.
    """
    parsed = urlparse(url.strip())
    key = host_of(url.strip()) + (parsed.path.rstrip("/") or "")
    if parsed.query:
        key += "?" + parsed.query
    return key


class CompetitorExtractor:
    """Structured extraction client for competitor product pages."""

    def __init__(self, service: StructuredExtractionService):
        self.service = service

    async def extract_profile(self, content: str, source_url: str) -> CompetitorProfile:
        """
        Extract one competitor profile.

        Args:
            content: Sanitized page text
            source_url: URL the content came from

        Returns:
            Profile with ``source_url`` set and a domain-checked ``url``

        Raises:
            ExtractionFailedError: Service failure or schema retries exhausted
        """
        extracted = await self.service.extract(
            content,
            ExtractedProfile,
            format_competitor_profile_prompt(source_url),
        )
        profile = CompetitorProfile.from_extracted(extracted, source_url=source_url)
        return self.check_domain(profile, source_url)

    @staticmethod
    def check_domain(profile: CompetitorProfile, source_url: str) -> CompetitorProfile:
        returned_host: Optional[str] = host_of(profile.url)
        source_host = host_of(source_url)
        if returned_host == source_host:
            return profile

        logger.warning(
            "Extracted URL domain mismatch, using source URL",
            source_host=source_host,
            returned_host=returned_host,
        )
        return profile.model_copy(update={"url": source_url})

    async def close(self) -> None:
        await self.service.close()
