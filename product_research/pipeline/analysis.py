"""
Per-URL analysis step.

``analyze_step`` is a pure function over ``(PartialAnalysis, url_index)``:
it returns the new partial state and the step result without touching any
store. The extraction call is injected, so the step can be exercised without
a network and a caller could fan it out behind the same contract.
"""

from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

from product_research.models.schemas import CompetitorProfile, ExtractedPage, Report
from product_research.utils.errors import ErrorHandler
from product_research.utils.logger import get_logger

logger = get_logger(__name__)

ExtractFn = Callable[[str, str], Awaitable[CompetitorProfile]]


@dataclass(frozen=True)
class PartialAnalysis:
    """Pages awaiting analysis plus what has been learned so far."""

    pages: tuple[ExtractedPage, ...]
    profiles: tuple[CompetitorProfile, ...] = ()
    failed_urls: tuple[str, ...] = ()

    @classmethod
    def from_report(cls, report: Report) -> "PartialAnalysis":
        return cls(
            pages=tuple(report.extracted_content),
            profiles=tuple(report.partial_profiles),
            failed_urls=tuple(report.error_details.failed_urls),
        )

    def profile_for(self, source_url: str) -> Optional[CompetitorProfile]:
        for profile in self.profiles:
            if profile.source_url == source_url:
                return profile
        return None

    def with_profile(self, profile: CompetitorProfile) -> "PartialAnalysis":
        if self.profile_for(profile.source_url) is not None:
            return self
        return replace(
            self,
            profiles=self.profiles + (profile,),
            failed_urls=tuple(u for u in self.failed_urls if u != profile.source_url),
        )

    def with_failure(self, url: str) -> "PartialAnalysis":
        if url in self.failed_urls:
            return self
        return replace(self, failed_urls=self.failed_urls + (url,))


@dataclass(frozen=True)
class StepResult:
    url: str
    profile: Optional[CompetitorProfile] = None
    cached: bool = False
    error: Optional[str] = None
    retryable: bool = False

    @property
    def skipped(self) -> bool:
        return self.profile is None


async def analyze_step(
    state: PartialAnalysis,
    url_index: int,
    extract: ExtractFn,
    max_chars: int,
) -> tuple[PartialAnalysis, StepResult]:
    """
    Analyze the page at ``url_index``.

    A page that already has a profile returns it without calling ``extract``.
    Any extraction failure becomes a skip recorded in ``failed_urls``; a
    skip caused by a transient error is flagged ``retryable``.
    """
    page = state.pages[url_index]

    existing = state.profile_for(page.url)
    if existing is not None:
        logger.info("Profile already analyzed, reusing", url_index=url_index)
        return state, StepResult(url=page.url, profile=existing, cached=True)

    content = page.content[:max_chars]
    try:
        profile = await extract(content, page.url)
    except Exception as e:
        reason = ErrorHandler.describe(e)
        logger.warning(
            "Competitor analysis skipped",
            url_index=url_index,
            error_type=ErrorHandler.categorize_error(e),
            error=reason,
        )
        return state.with_failure(page.url), StepResult(
            url=page.url,
            error=reason,
            retryable=ErrorHandler.is_retryable(e),
        )

    return state.with_profile(profile), StepResult(url=page.url, profile=profile)
