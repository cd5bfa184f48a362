"""
Research pipeline orchestrator.

Drives a ``Report`` through Search, Extract, AnalyzeOne (once per page) and
Finalize, persisting status and progress after every stage. Each stage is
idempotent and re-entrant: calling it again after a partial failure or a
client timeout produces the same effect without repeating completed
third-party work.

Stage methods return a ``StageOutcome``:

    - ``ok``: the stage value
    - ``retryable``: this unit of work was skipped; the report is still live
    - ``fatal``: the report has been marked ``failed``

Calling a stage from a status that does not allow it raises
``InvalidTransitionError`` before anything changes.

Example:
    >>> orchestrator = ResearchOrchestrator(settings, store, cache, search_client,
    ...                                     extractor, normalizer)
    >>> outcome = await orchestrator.search(report.id, subject)
    >>> if outcome.is_ok:
    ...     await orchestrator.extract(report.id, outcome.value.urls[:3])
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from product_research.analyzers.report_summary import build_summary, looks_uniform
from product_research.config.settings import Settings
from product_research.extractors.competitor_extractor import CompetitorExtractor, url_match_key
from product_research.models.schemas import (
    CompetitorProfile,
    CompetitorReport,
    ErrorDetails,
    ExtractedPage,
    Report,
    ReportStatus,
    SearchHit,
    Subject,
)
from product_research.pipeline.analysis import PartialAnalysis, StepResult, analyze_step
from product_research.pipeline.state import StageOutcome, ensure_transition
from product_research.services.content_sanitizer import ContentSanitizer
from product_research.services.currency_service import CurrencyNormalizer
from product_research.services.search_service import ExtractResponse, SearchResponse, TavilyClient
from product_research.services.validation_service import ValidationService
from product_research.storage.cache import ResponseCache
from product_research.storage.report_store import ReportStore
from product_research.utils.errors import ErrorHandler, InvalidTransitionError
from product_research.utils.logger import get_logger, redact

logger = get_logger(__name__)

QUERY_SUFFIX = "price buy"
CANCELLED_MESSAGE = "Cancelled by user"
MAX_IMAGES_PER_PAGE = 10


# =============================================================================
# Stage Values
# =============================================================================

@dataclass(frozen=True)
class SearchStageResult:
    query: str
    results: list[SearchHit]
    urls: list[str]
    from_cache: bool = False


@dataclass(frozen=True)
class ExtractStageResult:
    total_urls: int
    failed_urls: list[str] = field(default_factory=list)
    from_cache: bool = False


@dataclass(frozen=True)
class AnalyzeStageResult:
    url_index: int
    total: int
    step: StepResult


def build_search_query(subject: Subject) -> str:
    """Quoted title, category, brand and a buying-intent suffix."""
    parts = [f'"{subject.title}"', subject.category, subject.brand, QUERY_SUFFIX]
    return " ".join(p.strip() for p in parts if p and p.strip())


# =============================================================================
# Orchestrator
# =============================================================================

class ResearchOrchestrator:
    """
    Stage-by-stage driver for research reports.

    Attributes:
        settings: Configuration provider
        store: Report persistence
        cache: Response cache for search and extract calls
        search_client: Search/extract API client
        extractor: Structured extraction client for product pages
        normalizer: Currency normalizer used at finalize
    """

    def __init__(
        self,
        settings: Settings,
        store: ReportStore,
        cache: ResponseCache,
        search_client: TavilyClient,
        extractor: CompetitorExtractor,
        normalizer: CurrencyNormalizer,
        sanitizer: Optional[ContentSanitizer] = None,
        validator: Optional[ValidationService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.store = store
        self.cache = cache
        self.search_client = search_client
        self.extractor = extractor
        self.normalizer = normalizer
        self.sanitizer = sanitizer or ContentSanitizer(settings.token_budget)
        self.validator = validator or ValidationService()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _fail(self, report: Report, stage: str, error: Exception | str) -> StageOutcome:
        """Mark the report failed (unless already terminal) and return a fatal outcome."""
        message = ErrorHandler.describe(error) if isinstance(error, Exception) else redact(error)
        logger.error("Stage failed", report_id=report.id, stage=stage, error=message)

        current = await self.store.get(report.id)
        if not current.is_terminal:
            details = current.error_details.model_copy(deep=True)
            details.message = message
            details.stage = stage
            await self.store.update(
                report.id,
                status=ReportStatus.FAILED,
                progress_message=f"{stage.capitalize()} failed: {message}",
                error_details=details,
            )
        return StageOutcome.fatal(message)

    # =========================================================================
    # Search
    # =========================================================================

    async def search(self, report_id: str, subject: Subject) -> StageOutcome[SearchStageResult]:
        """
        Find candidate competitor pages for ``subject``.

        A report already in ``previewing`` returns its stored results.
        """
        report = await self.store.get(report_id)
        if report.status == ReportStatus.PREVIEWING and report.search_query:
            return StageOutcome.ok(SearchStageResult(
                query=report.search_query,
                results=report.competitor_data,
                urls=[hit.url for hit in report.competitor_data],
                from_cache=True,
            ))

        ensure_transition(report.status, ReportStatus.SEARCHING)
        await self.store.update_status(report_id, ReportStatus.SEARCHING, "Searching for competitors...")

        query = build_search_query(subject)
        key = ResponseCache.make_key(subject.id, "search", query)
        cached = await self.cache.get(key)

        if cached is not None:
            response = SearchResponse.model_validate(cached)
            logger.info("Search served from cache", report_id=report_id)
        else:
            try:
                response = await self.search_client.search(query)
            except Exception as e:
                return await self._fail(report, "search", e)
            await self.cache.set(key, response.model_dump(), ttl=self.settings.cache_ttl_seconds)

        hits: list[SearchHit] = []
        for item in response.results:
            if item.url and all(h.url != item.url for h in hits):
                hits.append(SearchHit(
                    url=item.url,
                    title=item.title or "",
                    snippet=item.content or "",
                    score=item.score,
                ))

        if not hits:
            return await self._fail(report, "search", "No competitor pages found")

        await self.store.update(
            report_id,
            search_query=query,
            competitor_data=hits,
            status=ReportStatus.PREVIEWING,
            progress_message=f"Found {len(hits)} results",
        )
        logger.info("Search stage complete", report_id=report_id, results=len(hits))

        return StageOutcome.ok(SearchStageResult(
            query=query,
            results=hits,
            urls=[h.url for h in hits],
            from_cache=cached is not None,
        ))

    # =========================================================================
    # Extract
    # =========================================================================

    async def extract(self, report_id: str, selected_urls: list[str]) -> StageOutcome[ExtractStageResult]:
        """
        Extract and sanitize every selected page in one batched call.

        Fails the report only when no page yields usable content.
        """
        report = await self.store.get(report_id)
        urls = self.validator.validate_selected_urls(selected_urls)
        if len(urls) > self.settings.max_competitors:
            logger.info(
                "Selection truncated to competitor limit",
                selected=len(urls),
                limit=self.settings.max_competitors,
            )
            urls = urls[: self.settings.max_competitors]

        if report.status == ReportStatus.ANALYZING and report.selected_urls == urls:
            return StageOutcome.ok(ExtractStageResult(
                total_urls=len(report.extracted_content),
                failed_urls=list(report.error_details.failed_urls),
                from_cache=True,
            ))

        ensure_transition(report.status, ReportStatus.EXTRACTING)
        report = await self.store.update(
            report_id,
            selected_urls=urls,
            status=ReportStatus.EXTRACTING,
            progress_message=f"Extracting content from {len(urls)} URLs...",
        )

        key = ResponseCache.make_key(report.subject_id, "extract", "\n".join(sorted(urls)))
        cached = await self.cache.get(key)
        if cached is not None:
            response = ExtractResponse.model_validate(cached)
            logger.info("Extraction served from cache", report_id=report_id)
        else:
            try:
                response = await self.search_client.extract(urls)
            except Exception as e:
                return await self._fail(report, "extract", e)

        pages, errors = self._collect_pages(urls, response, report.error_details)
        if not pages:
            await self.store.update(report_id, error_details=errors)
            return await self._fail(
                report, "extract", "Could not extract content from any of the selected URLs"
            )

        if cached is None:
            await self.cache.set(key, response.model_dump(), ttl=self.settings.cache_ttl_seconds)

        await self.store.update(
            report_id,
            extracted_content=pages,
            partial_profiles=[],
            error_details=errors,
            status=ReportStatus.ANALYZING,
            progress_message=f"Extracted content from {len(pages)} of {len(urls)} URLs",
        )
        logger.info(
            "Extract stage complete",
            report_id=report_id,
            usable=len(pages),
            failed=len(errors.failed_urls),
        )
        return StageOutcome.ok(ExtractStageResult(
            total_urls=len(pages),
            failed_urls=list(errors.failed_urls),
            from_cache=cached is not None,
        ))

    def _collect_pages(
        self,
        urls: list[str],
        response: ExtractResponse,
        previous: ErrorDetails,
    ) -> tuple[list[ExtractedPage], ErrorDetails]:
        """
        Map extract results back onto the selected URLs.

        Results are matched by ``url_match_key`` and stored under the URL the
        operator selected. Results for URLs nobody selected are ignored, and a
        selected URL is failed only when no usable result maps to it.
        """
        errors = previous.model_copy(deep=True)
        selected = {url_match_key(url): url for url in urls}
        by_url: dict[str, ExtractedPage] = {}

        for item in response.results:
            url = selected.get(url_match_key(item.url))
            if url is None:
                logger.debug("Ignoring unselected extract result", url=item.url)
                continue
            if url in by_url:
                continue
            content = self.sanitizer.sanitize(item.raw_content or "")
            if not content:
                continue
            images = [i for i in item.images if isinstance(i, str)][:MAX_IMAGES_PER_PAGE]
            by_url[url] = ExtractedPage(url=url, content=content, images=images)

        pages: list[ExtractedPage] = []
        for url in urls:
            if url in by_url:
                pages.append(by_url[url])
                errors.discard_failed_url(url)
            else:
                errors.add_failed_url(url)
        return pages, errors

    # =========================================================================
    # Analyze
    # =========================================================================

    async def analyze_one(self, report_id: str, url_index: int) -> StageOutcome[AnalyzeStageResult]:
        """
        Analyze one extracted page.

        Re-issuing the same index returns the stored profile without another
        extraction call. A failed page is recorded and returned as
        ``retryable``; the report stays live.
        """
        report = await self.store.get(report_id)
        if report.status != ReportStatus.ANALYZING:
            raise InvalidTransitionError(
                f"Report is '{report.status_enum.value}', not 'analyzing'",
                {"current": report.status_enum.value},
            )

        total = len(report.extracted_content)
        index = self.validator.validate_url_index(url_index, total)
        state = PartialAnalysis.from_report(report)

        if state.profile_for(state.pages[index].url) is None:
            await self.store.update_status(
                report_id, ReportStatus.ANALYZING, f"Analyzing competitor {index + 1} of {total}..."
            )

        _, step = await analyze_step(
            state,
            index,
            self.extractor.extract_profile,
            self.settings.content_char_budget,
        )
        if step.cached:
            return StageOutcome.ok(AnalyzeStageResult(url_index=index, total=total, step=step))

        # Re-read before writing: another call may have finished this page,
        # or the report may have been cancelled while extraction ran.
        fresh = await self.store.get(report_id)
        if fresh.is_terminal:
            logger.info("Report no longer active, discarding result", report_id=report_id)
            return StageOutcome.fatal(f"Report is {fresh.status_enum.value}")

        merged = PartialAnalysis.from_report(fresh)
        if step.profile is not None:
            merged = merged.with_profile(step.profile)
            stored = merged.profile_for(step.url) or step.profile
            step = StepResult(url=step.url, profile=stored)
        else:
            merged = merged.with_failure(step.url)

        errors = fresh.error_details.model_copy(update={"failed_urls": list(merged.failed_urls)})
        await self.store.update(
            report_id,
            partial_profiles=list(merged.profiles),
            error_details=errors,
        )

        result = AnalyzeStageResult(url_index=index, total=total, step=step)
        if step.skipped:
            return StageOutcome.retryable(step.error or "Analysis failed", value=result)
        return StageOutcome.ok(result)

    # =========================================================================
    # Finalize
    # =========================================================================

    async def finalize(self, report_id: str) -> StageOutcome[CompetitorReport]:
        """
        Normalize currencies, summarize and complete the report.

        A report that is already complete returns its stored result.
        """
        report = await self.store.get(report_id)
        if report.status == ReportStatus.COMPLETE and report.analysis_result is not None:
            return StageOutcome.ok(report.analysis_result)

        ensure_transition(report.status, ReportStatus.COMPLETE)
        await self.store.update_status(report_id, ReportStatus.ANALYZING, "Finalizing report...")

        profiles: list[CompetitorProfile] = list(report.partial_profiles)
        if not profiles:
            return await self._fail(report, "finalize", "No competitor profiles could be extracted")

        if looks_uniform(profiles):
            logger.warning(
                "Competitor profiles look identical; pages may be listings or templates",
                report_id=report_id,
                profiles=len(profiles),
            )

        try:
            normalized = await self.normalizer.normalize(profiles)
        except Exception as e:
            return await self._fail(report, "finalize", e)

        result = CompetitorReport(
            competitors=normalized,
            summary=build_summary(normalized, self.normalizer.store_currency),
        )
        await self.store.update(
            report_id,
            analysis_result=result,
            partial_profiles=[],
            extracted_content=[],
            status=ReportStatus.COMPLETE,
            progress_message=f"Research complete: {len(normalized)} competitors analyzed",
            completed_at=self._clock(),
        )
        logger.info(
            "Report finalized",
            report_id=report_id,
            competitors=result.summary.total_competitors,
            failed_conversions=result.summary.failed_conversions,
        )
        return StageOutcome.ok(result)

    # =========================================================================
    # Cancel
    # =========================================================================

    async def cancel(self, report_id: str) -> Report:
        """
        Fail a live report on the operator's request.

        Raises:
            InvalidTransitionError: If the report is already terminal
        """
        report = await self.store.get(report_id)
        ensure_transition(report.status, ReportStatus.FAILED)

        details = report.error_details.model_copy(deep=True)
        details.message = CANCELLED_MESSAGE
        details.stage = "cancel"
        updated = await self.store.update(
            report_id,
            status=ReportStatus.FAILED,
            progress_message=CANCELLED_MESSAGE,
            extracted_content=[],
            error_details=details,
        )
        logger.info("Report cancelled", report_id=report_id)
        return updated

    async def close(self) -> None:
        await self.search_client.close()
        await self.extractor.close()
        await self.normalizer.rates.close()
