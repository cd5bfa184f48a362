"""
Pipeline entry points exposed to the client driver.

Pipeline operations are keyed by report id (except ``start_research``);
bookmarks are keyed by subject id. Each returns a typed response model.
Stage outcomes are translated at this boundary:
``fatal`` becomes ``StageFailedError`` (the report is already failed), and
guard rejections surface as ``PreconditionError`` before any work starts.

Example:
    >>> handler = ResearchHandler.from_settings(get_settings())
    >>> started = await handler.start_research("42")
    >>> confirmed = await handler.confirm_urls(started.report_id, started.urls[:3])
    >>> for i in range(confirmed.total_urls):
    ...     await handler.analyze_url(started.report_id, i)
    >>> final = await handler.finalize_report(started.report_id)
"""

from typing import Optional

from product_research.config.settings import Settings
from product_research.extractors.competitor_extractor import CompetitorExtractor
from product_research.extractors.copywriter import DEFAULT_TONE, ProductCopywriter
from product_research.models.schemas import (
    AnalyzeUrlResponse,
    BookmarkResponse,
    ConfirmUrlsResponse,
    FinalizeReportResponse,
    GenerateCopyResponse,
    Progress,
    Report,
    ReportResponse,
    ReportStatus,
    StartResearchResponse,
    StatusResponse,
)
from product_research.pipeline.guard import ResearchGuard
from product_research.pipeline.orchestrator import ResearchOrchestrator
from product_research.services.currency_service import CurrencyNormalizer, ExchangeRateClient
from product_research.services.llm_service import ClaudeExtractionService
from product_research.services.search_service import TavilyClient
from product_research.services.validation_service import ValidationError, ValidationService
from product_research.storage.bookmarks import BookmarkStore, JsonFileBookmarkStore, MemoryBookmarkStore
from product_research.storage.cache import FileCacheBackend, ResponseCache
from product_research.storage.catalog import JsonFileCatalog, SubjectCatalog
from product_research.storage.credits import CreditCounter
from product_research.storage.report_store import JsonFileReportStore, ReportStore
from product_research.utils.errors import (
    ErrorHandler,
    ExtractionFailedError,
    InvalidTransitionError,
    StageFailedError,
    SubjectNotFoundError,
)
from product_research.utils.logger import LogContext, get_logger

logger = get_logger(__name__)

SEARCH_STATUSES = frozenset({ReportStatus.PENDING, ReportStatus.SEARCHING, ReportStatus.PREVIEWING})


class ResearchHandler:
    """
    Entry points for starting, driving and inspecting research reports.

    Attributes:
        store: Report persistence
        catalog: Subject lookup
        guard: Concurrency, cooldown and budget gate
        orchestrator: Stage driver
        copywriter: Product copy generation for complete reports
        bookmarks: Per-subject bookmarked competitor URLs
    """

    def __init__(
        self,
        settings: Settings,
        store: ReportStore,
        catalog: SubjectCatalog,
        guard: ResearchGuard,
        orchestrator: ResearchOrchestrator,
        validator: Optional[ValidationService] = None,
        copywriter: Optional[ProductCopywriter] = None,
        bookmarks: Optional[BookmarkStore] = None,
    ):
        self.settings = settings
        self.store = store
        self.catalog = catalog
        self.guard = guard
        self.orchestrator = orchestrator
        self.validator = validator or ValidationService()
        # Shares the extraction service with the orchestrator, which closes it.
        self.copywriter = copywriter or ProductCopywriter(orchestrator.extractor.service)
        self.bookmarks = bookmarks or MemoryBookmarkStore()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResearchHandler":
        """Wire the file-backed stack rooted at ``settings.data_dir``."""
        backend = FileCacheBackend(settings.cache_file)
        cache = ResponseCache(backend, default_ttl=settings.cache_ttl_seconds)
        credits = CreditCounter(backend)
        store = JsonFileReportStore(settings.reports_dir)
        service = ClaudeExtractionService(settings)

        orchestrator = ResearchOrchestrator(
            settings=settings,
            store=store,
            cache=cache,
            search_client=TavilyClient(settings, credit_counter=credits),
            extractor=CompetitorExtractor(service),
            normalizer=CurrencyNormalizer(
                ExchangeRateClient(settings, cache),
                settings.store_currency,
            ),
        )
        return cls(
            settings=settings,
            store=store,
            catalog=JsonFileCatalog(settings.catalog_file),
            guard=ResearchGuard(settings, store, credits),
            orchestrator=orchestrator,
            copywriter=ProductCopywriter(service),
            bookmarks=JsonFileBookmarkStore(settings.bookmarks_file),
        )

    async def __aenter__(self) -> "ResearchHandler":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.orchestrator.close()

    # =========================================================================
    # Pipeline Entry Points
    # =========================================================================

    async def start_research(
        self,
        subject_id: str,
        force_refresh: bool = False,
    ) -> StartResearchResponse:
        """
        Start (or resume) research for a subject and run the search stage.

        Raises:
            PreconditionError: Unknown subject, cooldown or budget rejection
            StageFailedError: The search stage failed
        """
        subject_id = self.validator.validate_subject_id(subject_id)
        with LogContext(subject_id=subject_id):
            subject = await self.catalog.get(subject_id)
            if subject is None:
                raise SubjectNotFoundError(f"Subject not found: {subject_id}")

            admission = await self.guard.admit(subject_id, force_refresh=force_refresh)
            report = admission.report
            if admission.resuming and report.status_enum not in SEARCH_STATUSES:
                return StartResearchResponse(
                    report_id=report.id,
                    status=report.status,
                    resuming=True,
                )

            # Search is re-entrant: a previewing report returns its stored
            # results and an interrupted search runs again.
            outcome = await self.orchestrator.search(report.id, subject)
            if not outcome.is_ok:
                raise StageFailedError("search", outcome.cause or "Search failed", report.id)

            found = outcome.value
            return StartResearchResponse(
                report_id=report.id,
                status=ReportStatus.PREVIEWING,
                resuming=admission.resuming,
                search_results=found.results,
                urls=found.urls,
                query=found.query,
            )

    async def confirm_urls(self, report_id: str, selected_urls: list[str]) -> ConfirmUrlsResponse:
        """Run the extract stage for the operator's URL selection."""
        with LogContext(report_id=report_id):
            outcome = await self.orchestrator.extract(report_id, selected_urls)
            if not outcome.is_ok:
                raise StageFailedError("extract", outcome.cause or "Extraction failed", report_id)
            return ConfirmUrlsResponse(
                status=ReportStatus.ANALYZING,
                total_urls=outcome.value.total_urls,
                failed_urls=outcome.value.failed_urls,
            )

    async def analyze_url(self, report_id: str, url_index: int) -> AnalyzeUrlResponse:
        """
        Analyze one extracted page; a failed page is reported, not raised.

        ``retryable`` is set when the page was skipped for a transient reason
        and the same index may be requested again.
        """
        with LogContext(report_id=report_id):
            outcome = await self.orchestrator.analyze_one(report_id, url_index)
            if outcome.is_fatal:
                raise StageFailedError("analyze", outcome.cause or "Analysis failed", report_id)

            result = outcome.value
            return AnalyzeUrlResponse(
                profile=result.step.profile,
                error=outcome.cause if outcome.is_retryable else None,
                cached=result.step.cached,
                retryable=result.step.retryable,
                progress=Progress(current=result.url_index + 1, total=result.total),
            )

    async def finalize_report(self, report_id: str) -> FinalizeReportResponse:
        with LogContext(report_id=report_id):
            outcome = await self.orchestrator.finalize(report_id)
            if not outcome.is_ok:
                raise StageFailedError("finalize", outcome.cause or "Finalize failed", report_id)
            return FinalizeReportResponse(status=ReportStatus.COMPLETE, report=outcome.value)

    async def cancel_report(self, report_id: str) -> StatusResponse:
        with LogContext(report_id=report_id):
            report = await self.orchestrator.cancel(report_id)
            return StatusResponse(status=report.status, message=report.progress_message)

    async def get_status(self, report_id: str) -> StatusResponse:
        report = await self.store.get(report_id)
        return StatusResponse(status=report.status, message=report.progress_message)

    async def get_report(self, report_id: str) -> ReportResponse:
        report = await self.store.get(report_id)
        return ReportResponse(
            report_id=report.id,
            subject_id=report.subject_id,
            status=report.status,
            report=report.analysis_result,
            error_details=report.error_details,
            created=report.created_at,
        )

    # =========================================================================
    # Report Management
    # =========================================================================

    async def list_reports(self, subject_id: str, limit: int = 10) -> list[Report]:
        return await self.store.find_by_subject(subject_id, limit=limit)

    async def delete_report(self, report_id: str) -> bool:
        """
        Delete a finished report.

        Raises:
            InvalidTransitionError: If the report is still in progress
        """
        report = await self.store.get(report_id)
        if not report.is_terminal:
            raise InvalidTransitionError(
                "Cannot delete a report that is still in progress; cancel it first",
                {"status": report.status_enum.value},
            )
        return await self.store.delete(report_id)

    async def prune_reports(self, days: Optional[int] = None) -> int:
        return await self.store.delete_older_than(days or self.settings.report_retention_days)

    # =========================================================================
    # Product Copy
    # =========================================================================

    async def generate_copy(self, report_id: str, tone: str = DEFAULT_TONE) -> GenerateCopyResponse:
        """
        Write listing copy for a report's subject from its finalized analysis.

        Raises:
            ValidationError: Unknown tone
            InvalidTransitionError: The report is not complete
            SubjectNotFoundError: The subject is no longer in the catalog
            ExtractionFailedError: The copy could not be generated
        """
        tone = self.copywriter.validate_tone(tone)
        with LogContext(report_id=report_id):
            report = await self.store.get(report_id)
            if report.status_enum != ReportStatus.COMPLETE or report.analysis_result is None:
                raise InvalidTransitionError(
                    f"Report is '{report.status_enum.value}'; copy needs a complete report",
                    {"current": report.status_enum.value},
                )

            subject = await self.catalog.get(report.subject_id)
            if subject is None:
                raise SubjectNotFoundError(f"Subject not found: {report.subject_id}")

            try:
                product_copy = await self.copywriter.write_copy(subject, report.analysis_result, tone)
            except ExtractionFailedError as e:
                logger.warning("Copy generation failed", tone=tone, error=ErrorHandler.describe(e))
                raise

            logger.info("Product copy generated", tone=tone, keywords=len(product_copy.seo_keywords))
            return GenerateCopyResponse(report_id=report.id, tone=tone, product_copy=product_copy)

    # =========================================================================
    # Bookmarks
    # =========================================================================

    async def _bookmark_subject(self, subject_id: str) -> str:
        subject_id = self.validator.validate_subject_id(subject_id)
        if await self.catalog.get(subject_id) is None:
            raise SubjectNotFoundError(f"Subject not found: {subject_id}")
        return subject_id

    def _bookmark_url(self, url: str) -> str:
        normalized = self.validator.normalize_url(url)
        if normalized is None:
            raise ValidationError(code="INVALID_URL", message="Invalid URL", details={"url": url})
        return normalized

    async def add_bookmark(self, subject_id: str, url: str) -> BookmarkResponse:
        subject_id = await self._bookmark_subject(subject_id)
        url = self._bookmark_url(url)
        urls = await self.bookmarks.add(subject_id, url)
        return BookmarkResponse(subject_id=subject_id, url=url, bookmarked=True, bookmarks=urls)

    async def remove_bookmark(self, subject_id: str, url: str) -> BookmarkResponse:
        subject_id = await self._bookmark_subject(subject_id)
        url = self._bookmark_url(url)
        urls = await self.bookmarks.remove(subject_id, url)
        return BookmarkResponse(subject_id=subject_id, url=url, bookmarked=False, bookmarks=urls)

    async def list_bookmarks(self, subject_id: str) -> list[str]:
        subject_id = await self._bookmark_subject(subject_id)
        return await self.bookmarks.for_subject(subject_id)
