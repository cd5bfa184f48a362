"""
Entry gate for new research runs.

Checks, in order:

    1. In-progress: a live report for the subject is returned instead of
       starting a duplicate pipeline
    2. Cooldown: too soon after the subject's last completed run
       (skipped when ``force_refresh`` is set)
    3. Daily budget: today's third-party credits already at the ceiling

The final create goes through ``ReportStore.create_if_absent`` so two
simultaneous admissions for one subject still yield a single report.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from product_research.config.settings import Settings
from product_research.models.schemas import Report
from product_research.storage.credits import CreditCounter
from product_research.storage.report_store import ReportStore
from product_research.utils.errors import BudgetExceededError, CooldownActiveError
from product_research.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Admission:
    report: Report
    created: bool

    @property
    def resuming(self) -> bool:
        return not self.created


class ResearchGuard:
    """Concurrency, cooldown and budget checks."""

    def __init__(
        self,
        settings: Settings,
        store: ReportStore,
        credits: CreditCounter,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.store = store
        self.credits = credits
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def check_cooldown(self, subject_id: str) -> None:
        """
        Raises:
            CooldownActiveError: If the last completed run is too recent
        """
        minutes = self.settings.cooldown_minutes
        if minutes <= 0:
            return
        latest = await self.store.find_latest_complete(subject_id)
        if latest is None or latest.completed_at is None:
            return

        elapsed = self._clock() - latest.completed_at
        window = timedelta(minutes=minutes)
        if elapsed < window:
            remaining = int((window - elapsed).total_seconds())
            logger.info("Cooldown active", subject_id=subject_id, remaining_seconds=remaining)
            raise CooldownActiveError(remaining)

    async def check_budget(self) -> None:
        """
        Raises:
            BudgetExceededError: If today's credits reached the ceiling
        """
        budget = self.settings.daily_credit_budget
        if budget <= 0:
            return
        used = await self.credits.used_today()
        if used >= budget:
            logger.warning("Daily credit budget reached", used=used, budget=budget)
            raise BudgetExceededError(used, budget)

    async def admit(self, subject_id: str, force_refresh: bool = False) -> Admission:
        """Return the subject's live report or create a new one after the checks pass."""
        existing = await self.store.find_in_progress(subject_id)
        if existing is not None:
            logger.info("Resuming in-progress report", subject_id=subject_id, report_id=existing.id)
            return Admission(report=existing, created=False)

        if not force_refresh:
            await self.check_cooldown(subject_id)
        await self.check_budget()

        report, created = await self.store.create_if_absent(subject_id)
        return Admission(report=report, created=created)
