import pytest

from product_research.models.schemas import ReportStatus
from product_research.pipeline.guard import ResearchGuard
from product_research.storage.cache import MemoryCacheBackend
from product_research.storage.credits import CreditCounter
from product_research.storage.report_store import InMemoryReportStore
from product_research.utils.errors import BudgetExceededError, CooldownActiveError


@pytest.fixture
def store(clock):
    return InMemoryReportStore(clock=clock)


@pytest.fixture
def credits(clock):
    return CreditCounter(MemoryCacheBackend(), clock=clock)


async def complete(store, report_id, when):
    await store.update(report_id, status=ReportStatus.COMPLETE, completed_at=when)


@pytest.mark.asyncio
async def test_first_admission_creates_report(settings, store, credits, clock):
    guard = ResearchGuard(settings, store, credits, clock=clock)

    admission = await guard.admit("42")

    assert admission.created and not admission.resuming
    assert admission.report.subject_id == "42"


@pytest.mark.asyncio
async def test_in_progress_report_is_resumed(settings, store, credits, clock):
    guard = ResearchGuard(settings, store, credits, clock=clock)
    first = await guard.admit("42")

    second = await guard.admit("42", force_refresh=True)

    assert second.resuming
    assert second.report.id == first.report.id


@pytest.mark.asyncio
async def test_cooldown_after_completion(settings, store, credits, clock):
    guard = ResearchGuard(settings, store, credits, clock=clock)
    first = await guard.admit("42")
    await complete(store, first.report.id, clock.now)
    clock.advance(minutes=3, seconds=30)

    with pytest.raises(CooldownActiveError) as exc_info:
        await guard.admit("42")

    assert exc_info.value.remaining_seconds == 90
    assert "Please wait 2 minute(s)" in exc_info.value.message
    assert exc_info.value.code == "cooldown_active"


@pytest.mark.asyncio
async def test_cooldown_expires_and_force_bypasses(settings, store, credits, clock):
    guard = ResearchGuard(settings, store, credits, clock=clock)
    first = await guard.admit("42")
    await complete(store, first.report.id, clock.now)

    forced = await guard.admit("42", force_refresh=True)
    assert forced.created
    await complete(store, forced.report.id, clock.now)

    clock.advance(minutes=5)
    later = await guard.admit("42")
    assert later.created


@pytest.mark.asyncio
async def test_cooldown_disabled(settings, store, credits, clock):
    settings = settings.model_copy(update={"cooldown_minutes": 0})
    guard = ResearchGuard(settings, store, credits, clock=clock)
    first = await guard.admit("42")
    await complete(store, first.report.id, clock.now)

    assert (await guard.admit("42")).created


@pytest.mark.asyncio
async def test_budget_ceiling(settings, store, credits, clock):
    settings = settings.model_copy(update={"daily_credit_budget": 10})
    guard = ResearchGuard(settings, store, credits, clock=clock)
    await credits.add(10)

    with pytest.raises(BudgetExceededError, match=r"\(10/10 credits used\)"):
        await guard.admit("42", force_refresh=True)
    assert await store.find_in_progress("42") is None

    clock.advance(days=1)
    assert (await guard.admit("42")).created


@pytest.mark.asyncio
async def test_zero_budget_means_unlimited(settings, store, credits, clock):
    guard = ResearchGuard(settings, store, credits, clock=clock)
    await credits.add(10_000)

    assert (await guard.admit("42")).created
