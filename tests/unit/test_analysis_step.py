import pytest
from unittest.mock import AsyncMock

from product_research.models.schemas import ExtractedPage
from product_research.pipeline.analysis import PartialAnalysis, analyze_step
from product_research.services.llm_service import ClaudeUnavailableError
from product_research.utils.errors import ExtractionFailedError

URLS = ["https://a.com/p", "https://b.com/p"]


@pytest.fixture
def state():
    return PartialAnalysis(pages=tuple(ExtractedPage(url=u, content="x" * 50) for u in URLS))


@pytest.mark.asyncio
async def test_step_records_profile(state, make_profile):
    profile = make_profile(url=URLS[0], source_url=URLS[0])
    extract = AsyncMock(return_value=profile)

    new_state, result = await analyze_step(state, 0, extract, max_chars=10)

    extract.assert_awaited_once_with("x" * 10, URLS[0])
    assert result.profile is profile and not result.cached and not result.skipped
    assert new_state.profiles == (profile,)
    assert state.profiles == ()


@pytest.mark.asyncio
async def test_step_reuses_existing_profile(state, make_profile):
    profile = make_profile(url=URLS[0], source_url=URLS[0])
    state = state.with_profile(profile)
    extract = AsyncMock()

    new_state, result = await analyze_step(state, 0, extract, max_chars=100)

    extract.assert_not_awaited()
    assert result.cached
    assert new_state is state


@pytest.mark.asyncio
async def test_step_failure_is_a_skip(state):
    extract = AsyncMock(side_effect=ExtractionFailedError("schema retries exhausted"))

    new_state, result = await analyze_step(state, 1, extract, max_chars=100)

    assert result.skipped
    assert result.error == "schema retries exhausted"
    assert new_state.failed_urls == (URLS[1],)


@pytest.mark.asyncio
async def test_unexpected_error_is_described(state):
    extract = AsyncMock(side_effect=KeyError("price"))

    _, result = await analyze_step(state, 0, extract, max_chars=100)

    assert result.error == "KeyError: 'price'"


def test_late_success_clears_failure(state, make_profile):
    failed = state.with_failure(URLS[0]).with_failure(URLS[0])
    assert failed.failed_urls == (URLS[0],)

    recovered = failed.with_profile(make_profile(url=URLS[0], source_url=URLS[0]))
    assert recovered.failed_urls == ()
    assert recovered.with_profile(make_profile(source_url=URLS[0])) is recovered


@pytest.mark.asyncio
async def test_transient_failure_is_flagged_retryable(state):
    extract = AsyncMock(side_effect=ClaudeUnavailableError("AI provider failed after 3 attempts: RateLimitError"))

    _, result = await analyze_step(state, 0, extract, max_chars=100)

    assert result.skipped and result.retryable


@pytest.mark.asyncio
async def test_validation_failure_is_not_retryable(state):
    extract = AsyncMock(side_effect=ExtractionFailedError("schema retries exhausted"))

    _, result = await analyze_step(state, 0, extract, max_chars=100)

    assert result.skipped and not result.retryable
