import json
import pytest
import httpx
from anthropic import APIConnectionError
from unittest.mock import AsyncMock, MagicMock

from product_research.models.schemas import ExtractedProfile
from product_research.services.llm_service import (
    ClaudeExtractionService,
    ClaudeServiceError,
    ClaudeUnavailableError,
    SchemaValidationError,
    StructuredExtractionService,
)
from product_research.utils.errors import ErrorHandler

VALID = {
    "name": "Wireless Mouse X200",
    "current_price": 19.99,
    "currency": "usd",
    "url": "https://shop.com/x200",
}


@pytest.fixture
def service(settings):
    return ClaudeExtractionService(settings)


@pytest.mark.asyncio
async def test_extract_valid_response(service):
    service._call_api = AsyncMock(return_value=json.dumps(VALID))

    profile = await service.extract("page text", ExtractedProfile, "Source URL: https://shop.com/x200")

    assert profile.name == "Wireless Mouse X200"
    assert profile.currency == "USD"
    assert service._call_api.await_count == 1
    prompt = service._call_api.await_args.kwargs["messages"][0]["content"]
    assert "Source URL: https://shop.com/x200" in prompt
    assert "## Content:\npage text" in prompt


@pytest.mark.asyncio
async def test_invalid_output_is_corrected(service):
    service._call_api = AsyncMock(side_effect=[
        "not json at all",
        f"```json\n{json.dumps(VALID)}\n```",
    ])

    profile = await service.extract("page text", ExtractedProfile)

    assert profile.current_price == 19.99
    assert service._call_api.await_count == 2
    correction = service._call_api.await_args.kwargs["messages"][0]["content"]
    assert "JSON parse error" in correction


@pytest.mark.asyncio
async def test_schema_violation_exhausts_retries(service):
    bad = dict(VALID, current_price=0)
    service._call_api = AsyncMock(return_value=json.dumps(bad))

    with pytest.raises(SchemaValidationError) as exc_info:
        await service.extract("page text", ExtractedProfile)

    # one extraction call plus (max_retries - 1) corrections
    assert service._call_api.await_count == service.max_schema_retries
    assert "current_price" in exc_info.value.errors[0]


@pytest.mark.asyncio
async def test_missing_key_raises_service_error(settings):
    service = ClaudeExtractionService(settings.model_copy(update={"anthropic_api_key": None}))

    assert service.client is None
    with pytest.raises(ClaudeServiceError, match="API key not configured"):
        await service.extract("page text", ExtractedProfile)


def test_extract_json_variants(service):
    assert service._extract_json('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert service._extract_json('Here you go: {"a": {"b": 2}} thanks') == '{"a": {"b": 2}}'
    assert service._extract_json("  plain  ") == "plain"


def test_backoff_is_capped(service):
    assert 1.0 <= service._calculate_backoff(0) <= 1.1
    assert service._calculate_backoff(10) == 60


@pytest.mark.asyncio
async def test_exhausted_api_retries_are_transient(service):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    service.client = MagicMock()
    service.client.messages.create = AsyncMock(side_effect=APIConnectionError(request=request))
    service._calculate_backoff = lambda attempt, base=1: 0

    with pytest.raises(ClaudeUnavailableError) as exc_info:
        await service.extract("page text", ExtractedProfile)

    assert service.client.messages.create.await_count == service.max_api_retries
    assert ErrorHandler.is_retryable(exc_info.value)
    assert "APIConnectionError" in exc_info.value.message


def test_extraction_service_interface_is_abstract():
    with pytest.raises(TypeError):
        StructuredExtractionService()
