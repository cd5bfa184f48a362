import pytest
from unittest.mock import AsyncMock, MagicMock

from product_research.extractors.competitor_extractor import CompetitorExtractor, host_of, url_match_key
from product_research.models.schemas import ExtractedProfile
from product_research.services.llm_service import ClaudeServiceError


def make_service(**profile):
    data = {"name": "Mouse", "current_price": 19.99, "currency": "usd", "url": "https://shop.com/p/1"}
    data.update(profile)
    service = MagicMock()
    service.extract = AsyncMock(return_value=ExtractedProfile(**data))
    service.close = AsyncMock()
    return service


def test_host_of_strips_www():
    assert host_of("https://WWW.Shop.com/p") == "shop.com"
    assert host_of("https://eu.shop.com/p") == "eu.shop.com"
    assert host_of("not a url") == ""


def test_url_match_key_ignores_canonical_differences():
    key = url_match_key("https://www.Shop.com/p/1")
    assert url_match_key("https://shop.com/p/1/") == key
    assert url_match_key("http://shop.com/p/1#reviews") == key
    assert url_match_key("https://shop.com/p/1?color=red") != key
    assert url_match_key("https://eu.shop.com/p/1") != key


@pytest.mark.asyncio
async def test_matching_domain_keeps_returned_url():
    service = make_service(url="https://www.shop.com/p/1?ref=canonical")
    extractor = CompetitorExtractor(service)

    profile = await extractor.extract_profile("Price $19.99", "https://shop.com/p/1")

    assert profile.url == "https://www.shop.com/p/1?ref=canonical"
    assert profile.source_url == "https://shop.com/p/1"
    assert profile.currency == "USD"


@pytest.mark.asyncio
async def test_domain_mismatch_uses_source_url():
    service = make_service(url="https://marketplace.com/other-product")
    extractor = CompetitorExtractor(service)

    profile = await extractor.extract_profile("Price $19.99", "https://shop.com/p/1")

    assert profile.url == "https://shop.com/p/1"
    assert profile.name == "Mouse"


@pytest.mark.asyncio
async def test_prompt_names_source_url_and_schema():
    service = make_service()
    extractor = CompetitorExtractor(service)

    await extractor.extract_profile("content", "https://shop.com/p/1")

    content, schema, instructions = service.extract.await_args.args
    assert content == "content"
    assert schema is ExtractedProfile
    assert "Source URL: https://shop.com/p/1" in instructions


@pytest.mark.asyncio
async def test_service_failure_propagates():
    service = MagicMock()
    service.extract = AsyncMock(side_effect=ClaudeServiceError("schema retries exhausted"))
    extractor = CompetitorExtractor(service)

    with pytest.raises(ClaudeServiceError):
        await extractor.extract_profile("content", "https://shop.com/p/1")
