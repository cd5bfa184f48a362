import json
import httpx
import pytest

from product_research.services.http_client import ResilientHttpClient
from product_research.services.search_service import SearchResponse, TavilyClient
from product_research.utils.errors import ConfigurationError
from product_research.utils.retry import RetryPolicy


async def no_sleep(seconds):
    return None


def make_client(settings, payload, status=200):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status, json=payload)

    http = ResilientHttpClient(
        RetryPolicy(max_attempts=1),
        sleep=no_sleep,
        transport=httpx.MockTransport(handler),
        service_name="Tavily",
    )
    return TavilyClient(settings, http=http), requests


@pytest.mark.asyncio
async def test_search_request_shape(settings):
    client, requests = make_client(settings, {
        "query": "q",
        "results": [
            {"url": "https://a.com/p", "title": "A", "content": "snippet", "score": 0.9},
            {"title": "missing url"},
        ],
        "images": ["https://a.com/img.jpg"],
        "usage": {"credits": 1},
    })

    async with client:
        response = await client.search('"Wireless Mouse X200" price buy')

    request = requests[0]
    body = json.loads(request.content)
    assert request.url.path == "/search"
    assert request.headers["Authorization"] == "Bearer tvly-test-key"
    assert body["query"] == '"Wireless Mouse X200" price buy'
    assert body["search_depth"] == "basic"
    assert body["max_results"] == 10
    assert body["include_raw_content"] is False
    assert "pinterest.com" in body["exclude_domains"]

    assert isinstance(response, SearchResponse)
    assert response.urls == ["https://a.com/p"]
    assert response.credits == 1


@pytest.mark.asyncio
async def test_search_without_excluded_domains(settings):
    client, requests = make_client(settings, {"results": []})

    await client.search("q", exclude_domains=[], max_results=3)

    body = json.loads(requests[0].content)
    assert "exclude_domains" not in body
    assert body["max_results"] == 3
    await client.close()


@pytest.mark.asyncio
async def test_extract_is_one_batched_call(settings):
    client, requests = make_client(settings, {
        "results": [{"url": "https://a.com/p", "raw_content": "Price $10", "images": []}],
        "failed_results": [{"url": "https://b.com/p", "error": "timeout"}],
    })

    response = await client.extract(["https://a.com/p", "https://b.com/p"])

    assert len(requests) == 1
    body = json.loads(requests[0].content)
    assert requests[0].url.path == "/extract"
    assert body == {"urls": ["https://a.com/p", "https://b.com/p"], "extract_depth": "advanced"}
    assert response.results[0].raw_content == "Price $10"
    assert response.failed_results[0].url == "https://b.com/p"
    await client.close()


@pytest.mark.asyncio
async def test_missing_api_key_raises_configuration_error(settings):
    unconfigured = settings.model_copy(update={"tavily_api_key": None})
    client, requests = make_client(unconfigured, {})

    with pytest.raises(ConfigurationError, match="API key not configured"):
        await client.search("q")
    assert requests == []
