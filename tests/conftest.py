import re
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from product_research.config.settings import Settings
from product_research.extractors.competitor_extractor import CompetitorExtractor
from product_research.handlers.research_handler import ResearchHandler
from product_research.models.schemas import CompetitorProfile, CopywriterOutput, Subject
from product_research.pipeline.guard import ResearchGuard
from product_research.pipeline.orchestrator import ResearchOrchestrator
from product_research.services.currency_service import CurrencyNormalizer, ExchangeRateClient
from product_research.services.llm_service import StructuredExtractionService
from product_research.services.search_service import (
    ExtractResponse,
    ExtractResultItem,
    FailedResultItem,
    SearchResponse,
    SearchResultItem,
)
from product_research.storage.cache import MemoryCacheBackend, ResponseCache
from product_research.storage.catalog import InMemoryCatalog
from product_research.storage.credits import CreditCounter
from product_research.storage.report_store import InMemoryReportStore


COMPETITOR_URLS = [
    "https://www.shop-one.com/mouse-x200",
    "https://store-two.de/produkt/x200",
    "https://broken-three.com/x200",
    "https://four.example.com/x200",
    "https://five.example.com/x200",
]


@pytest.fixture
def settings(tmp_path):
    """Real settings pointed at a temporary data directory."""
    return Settings(
        _env_file=None,
        DATA_DIR=str(tmp_path / "data"),
        TAVILY_API_KEY="tvly-test-key",
        ANTHROPIC_API_KEY="sk-ant-test-key",
        APP_ENV="test",
        STORE_CURRENCY="USD",
        RETRY_BASE_DELAY_SECONDS=0,
        COOLDOWN_MINUTES=5,
        DAILY_CREDIT_BUDGET=0,
    )


@pytest.fixture
def sample_subject():
    return Subject(
        id="42",
        title="Wireless Mouse X200",
        category="Computer Accessories",
        brand="Acme",
    )


@pytest.fixture
def make_profile():
    """Factory for competitor profiles with sensible defaults."""
    def _make(**overrides):
        data = {
            "name": "Wireless Mouse X200",
            "current_price": 199.99,
            "currency": "USD",
            "url": COMPETITOR_URLS[0],
            "source_url": COMPETITOR_URLS[0],
            "availability": "In stock",
            "features": ["Bluetooth 5.0", "Rechargeable battery"],
        }
        data.update(overrides)
        return CompetitorProfile(**data)
    return _make


@pytest.fixture
def sample_profiles(make_profile):
    return [
        make_profile(),
        make_profile(
            name="X200 Mouse (EU)",
            current_price=184.00,
            original_price=202.40,
            currency="EUR",
            url=COMPETITOR_URLS[1],
            source_url=COMPETITOR_URLS[1],
            features=["bluetooth 5.0", "Ergonomic grip"],
        ),
    ]


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock()


# =============================================================================
# Fakes for the external services
# =============================================================================

class FakeSearchClient:
    """Stands in for TavilyClient; counts calls per endpoint."""

    def __init__(self, urls=None, extract_results=None, failed=None):
        self.urls = list(COMPETITOR_URLS if urls is None else urls)
        self.extract_results = extract_results
        self.failed = failed if failed is not None else [COMPETITOR_URLS[2]]
        self.search_calls = 0
        self.extract_calls = 0
        self.search_error = None
        self.extract_error = None
        self.closed = False

    async def search(self, query, **kwargs):
        self.search_calls += 1
        if self.search_error:
            raise self.search_error
        return SearchResponse(
            query=query,
            results=[
                SearchResultItem(url=u, title=f"Result {i + 1}", content="X200 mouse", score=1 - i / 10)
                for i, u in enumerate(self.urls)
            ],
            credits=1,
        )

    async def extract(self, urls, **kwargs):
        self.extract_calls += 1
        if self.extract_error:
            raise self.extract_error
        if self.extract_results is not None:
            results = self.extract_results
        else:
            results = [
                ExtractResultItem(
                    url=u,
                    raw_content=f"<h1>Wireless Mouse X200</h1>\nPrice: see page for {u}\nIn stock",
                )
                for u in urls if u not in self.failed
            ]
        return ExtractResponse(
            results=results,
            failed_results=[FailedResultItem(url=u, error="blocked") for u in urls if u in self.failed],
        )

    async def close(self):
        self.closed = True


DEFAULT_PRODUCT_COPY = {
    "title": "Wireless Mouse X200 - Bluetooth 5.0, Rechargeable",
    "short_description": "A rechargeable Bluetooth mouse priced below the competition.",
    "full_description": "<p>Meet the X200.</p><ul><li>Bluetooth 5.0</li></ul>",
    "seo_keywords": ["wireless mouse", "bluetooth mouse", "rechargeable mouse"],
    "competitive_advantages": ["Lower price than both analyzed competitors"],
}


class FakeExtractionService(StructuredExtractionService):
    """Returns canned profiles keyed by the source URL named in the prompt."""

    def __init__(self, profiles=None, errors=None, product_copy=None):
        self.profiles = profiles or {}
        self.errors = errors or {}
        self.product_copy = product_copy or DEFAULT_PRODUCT_COPY
        self.calls = []
        self.copy_requests = []

    async def extract(self, content, schema, instructions=""):
        if schema is CopywriterOutput:
            self.copy_requests.append({"content": content, "instructions": instructions})
            return schema.model_validate(self.product_copy)
        match = re.search(r"Source URL: (\S+)", instructions)
        url = match.group(1) if match else ""
        self.calls.append(url)
        if url in self.errors:
            raise self.errors[url]
        return schema.model_validate(self.profiles[url])


def default_extracted_profiles():
    return {
        COMPETITOR_URLS[0]: {
            "name": "Wireless Mouse X200",
            "current_price": 199.99,
            "currency": "USD",
            "url": COMPETITOR_URLS[0],
            "availability": "In stock",
            "features": ["Bluetooth 5.0", "Rechargeable battery"],
        },
        COMPETITOR_URLS[1]: {
            "name": "X200 Maus",
            "current_price": 184.00,
            "currency": "EUR",
            "url": COMPETITOR_URLS[1],
            "availability": "Auf Lager",
            "features": ["Bluetooth 5.0", "Ergonomic grip"],
        },
    }


def make_rates_http(rates=None):
    """Fake resilient HTTP client answering exchange-rate lookups."""
    http = MagicMock()
    http.request_json = AsyncMock(return_value={"base": "USD", "rates": rates or {"EUR": 0.92}})
    http.disconnect = AsyncMock()
    return http


@pytest.fixture
def fake_search():
    return FakeSearchClient()


@pytest.fixture
def fake_service():
    return FakeExtractionService(profiles=default_extracted_profiles())


@pytest.fixture
def rates_http():
    return make_rates_http()


@pytest.fixture
def memory_cache():
    return ResponseCache(MemoryCacheBackend())


@pytest.fixture
def build_handler(settings, sample_subject, fake_search, fake_service, rates_http, memory_cache):
    """Factory for a handler wired to in-memory storage and fake services."""
    def _build(clock=None, **overrides):
        store = overrides.get("store") or InMemoryReportStore(clock=clock)
        cache = overrides.get("cache") or memory_cache
        credits = overrides.get("credits") or CreditCounter(cache.backend)
        rates = ExchangeRateClient(settings, cache, http=overrides.get("rates_http") or rates_http)
        orchestrator = ResearchOrchestrator(
            settings=overrides.get("settings") or settings,
            store=store,
            cache=cache,
            search_client=overrides.get("search") or fake_search,
            extractor=CompetitorExtractor(overrides.get("service") or fake_service),
            normalizer=CurrencyNormalizer(rates, settings.store_currency),
            clock=clock,
        )
        return ResearchHandler(
            settings=overrides.get("settings") or settings,
            store=store,
            catalog=InMemoryCatalog([sample_subject]),
            guard=ResearchGuard(overrides.get("settings") or settings, store, credits, clock=clock),
            orchestrator=orchestrator,
            bookmarks=overrides.get("bookmarks"),
        )
    return _build
