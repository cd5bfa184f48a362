"""
Search and page-extraction API client.

Talks to the Tavily ``/search`` and ``/extract`` endpoints through the
resilient HTTP client. Search is a single query; extraction is one batched
call for every selected URL so third-party call volume stays bounded.

Features:
    - Typed request/response models
    - Bearer authentication from settings (never logged)
    - Call-specific timeouts (extraction is much slower than search)
    - Credit tracking through the shared HTTP client

Example:
    >>> async with TavilyClient(settings) as client:
    ...     found = await client.search('"Wireless Mouse X200" Accessories price buy')
    ...     pages = await client.extract([r.url for r in found.results[:3]])
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from product_research.config.settings import Settings
from product_research.services.http_client import ResilientHttpClient
from product_research.storage.credits import CreditCounter
from product_research.utils.errors import ConfigurationError
from product_research.utils.logger import get_logger
from product_research.utils.retry import RetryPolicy

logger = get_logger(__name__)


# =============================================================================
# Response Models
# =============================================================================

class SearchResultItem(BaseModel):
    """Individual search result."""
    url: str
    title: Optional[str] = None
    content: Optional[str] = None
    score: Optional[float] = None


class SearchResponse(BaseModel):
    """Decoded ``/search`` response."""
    query: str = ""
    results: list[SearchResultItem] = Field(default_factory=list)
    images: list[Any] = Field(default_factory=list)
    credits: float = 0

    @property
    def urls(self) -> list[str]:
        return [r.url for r in self.results if r.url]


class ExtractResultItem(BaseModel):
    url: str
    raw_content: Optional[str] = None
    images: list[Any] = Field(default_factory=list)


class FailedResultItem(BaseModel):
    url: str
    error: Optional[Any] = None


class ExtractResponse(BaseModel):
    """Decoded ``/extract`` response."""
    results: list[ExtractResultItem] = Field(default_factory=list)
    failed_results: list[FailedResultItem] = Field(default_factory=list)
    credits: float = 0


def _credits(data: dict[str, Any]) -> float:
    usage = data.get("usage")
    if isinstance(usage, dict) and isinstance(usage.get("credits"), (int, float)):
        return float(usage["credits"])
    return 0.0


# =============================================================================
# Client
# =============================================================================

class TavilyClient:
    """
    Search and extraction API client.

    Attributes:
        settings: Application settings
        http: Resilient HTTP client shared by both endpoints
    """

    SEARCH_PATH = "/search"
    EXTRACT_PATH = "/extract"

    def __init__(
        self,
        settings: Settings,
        http: Optional[ResilientHttpClient] = None,
        credit_counter: Optional[CreditCounter] = None,
    ):
        self.settings = settings
        self.http = http or ResilientHttpClient(
            RetryPolicy.from_settings(settings),
            credit_counter=credit_counter,
            service_name="Tavily",
        )

    async def __aenter__(self) -> "TavilyClient":
        await self.http.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http.disconnect()

    @property
    def is_configured(self) -> bool:
        key = self.settings.tavily_api_key
        return bool(key and key.get_secret_value())

    def _headers(self) -> dict[str, str]:
        if not self.is_configured:
            raise ConfigurationError("API key not configured")
        return {"Authorization": f"Bearer {self.settings.tavily_api_key.get_secret_value()}"}

    def _url(self, path: str) -> str:
        return self.settings.tavily_base_url.rstrip("/") + path

    async def search(
        self,
        query: str,
        max_results: Optional[int] = None,
        search_depth: Optional[str] = None,
        include_images: Optional[bool] = None,
        exclude_domains: Optional[list[str]] = None,
    ) -> SearchResponse:
        """
        Run a web search.

        Args:
            query: Search query string
            max_results: Result cap (defaults to settings)
            search_depth: ``basic`` or ``advanced`` (defaults to settings)
            include_images: Whether to request images (defaults to settings)
            exclude_domains: Domains to leave out (defaults to settings)

        Returns:
            Decoded search response
        """
        headers = self._headers()
        body: dict[str, Any] = {
            "query": query,
            "search_depth": search_depth or self.settings.search_depth,
            "max_results": max_results or self.settings.max_search_results,
            "include_images": (
                self.settings.include_images if include_images is None else include_images
            ),
            "include_raw_content": False,
            "include_answer": False,
        }
        domains = self.settings.exclude_domains if exclude_domains is None else exclude_domains
        if domains:
            body["exclude_domains"] = list(domains)

        logger.info("Running search", depth=body["search_depth"], max_results=body["max_results"])
        data = await self.http.request_json(
            "POST",
            self._url(self.SEARCH_PATH),
            json=body,
            headers=headers,
            timeout=self.settings.search_timeout_seconds,
        )

        response = SearchResponse(
            query=data.get("query") or query,
            results=[
                SearchResultItem.model_validate(item)
                for item in data.get("results") or []
                if isinstance(item, dict) and item.get("url")
            ],
            images=data.get("images") or [],
            credits=_credits(data),
        )
        logger.info("Search complete", results=len(response.results))
        return response

    async def extract(
        self,
        urls: list[str],
        extract_depth: Optional[str] = None,
    ) -> ExtractResponse:
        """
        Extract page content for several URLs in one call.

        Args:
            urls: Pages to extract
            extract_depth: ``basic`` or ``advanced`` (defaults to settings)

        Returns:
            Decoded extract response with per-URL successes and failures
        """
        headers = self._headers()
        body = {
            "urls": list(urls),
            "extract_depth": extract_depth or self.settings.extract_depth,
        }

        logger.info("Extracting pages", urls=len(urls), depth=body["extract_depth"])
        data = await self.http.request_json(
            "POST",
            self._url(self.EXTRACT_PATH),
            json=body,
            headers=headers,
            timeout=self.settings.extract_timeout_seconds,
        )

        response = ExtractResponse(
            results=[
                ExtractResultItem.model_validate(item)
                for item in data.get("results") or []
                if isinstance(item, dict) and item.get("url")
            ],
            failed_results=[
                FailedResultItem.model_validate(item)
                for item in data.get("failed_results") or []
                if isinstance(item, dict) and item.get("url")
            ],
            credits=_credits(data),
        )
        logger.info(
            "Extraction complete",
            succeeded=len(response.results),
            failed=len(response.failed_results),
        )
        return response
