"""
Services package for the competitor research pipeline.

Services:
    - ResilientHttpClient: Outbound JSON calls with retry and credit tracking
    - TavilyClient: Web search and batched page extraction
    - ClaudeExtractionService: Schema-validated structured extraction
    - ExchangeRateClient / CurrencyNormalizer: Price conversion
    - ContentSanitizer: Markup stripping and token budgeting
    - ValidationService: Input validation
"""

from product_research.services.http_client import ResilientHttpClient, parse_error_detail
from product_research.services.search_service import (
    TavilyClient,
    SearchResultItem,
    SearchResponse,
    ExtractResultItem,
    FailedResultItem,
    ExtractResponse,
)
from product_research.services.llm_service import (
    ClaudeExtractionService,
    ClaudeServiceError,
    ClaudeUnavailableError,
    SchemaValidationError,
    StructuredExtractionService,
    TokenUsage,
)
from product_research.services.currency_service import CurrencyNormalizer, ExchangeRateClient
from product_research.services.content_sanitizer import ContentSanitizer
from product_research.services.validation_service import ValidationError, ValidationService

__all__ = [
    # HTTP
    "ResilientHttpClient",
    "parse_error_detail",
    # Search / Extract
    "TavilyClient",
    "SearchResultItem",
    "SearchResponse",
    "ExtractResultItem",
    "FailedResultItem",
    "ExtractResponse",
    # LLM Service
    "StructuredExtractionService",
    "ClaudeExtractionService",
    "ClaudeServiceError",
    "ClaudeUnavailableError",
    "SchemaValidationError",
    "TokenUsage",
    # Currency
    "ExchangeRateClient",
    "CurrencyNormalizer",
    # Content
    "ContentSanitizer",
    # Validation
    "ValidationError",
    "ValidationService",
]
