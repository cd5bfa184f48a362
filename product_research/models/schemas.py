"""
Pydantic models and schemas for the competitor research pipeline.

This module defines all data structures used throughout the pipeline,
ensuring type safety, validation, and serialization consistency.

Models:
    - Subject: Catalog item under research
    - Report: The pipeline's persisted unit of work
    - SearchHit / ExtractedPage: Stage outputs stored on the report
    - ExtractedProfile: Schema handed to the structured extraction service
    - CompetitorProfile: Extracted profile plus currency normalization fields
    - ReportSummary / CompetitorReport: Finalized analysis result
    - CopywriterOutput: Listing copy generated from a finalized report
    - Entry point responses returned to the client driver
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, TypeVar
from urllib.parse import urlparse
from uuid import uuid4

from pydantic import (
    BaseModel as PydanticBaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


ModelT = TypeVar("ModelT", bound="BaseModel")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Base Configuration
# =============================================================================

class BaseModel(PydanticBaseModel):
    """Base model with common configuration for all schemas."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=False,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_json(self, **kwargs) -> str:
        """Serialize model to JSON string."""
        return self.model_dump_json(indent=2, **kwargs)

    def to_dict(self, **kwargs) -> dict[str, Any]:
        """Serialize model to dictionary."""
        return self.model_dump(mode="json", **kwargs)

    @classmethod
    def from_json(cls: type[ModelT], json_str: str) -> ModelT:
        """Deserialize model from JSON string."""
        return cls.model_validate_json(json_str)


# =============================================================================
# Enums
# =============================================================================

class ReportStatus(str, Enum):
    """Lifecycle status of a research report."""
    PENDING = "pending"
    SEARCHING = "searching"
    PREVIEWING = "previewing"
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ReportStatus.COMPLETE, ReportStatus.FAILED)


class ConversionStatus(str, Enum):
    """Outcome of converting a profile's prices to the store currency."""
    CONVERTED = "converted"
    SAME_CURRENCY = "same_currency"
    FAILED = "failed"


# =============================================================================
# Subject
# =============================================================================

class Subject(BaseModel):
    """A catalog item whose competitors are being researched."""

    id: str = Field(..., min_length=1, description="Catalog identifier")
    title: str = Field(..., min_length=1, examples=["Wireless Mouse X200"])
    category: str = Field(default="", examples=["Computer Accessories"])
    brand: str = Field(default="", examples=["Acme"])

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        return str(v)


# =============================================================================
# Stage Outputs
# =============================================================================

class SearchHit(BaseModel):
    """One raw search result."""

    url: str
    title: str = ""
    snippet: str = ""
    score: Optional[float] = None


class ExtractedPage(BaseModel):
    """Sanitized page text produced by the Extract stage."""

    url: str
    content: str
    images: list[str] = Field(default_factory=list)


class ErrorDetails(BaseModel):
    """Failures accumulated across stages."""

    failed_urls: list[str] = Field(default_factory=list)
    message: Optional[str] = None
    stage: Optional[str] = None

    def add_failed_url(self, url: str) -> None:
        if url and url not in self.failed_urls:
            self.failed_urls.append(url)

    def discard_failed_url(self, url: str) -> None:
        if url in self.failed_urls:
            self.failed_urls.remove(url)


# =============================================================================
# Competitor Profiles
# =============================================================================

def _require_http_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Not a valid URL: {value!r}")
    return value


class ProductVariation(BaseModel):
    """A purchasable variant such as a size or colour."""

    type: str = Field(..., min_length=1, description="Variation type, e.g. size, color")
    value: str = Field(..., min_length=1, description="Variation value, e.g. XL, Red")
    price: Optional[float] = Field(default=None, ge=0)
    availability: Optional[str] = None


class ExtractedProfile(BaseModel):
    """
    Competitor attributes as returned by the structured extraction service.

    Field constraints here are what the service validates against: non-blank
    strings, a positive current price, a well-formed URL.
    """

    name: str = Field(..., min_length=1, description="Product name as listed")
    current_price: float = Field(..., gt=0, description="Current selling price")
    original_price: Optional[float] = Field(
        default=None,
        gt=0,
        description="Price before discount, only when a discount is shown",
    )
    currency: str = Field(..., min_length=1, description="ISO 4217 code, e.g. USD")
    url: str = Field(..., description="Canonical product page URL")
    availability: Optional[str] = Field(default=None, examples=["In stock"])
    shipping_info: Optional[str] = None
    seller_name: Optional[str] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    variations: list[ProductVariation] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _require_http_url(v)


class CompetitorProfile(ExtractedProfile):
    """Extracted profile enriched by analysis and currency normalization."""

    source_url: Optional[str] = Field(
        default=None,
        description="URL the page content was extracted from",
    )
    converted_price: Optional[float] = None
    converted_original_price: Optional[float] = None
    store_currency: Optional[str] = None
    conversion_status: Optional[ConversionStatus] = None

    @classmethod
    def from_extracted(cls, extracted: ExtractedProfile, source_url: str) -> "CompetitorProfile":
        return cls(**extracted.model_dump(), source_url=source_url)

    @property
    def is_discounted(self) -> bool:
        return self.original_price is not None

    @property
    def is_out_of_stock(self) -> bool:
        return bool(self.availability) and "out" in self.availability.lower()


# =============================================================================
# Finalized Report
# =============================================================================

class PricePoint(BaseModel):
    name: str
    price: float
    url: str


class ReportSummary(BaseModel):
    """Aggregate statistics over the finalized competitor set."""

    total_competitors: int = 0
    store_currency: str = ""
    lowest_price: float = 0.0
    highest_price: float = 0.0
    avg_price: float = 0.0
    failed_conversions: int = 0
    price_range_data: list[PricePoint] = Field(default_factory=list)
    common_features: list[str] = Field(default_factory=list)
    key_findings: list[str] = Field(default_factory=list)


class CompetitorReport(BaseModel):
    """The finalized ``{competitors, summary}`` analysis result."""

    competitors: list[CompetitorProfile] = Field(default_factory=list)
    summary: ReportSummary = Field(default_factory=ReportSummary)


# =============================================================================
# Product Copy
# =============================================================================

class CopywriterOutput(BaseModel):
    """
    Listing copy written from a finalized competitor analysis.

    ``full_description`` is HTML restricted to paragraphs, bullet lists and
    inline emphasis.
    """

    title: str = Field(..., min_length=1, description="SEO-optimized product title")
    short_description: str = Field(
        ...,
        min_length=1,
        description="Short product description for excerpts (1-2 sentences)",
    )
    full_description: str = Field(
        ...,
        min_length=1,
        description="Full HTML description using only <p>, <ul>, <li>, <strong>, <em>",
    )
    seo_keywords: list[str] = Field(default_factory=list, description="3-8 SEO keywords")
    competitive_advantages: list[str] = Field(
        default_factory=list,
        description="Advantages over the analyzed competitors",
    )


# =============================================================================
# Report
# =============================================================================

class Report(BaseModel):
    """
    A single research run for one subject.

    ``partial_profiles`` accumulates while the report is analyzing;
    ``analysis_result`` is populated once the report is finalized.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    subject_id: str
    status: ReportStatus = ReportStatus.PENDING
    progress_message: str = ""
    search_query: Optional[str] = None
    competitor_data: list[SearchHit] = Field(default_factory=list)
    selected_urls: list[str] = Field(default_factory=list)
    extracted_content: list[ExtractedPage] = Field(default_factory=list)
    partial_profiles: list[CompetitorProfile] = Field(default_factory=list)
    analysis_result: Optional[CompetitorReport] = None
    error_details: ErrorDetails = Field(default_factory=ErrorDetails)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_serializer("created_at", "updated_at", "completed_at")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        """Serialize datetime to ISO format string."""
        if not value:
            return None
        if value.tzinfo is None:
            return value.isoformat() + "Z"
        return value.isoformat()

    @property
    def status_enum(self) -> ReportStatus:
        return ReportStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum.is_terminal

    def profile_for(self, source_url: str) -> Optional[CompetitorProfile]:
        """Return the already-analyzed profile for a page, if any."""
        for profile in self.partial_profiles:
            if profile.source_url == source_url:
                return profile
        return None


# =============================================================================
# Entry Point Responses
# =============================================================================

class StartResearchResponse(BaseModel):
    report_id: str
    status: ReportStatus
    resuming: bool = False
    search_results: list[SearchHit] = Field(default_factory=list)
    urls: list[str] = Field(default_factory=list)
    query: Optional[str] = None


class ConfirmUrlsResponse(BaseModel):
    status: ReportStatus
    total_urls: int
    failed_urls: list[str] = Field(default_factory=list)


class Progress(BaseModel):
    current: int
    total: int


class AnalyzeUrlResponse(BaseModel):
    profile: Optional[CompetitorProfile] = None
    error: Optional[str] = None
    cached: bool = False
    retryable: bool = False
    progress: Progress


class FinalizeReportResponse(BaseModel):
    status: ReportStatus
    report: CompetitorReport


class StatusResponse(BaseModel):
    status: ReportStatus
    message: str = ""


class ReportResponse(BaseModel):
    report_id: str
    subject_id: str
    status: ReportStatus
    report: Optional[CompetitorReport] = None
    error_details: ErrorDetails = Field(default_factory=ErrorDetails)
    created: datetime


class GenerateCopyResponse(BaseModel):
    report_id: str
    tone: str
    product_copy: CopywriterOutput


class BookmarkResponse(BaseModel):
    subject_id: str
    url: str
    bookmarked: bool
    bookmarks: list[str] = Field(default_factory=list)
