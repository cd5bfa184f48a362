"""Data models module for the competitor research pipeline."""

from product_research.models.schemas import (
    # Base Models
    BaseModel,

    # Enums
    ReportStatus,
    ConversionStatus,

    # Inputs and stage outputs
    Subject,
    SearchHit,
    ExtractedPage,
    ErrorDetails,

    # Profiles
    ProductVariation,
    ExtractedProfile,
    CompetitorProfile,

    # Finalized report and copy
    PricePoint,
    ReportSummary,
    CompetitorReport,
    CopywriterOutput,
    Report,

    # Entry point responses
    StartResearchResponse,
    ConfirmUrlsResponse,
    Progress,
    AnalyzeUrlResponse,
    FinalizeReportResponse,
    StatusResponse,
    ReportResponse,
    GenerateCopyResponse,
    BookmarkResponse,
)

__all__ = [
    "BaseModel",
    "ReportStatus",
    "ConversionStatus",
    "Subject",
    "SearchHit",
    "ExtractedPage",
    "ErrorDetails",
    "ProductVariation",
    "ExtractedProfile",
    "CompetitorProfile",
    "PricePoint",
    "ReportSummary",
    "CompetitorReport",
    "CopywriterOutput",
    "Report",
    "StartResearchResponse",
    "ConfirmUrlsResponse",
    "Progress",
    "AnalyzeUrlResponse",
    "FinalizeReportResponse",
    "StatusResponse",
    "ReportResponse",
    "GenerateCopyResponse",
    "BookmarkResponse",
]
