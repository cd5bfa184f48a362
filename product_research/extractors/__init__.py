"""
Extractors module for the competitor research pipeline.

Components:
    - CompetitorExtractor: Structured extraction client with the post-hoc
      source-domain check
    - ProductCopywriter: Listing copy generated from a finalized analysis
    - Prompts: Claude prompt templates for competitor profiles and copy
"""

from product_research.extractors.competitor_extractor import (
    CompetitorExtractor,
    host_of,
    url_match_key,
)
from product_research.extractors.copywriter import (
    COPY_TONES,
    DEFAULT_TONE,
    ProductCopywriter,
    clean_description_html,
)
from product_research.extractors.prompts import (
    COMPETITOR_PROFILE_USER,
    PRODUCT_COPY_USER,
    format_competitor_profile_prompt,
    format_product_copy_prompt,
)

__all__ = [
    "CompetitorExtractor",
    "host_of",
    "url_match_key",
    "ProductCopywriter",
    "COPY_TONES",
    "DEFAULT_TONE",
    "clean_description_html",
    "COMPETITOR_PROFILE_USER",
    "PRODUCT_COPY_USER",
    "format_competitor_profile_prompt",
    "format_product_copy_prompt",
]
