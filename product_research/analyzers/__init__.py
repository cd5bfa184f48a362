"""Analyzers module: report summary statistics and findings."""

from product_research.analyzers.report_summary import (
    build_summary,
    common_features,
    effective_price,
    key_findings,
    looks_uniform,
    priced_profiles,
)

__all__ = [
    "build_summary",
    "common_features",
    "effective_price",
    "key_findings",
    "looks_uniform",
    "priced_profiles",
]
