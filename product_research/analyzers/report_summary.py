"""
Summary statistics for a finalized competitor set.

Price statistics only consider profiles whose price could be expressed in
the store currency (``conversion_status != failed``) and is positive; every
profile still counts toward ``total_competitors``.
"""

from collections import Counter

from product_research.models.schemas import (
    CompetitorProfile,
    ConversionStatus,
    PricePoint,
    ReportSummary,
)
from product_research.utils.logger import get_logger

logger = get_logger(__name__)

MAX_COMMON_FEATURES = 10
NO_DATA_FINDING = "No competitor data found"


def effective_price(profile: CompetitorProfile) -> float:
    if profile.converted_price is not None:
        return profile.converted_price
    return profile.current_price


def priced_profiles(profiles: list[CompetitorProfile]) -> list[CompetitorProfile]:
    """Profiles eligible for price statistics."""
    return [
        p for p in profiles
        if p.conversion_status != ConversionStatus.FAILED and effective_price(p) > 0
    ]


def common_features(profiles: list[CompetitorProfile], limit: int = MAX_COMMON_FEATURES) -> list[str]:
    """
    Features shared by at least two profiles.

    Features are compared lower-cased and trimmed. Ordered by frequency;
    ties keep first-seen order.
    """
    counts: Counter[str] = Counter()
    first_seen: dict[str, int] = {}
    for profile in profiles:
        seen_here = set()
        for feature in profile.features:
            normalized = feature.strip().lower()
            if not normalized or normalized in seen_here:
                continue
            seen_here.add(normalized)
            counts[normalized] += 1
            first_seen.setdefault(normalized, len(first_seen))

    shared = [f for f, n in counts.items() if n >= 2]
    shared.sort(key=lambda f: (-counts[f], first_seen[f]))
    return shared[:limit]


def key_findings(profiles: list[CompetitorProfile], store_currency: str) -> list[str]:
    if not profiles:
        return [NO_DATA_FINDING]

    findings = []
    priced = priced_profiles(profiles)
    if priced:
        prices = [effective_price(p) for p in priced]
        findings.append(
            f"Price range: {store_currency} {min(prices):.2f} - {store_currency} {max(prices):.2f} "
            f"across {len(priced)} competitors"
        )

    failed = sum(1 for p in profiles if p.conversion_status == ConversionStatus.FAILED)
    if failed:
        findings.append(
            f"{failed} competitor price(s) could not be converted to {store_currency} "
            "and were excluded from price statistics"
        )

    discounted = sum(1 for p in profiles if p.is_discounted)
    if discounted:
        findings.append(f"{discounted} competitor(s) currently offering discounts")

    out_of_stock = sum(1 for p in profiles if p.is_out_of_stock)
    if out_of_stock:
        findings.append(f"{out_of_stock} competitor(s) currently out of stock")

    with_variations = sum(1 for p in profiles if p.variations)
    if with_variations:
        findings.append(f"{with_variations} competitor(s) offer product variations")

    return findings


def build_summary(profiles: list[CompetitorProfile], store_currency: str) -> ReportSummary:
    """Compute the report summary for normalized profiles."""
    priced = priced_profiles(profiles)
    prices = [effective_price(p) for p in priced]

    return ReportSummary(
        total_competitors=len(profiles),
        store_currency=store_currency,
        lowest_price=round(min(prices), 2) if prices else 0.0,
        highest_price=round(max(prices), 2) if prices else 0.0,
        avg_price=round(sum(prices) / len(prices), 2) if prices else 0.0,
        failed_conversions=sum(
            1 for p in profiles if p.conversion_status == ConversionStatus.FAILED
        ),
        price_range_data=[
            PricePoint(name=p.name, price=round(effective_price(p), 2), url=p.url)
            for p in priced
        ],
        common_features=common_features(profiles),
        key_findings=key_findings(profiles, store_currency),
    )


def looks_uniform(profiles: list[CompetitorProfile]) -> bool:
    """
    True when more than two profiles share every name or every price.

    That pattern usually means the pages were a listing or template page
    rather than distinct products.
    """
    if len(profiles) <= 2:
        return False
    names = {p.name.strip().lower() for p in profiles}
    prices = {p.current_price for p in profiles}
    return len(names) == 1 or len(prices) == 1
