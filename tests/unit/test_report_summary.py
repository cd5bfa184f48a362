from product_research.analyzers.report_summary import (
    NO_DATA_FINDING,
    build_summary,
    common_features,
    key_findings,
    looks_uniform,
    priced_profiles,
)
from product_research.models.schemas import ConversionStatus


def test_summary_uses_converted_prices(make_profile):
    profiles = [
        make_profile(current_price=190.00, converted_price=190.00, conversion_status=ConversionStatus.SAME_CURRENCY),
        make_profile(
            name="EU listing",
            current_price=184.00,
            currency="EUR",
            converted_price=210.00,
            conversion_status=ConversionStatus.CONVERTED,
        ),
    ]

    summary = build_summary(profiles, "USD")

    assert summary.total_competitors == 2
    assert summary.lowest_price == 190.0
    assert summary.highest_price == 210.0
    assert summary.avg_price == 200.0
    assert summary.failed_conversions == 0
    assert [p.price for p in summary.price_range_data] == [190.0, 210.0]
    assert summary.key_findings[0] == "Price range: USD 190.00 - USD 210.00 across 2 competitors"


def test_failed_conversions_excluded_from_price_stats(make_profile):
    profiles = [
        make_profile(current_price=100, converted_price=100, conversion_status=ConversionStatus.SAME_CURRENCY),
        make_profile(current_price=9000, currency="JPY", converted_price=9000,
                     conversion_status=ConversionStatus.FAILED),
    ]

    summary = build_summary(profiles, "USD")

    assert summary.total_competitors == 2
    assert summary.highest_price == 100
    assert summary.failed_conversions == 1
    assert len(priced_profiles(profiles)) == 1
    assert any("could not be converted to USD" in f for f in summary.key_findings)


def test_common_features_need_two_profiles(make_profile):
    profiles = [
        make_profile(features=["Bluetooth 5.0", "USB-C", "usb-c"]),
        make_profile(features=[" bluetooth 5.0 ", "Silent clicks"]),
        make_profile(features=["USB-C", "Silent Clicks", "Bluetooth 5.0"]),
    ]

    assert common_features(profiles) == ["bluetooth 5.0", "usb-c", "silent clicks"]


def test_key_findings_counts(make_profile):
    profiles = [
        make_profile(original_price=249.99, availability="Out of Stock"),
        make_profile(variations=[{"type": "color", "value": "Black"}]),
    ]

    findings = key_findings(profiles, "USD")

    assert "1 competitor(s) currently offering discounts" in findings
    assert "1 competitor(s) currently out of stock" in findings
    assert "1 competitor(s) offer product variations" in findings


def test_empty_profiles():
    summary = build_summary([], "USD")
    assert summary.total_competitors == 0
    assert summary.avg_price == 0.0
    assert summary.key_findings == [NO_DATA_FINDING]


def test_looks_uniform(make_profile):
    assert not looks_uniform([make_profile(), make_profile()])
    assert looks_uniform([make_profile(current_price=p) for p in (10, 20, 30)])
    assert looks_uniform([make_profile(name=n, current_price=5) for n in ("a", "b", "c")])
    assert not looks_uniform([
        make_profile(name=n, current_price=p) for n, p in (("a", 1), ("b", 2), ("c", 3))
    ])
