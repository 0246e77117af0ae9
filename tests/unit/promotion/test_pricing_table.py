"""
Unit Tests for Ad Pricing
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from microservices.promotion_service.models import CampaignType
from microservices.promotion_service.pricing import (
    DEFAULT_RATES,
    build_pricing_table,
    parse_campaign_type,
    validate_rate,
)
from microservices.promotion_service.protocols import InvalidInputError


class TestParseCampaignType:

    def test_accepts_enum_and_value(self):
        assert parse_campaign_type("banner_ad") == CampaignType.BANNER_AD
        assert parse_campaign_type(CampaignType.SOCIAL_BOOST) == CampaignType.SOCIAL_BOOST

    def test_rejects_unknown(self):
        with pytest.raises(InvalidInputError) as exc:
            parse_campaign_type("billboard")
        assert "featured_listing" in exc.value.message


class TestValidateRate:

    def test_positive_rate_quantized(self):
        assert validate_rate("149.999") == Decimal("150.00")

    @pytest.mark.parametrize("rate", [0, -5, "0.00", Decimal("-0.01")])
    def test_non_positive_rejected(self, rate):
        with pytest.raises(InvalidInputError):
            validate_rate(rate)

    @pytest.mark.parametrize("rate", ["abc", None, "NaN"])
    def test_non_numeric_rejected(self, rate):
        with pytest.raises(InvalidInputError):
            validate_rate(rate)


class TestBuildPricingTable:

    def test_defaults_when_nothing_stored(self):
        table = build_pricing_table({})
        assert table.rates == DEFAULT_RATES
        assert table.rate_for(CampaignType.FEATURED_LISTING) == Decimal("100.00")
        assert table.rate_for(CampaignType.BANNER_AD) == Decimal("500.00")
        assert table.rate_for(CampaignType.SOCIAL_BOOST) == Decimal("300.00")

    def test_stored_rates_override_configured_defaults(self):
        table = build_pricing_table(
            {"banner_ad": Decimal("650")},
            defaults={"banner_ad": Decimal("550"), "social_boost": Decimal("350")},
        )
        assert table.rate_for(CampaignType.BANNER_AD) == Decimal("650.00")
        assert table.rate_for(CampaignType.SOCIAL_BOOST) == Decimal("350.00")
        assert table.rate_for(CampaignType.FEATURED_LISTING) == Decimal("100.00")

    def test_total_cost(self):
        table = build_pricing_table({}, updated_at=datetime.now(timezone.utc))
        assert table.total_cost(CampaignType.FEATURED_LISTING, 5) == Decimal("500.00")
        assert table.total_cost(CampaignType.BANNER_AD, 7) == Decimal("3500.00")
