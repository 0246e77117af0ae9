"""
Ad Pricing Table

Rate validation and the merge of stored rates over configured defaults.
Reads happen inside the ledger transaction that uses them, so a campaign
is always priced from one consistent snapshot.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from .models import CampaignType, PricingTable, to_money
from .protocols import InvalidInputError

DEFAULT_RATES: Dict[CampaignType, Decimal] = {
    CampaignType.FEATURED_LISTING: Decimal("100.00"),
    CampaignType.BANNER_AD: Decimal("500.00"),
    CampaignType.SOCIAL_BOOST: Decimal("300.00"),
}


def parse_campaign_type(value: Any) -> CampaignType:
    try:
        return CampaignType(value)
    except ValueError:
        valid = ", ".join(t.value for t in CampaignType)
        raise InvalidInputError(f"Unknown campaign type '{value}' (expected one of: {valid})")


def validate_rate(rate: Any) -> Decimal:
    """Daily rates must be positive amounts"""
    try:
        amount = to_money(rate)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInputError(f"Daily rate must be a number, got {rate!r}")
    if not amount.is_finite() or amount <= 0:
        raise InvalidInputError(f"Daily rate must be positive, got {amount}")
    return amount


def build_pricing_table(
    stored: Mapping[Any, Any],
    defaults: Optional[Mapping[Any, Any]] = None,
    updated_at=None,
) -> PricingTable:
    """Stored rates win; types without a stored row use the defaults"""
    rates: Dict[CampaignType, Decimal] = dict(DEFAULT_RATES)
    for key, value in (defaults or {}).items():
        rates[CampaignType(key)] = to_money(value)
    for key, value in stored.items():
        rates[CampaignType(key)] = to_money(value)
    return PricingTable(rates=rates, updated_at=updated_at)
