"""
Campaign projections

Pure views over a sequence of campaigns for the admin and vendor screens.
Inputs are never mutated; every function returns a new list or model.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .models import (
    Campaign,
    CampaignPriority,
    CampaignStatus,
    CampaignType,
    PromotionOverview,
    to_money,
)

# Statuses whose cost counts as earned revenue
NON_REVENUE_STATUSES = frozenset({CampaignStatus.REJECTED, CampaignStatus.PENDING_APPROVAL})

LIVE_STATUSES = (CampaignStatus.ACTIVE, CampaignStatus.PAUSED)
DASHBOARD_STATUSES = (CampaignStatus.ACTIVE, CampaignStatus.PENDING_APPROVAL, CampaignStatus.PAUSED)
HISTORY_STATUSES = (CampaignStatus.COMPLETED, CampaignStatus.REJECTED, CampaignStatus.PAUSED)


def filter_campaigns(
    campaigns: Iterable[Campaign],
    vendor_id: Optional[str] = None,
    statuses: Optional[Iterable[CampaignStatus]] = None,
    campaign_type: Optional[CampaignType] = None,
) -> List[Campaign]:
    wanted = set(statuses) if statuses is not None else None
    return [
        c for c in campaigns
        if (vendor_id is None or c.vendor_id == vendor_id)
        and (wanted is None or c.status in wanted)
        and (campaign_type is None or c.campaign_type == campaign_type)
    ]


def sort_by_date_desc(campaigns: Iterable[Campaign]) -> List[Campaign]:
    """Newest first by start date, falling back to creation time"""
    return sorted(campaigns, key=lambda c: (c.sort_date, c.created_at), reverse=True)


def search_campaigns(
    campaigns: Iterable[Campaign],
    term: Optional[str],
    vendor_names: Optional[Mapping[str, str]] = None,
) -> List[Campaign]:
    """
    Case-insensitive match on listing title, vendor shop name or campaign id.

    An empty term matches everything.
    """
    campaigns = list(campaigns)
    needle = (term or "").strip().lower()
    if not needle:
        return campaigns
    names = vendor_names or {}

    def matches(campaign: Campaign) -> bool:
        haystack = (
            campaign.listing_title or "",
            names.get(campaign.vendor_id, ""),
            campaign.campaign_id,
        )
        return any(needle in field.lower() for field in haystack)

    return [c for c in campaigns if matches(c)]


def summarize_campaigns(campaigns: Iterable[Campaign]) -> PromotionOverview:
    status_counts: Dict[CampaignStatus, int] = {status: 0 for status in CampaignStatus}
    revenue_by_type: Dict[CampaignType, Decimal] = {t: Decimal("0.00") for t in CampaignType}
    total_revenue = Decimal("0.00")
    impressions = clicks = 0

    for campaign in campaigns:
        status_counts[campaign.status] += 1
        impressions += campaign.impressions
        clicks += campaign.clicks
        if campaign.status in NON_REVENUE_STATUSES:
            continue
        total_revenue += campaign.total_cost
        revenue_by_type[campaign.campaign_type] += campaign.total_cost

    return PromotionOverview(
        total_revenue=to_money(total_revenue),
        status_counts=status_counts,
        revenue_by_type={k: to_money(v) for k, v in revenue_by_type.items()},
        total_impressions=impressions,
        total_clicks=clicks,
    )


def approval_queue(campaigns: Iterable[Campaign]) -> List[Campaign]:
    """Pending requests, oldest first so the admin works through them in order"""
    pending = filter_campaigns(campaigns, statuses=[CampaignStatus.PENDING_APPROVAL])
    return sorted(pending, key=lambda c: c.created_at)


def live_campaigns(campaigns: Iterable[Campaign]) -> List[Campaign]:
    """Running and paused campaigns, high priority first"""
    live = sort_by_date_desc(filter_campaigns(campaigns, statuses=LIVE_STATUSES))
    return sorted(live, key=lambda c: c.priority != CampaignPriority.HIGH)


def campaign_history(campaigns: Iterable[Campaign]) -> List[Campaign]:
    return sort_by_date_desc(
        filter_campaigns(campaigns, statuses=[CampaignStatus.COMPLETED, CampaignStatus.REJECTED])
    )


def vendor_dashboard(campaigns: Iterable[Campaign], vendor_id: str) -> List[Campaign]:
    return sort_by_date_desc(filter_campaigns(campaigns, vendor_id=vendor_id, statuses=DASHBOARD_STATUSES))


def vendor_history(campaigns: Iterable[Campaign], vendor_id: str) -> List[Campaign]:
    return sort_by_date_desc(filter_campaigns(campaigns, vendor_id=vendor_id, statuses=HISTORY_STATUSES))


def vendor_totals(campaigns: Sequence[Campaign]) -> Dict[str, object]:
    """Spend and delivery totals shown above the vendor dashboard"""
    spend = sum((c.total_cost for c in campaigns if c.status not in NON_REVENUE_STATUSES), Decimal("0.00"))
    return {
        "campaigns": len(campaigns),
        "total_spend": to_money(spend),
        "impressions": sum(c.impressions for c in campaigns),
        "clicks": sum(c.clicks for c in campaigns),
    }
