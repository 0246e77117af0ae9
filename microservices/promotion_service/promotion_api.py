"""
Promotion APIs

Admin and vendor facades over the ledger engine. Every call returns a
PromotionResponse; ledger errors become success=False with their
error kind instead of propagating.
"""

import logging
from decimal import Decimal
from typing import Dict, Mapping, Optional

from . import projections
from .ledger_engine import LedgerEngine
from .models import (
    CampaignGoal,
    CampaignStatus,
    CampaignType,
    PricingTable,
    PromotionResponse,
)
from .protocols import PromotionLedgerError

logger = logging.getLogger(__name__)


def _failure(operation: str, error: PromotionLedgerError) -> PromotionResponse:
    logger.info(f"{operation} refused ({error.kind.value}): {error.message}")
    return PromotionResponse(
        success=False,
        message=error.message,
        error_kind=error.kind,
        data=dict(error.details),
    )


def _pricing_data(pricing: PricingTable) -> Dict[str, object]:
    return {
        "rates": {t.value: str(rate) for t, rate in pricing.rates.items()},
        "updated_at": pricing.updated_at.isoformat() if pricing.updated_at else None,
    }


class AdminPromotionAPI:
    """Moderation, pricing and reporting for marketplace admins"""

    def __init__(self, engine: LedgerEngine):
        self.engine = engine

    # ====================
    # Commands
    # ====================

    async def set_pricing(self, campaign_type: CampaignType, daily_rate: Decimal) -> PromotionResponse:
        try:
            pricing = await self.engine.set_pricing(campaign_type, daily_rate)
        except PromotionLedgerError as e:
            return _failure("set_pricing", e)
        return PromotionResponse(
            success=True,
            message=f"Daily rate for {CampaignType(campaign_type).value} updated",
            data=_pricing_data(pricing),
        )

    async def approve(self, campaign_id: str) -> PromotionResponse:
        try:
            campaign = await self.engine.approve(campaign_id)
        except PromotionLedgerError as e:
            return _failure("approve", e)
        return PromotionResponse(success=True, message="Campaign approved", campaign=campaign)

    async def reject(self, campaign_id: str, reason: str) -> PromotionResponse:
        try:
            campaign = await self.engine.reject(campaign_id, reason)
        except PromotionLedgerError as e:
            return _failure("reject", e)
        return PromotionResponse(
            success=True,
            message=f"Campaign rejected, {campaign.total_cost} refunded",
            campaign=campaign,
        )

    async def stop(self, campaign_id: str) -> PromotionResponse:
        try:
            campaign = await self.engine.stop(campaign_id)
        except PromotionLedgerError as e:
            return _failure("stop", e)
        return PromotionResponse(success=True, message="Campaign stopped", campaign=campaign)

    async def toggle_priority(self, campaign_id: str) -> PromotionResponse:
        try:
            campaign = await self.engine.toggle_priority(campaign_id)
        except PromotionLedgerError as e:
            return _failure("toggle_priority", e)
        return PromotionResponse(
            success=True,
            message=f"Priority set to {campaign.priority.value}",
            campaign=campaign,
        )

    async def record_performance(
        self, campaign_id: str, impressions: int = 0, clicks: int = 0, conversions: int = 0
    ) -> PromotionResponse:
        try:
            campaign = await self.engine.record_performance(campaign_id, impressions, clicks, conversions)
        except PromotionLedgerError as e:
            return _failure("record_performance", e)
        return PromotionResponse(
            success=True,
            message="Performance recorded",
            campaign=campaign,
            data={"ctr": str(campaign.ctr), "cpc": str(campaign.cpc)},
        )

    # ====================
    # Views
    # ====================

    async def approval_queue(self) -> PromotionResponse:
        try:
            campaigns = await self.engine.list_campaigns(statuses=[CampaignStatus.PENDING_APPROVAL])
        except PromotionLedgerError as e:
            return _failure("approval_queue", e)
        queue = projections.approval_queue(campaigns)
        return PromotionResponse(success=True, message=f"{len(queue)} pending", campaigns=queue)

    async def live_campaigns(self) -> PromotionResponse:
        try:
            campaigns = await self.engine.list_campaigns(statuses=list(projections.LIVE_STATUSES))
        except PromotionLedgerError as e:
            return _failure("live_campaigns", e)
        live = projections.live_campaigns(campaigns)
        return PromotionResponse(success=True, message=f"{len(live)} live", campaigns=live)

    async def campaign_history(self) -> PromotionResponse:
        try:
            campaigns = await self.engine.list_campaigns()
        except PromotionLedgerError as e:
            return _failure("campaign_history", e)
        history = projections.campaign_history(campaigns)
        return PromotionResponse(success=True, message=f"{len(history)} finished", campaigns=history)

    async def overview(self) -> PromotionResponse:
        try:
            campaigns = await self.engine.list_campaigns()
        except PromotionLedgerError as e:
            return _failure("overview", e)
        summary = projections.summarize_campaigns(campaigns)
        return PromotionResponse(
            success=True,
            message="Promotion overview",
            data=summary.model_dump(mode="json"),
        )

    async def search(
        self, term: Optional[str], vendor_names: Optional[Mapping[str, str]] = None
    ) -> PromotionResponse:
        """Search all campaigns by listing title, shop name or campaign id"""
        try:
            campaigns = await self.engine.list_campaigns()
        except PromotionLedgerError as e:
            return _failure("search", e)
        found = projections.sort_by_date_desc(projections.search_campaigns(campaigns, term, vendor_names))
        return PromotionResponse(success=True, message=f"{len(found)} found", campaigns=found)

    async def get_pricing(self) -> PromotionResponse:
        try:
            pricing = await self.engine.get_pricing()
        except PromotionLedgerError as e:
            return _failure("get_pricing", e)
        return PromotionResponse(success=True, message="Current ad pricing", data=_pricing_data(pricing))


class VendorPromotionAPI:
    """Campaign purchase and management for vendors"""

    def __init__(self, engine: LedgerEngine):
        self.engine = engine

    async def create_campaign(
        self,
        vendor_id: str,
        campaign_type: CampaignType,
        duration_days: int,
        listing_id: Optional[str] = None,
        goal: CampaignGoal = CampaignGoal.TRAFFIC,
        target_location: Optional[str] = None,
    ) -> PromotionResponse:
        try:
            campaign = await self.engine.create_campaign(
                vendor_id=vendor_id,
                campaign_type=campaign_type,
                duration_days=duration_days,
                listing_id=listing_id,
                goal=goal,
                target_location=target_location,
            )
        except PromotionLedgerError as e:
            return _failure("create_campaign", e)
        return PromotionResponse(
            success=True,
            message=f"Campaign submitted for approval, {campaign.total_cost} charged",
            campaign=campaign,
        )

    async def toggle_pause(self, vendor_id: str, campaign_id: str) -> PromotionResponse:
        try:
            campaign = await self.engine.toggle_pause(campaign_id, vendor_id=vendor_id)
        except PromotionLedgerError as e:
            return _failure("toggle_pause", e)
        verb = "paused" if campaign.status == CampaignStatus.PAUSED else "resumed"
        return PromotionResponse(success=True, message=f"Campaign {verb}", campaign=campaign)

    async def dashboard(self, vendor_id: str) -> PromotionResponse:
        try:
            campaigns = await self.engine.list_campaigns(
                vendor_id=vendor_id, statuses=list(projections.DASHBOARD_STATUSES)
            )
        except PromotionLedgerError as e:
            return _failure("dashboard", e)
        current = projections.vendor_dashboard(campaigns, vendor_id)
        return PromotionResponse(
            success=True,
            message=f"{len(current)} current campaigns",
            campaigns=current,
            data=projections.vendor_totals(current),
        )

    async def history(self, vendor_id: str) -> PromotionResponse:
        try:
            campaigns = await self.engine.list_campaigns(
                vendor_id=vendor_id, statuses=list(projections.HISTORY_STATUSES)
            )
        except PromotionLedgerError as e:
            return _failure("history", e)
        past = projections.vendor_history(campaigns, vendor_id)
        return PromotionResponse(success=True, message=f"{len(past)} campaigns", campaigns=past)

    async def wallet(self, vendor_id: str) -> PromotionResponse:
        try:
            wallet = await self.engine.get_wallet(vendor_id)
        except PromotionLedgerError as e:
            return _failure("wallet", e)
        return PromotionResponse(success=True, message="Wallet", data=wallet.model_dump(mode="json"))

    async def wallet_history(self, vendor_id: str, limit: int = 100) -> PromotionResponse:
        try:
            entries = await self.engine.get_wallet_history(vendor_id, limit=limit)
        except PromotionLedgerError as e:
            return _failure("wallet_history", e)
        return PromotionResponse(
            success=True,
            message=f"{len(entries)} transactions",
            data={"transactions": [t.model_dump(mode="json") for t in entries]},
        )

    async def get_pricing(self) -> PromotionResponse:
        try:
            pricing = await self.engine.get_pricing()
        except PromotionLedgerError as e:
            return _failure("get_pricing", e)
        return PromotionResponse(success=True, message="Current ad pricing", data=_pricing_data(pricing))

    async def quote(self, vendor_id: str, campaign_type: CampaignType, duration_days: int) -> PromotionResponse:
        try:
            quote = await self.engine.quote(vendor_id, campaign_type, duration_days)
        except PromotionLedgerError as e:
            return _failure("quote", e)
        message = "Balance covers this campaign" if quote.can_afford else "Insufficient balance for this campaign"
        return PromotionResponse(success=True, message=message, data=quote.model_dump(mode="json"))
