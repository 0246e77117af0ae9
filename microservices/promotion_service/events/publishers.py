"""
Promotion Event Publishers

Publishes events to NATS JetStream after the ledger transaction commits.
Publishing is best-effort: failures are logged and never surface to the
caller of the ledger operation.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from core.nats_client import Event

from ..models import Campaign, CampaignStatus, CampaignType, WalletTransaction
from .models import (
    CampaignLifecycleEventData,
    PricingUpdatedEventData,
    PromotionEventType,
    WalletMovementEventData,
)

logger = logging.getLogger(__name__)


class PromotionEventPublisher:
    """Publisher for promotion service events"""

    def __init__(self, event_bus=None):
        self.event_bus = event_bus
        self.source = "promotion_service"

    async def publish(
        self,
        event_type: PromotionEventType,
        data: Dict[str, Any],
    ) -> bool:
        """
        Publish an event.

        Returns:
            True if published successfully, False otherwise
        """
        if not self.event_bus:
            logger.debug(f"Event bus not configured, skipping publish: {event_type.value}")
            return False

        try:
            event = Event(event_type=event_type, source=self.source, data=data)
            published = await self.event_bus.publish_event(event)
            logger.debug(f"Published event: {event_type.value}")
            return published is not False
        except Exception as e:
            logger.error(f"Failed to publish event {event_type.value}: {e}")
            return False

    # ====================
    # Campaign Lifecycle Events
    # ====================

    async def publish_campaign_event(
        self,
        event_type: PromotionEventType,
        campaign: Campaign,
        previous_status: Optional[CampaignStatus] = None,
        reason: Optional[str] = None,
    ) -> bool:
        data = CampaignLifecycleEventData(
            campaign_id=campaign.campaign_id,
            vendor_id=campaign.vendor_id,
            listing_id=campaign.listing_id,
            campaign_type=campaign.campaign_type.value,
            status=campaign.status.value,
            previous_status=previous_status.value if previous_status else None,
            total_cost=campaign.total_cost,
            reason=reason,
            timestamp=datetime.now(timezone.utc),
        )
        return await self.publish(event_type, data.model_dump(mode="json"))

    # ====================
    # Wallet Events
    # ====================

    async def publish_wallet_movement(
        self,
        event_type: PromotionEventType,
        transaction: WalletTransaction,
        balance_after: Decimal,
    ) -> bool:
        data = WalletMovementEventData(
            user_id=transaction.user_id,
            transaction_id=transaction.transaction_id,
            campaign_id=transaction.reference_id or "",
            amount=transaction.amount,
            balance_after=balance_after,
            timestamp=transaction.created_at,
        )
        return await self.publish(event_type, data.model_dump(mode="json"))

    # ====================
    # Pricing Events
    # ====================

    async def publish_pricing_updated(self, campaign_type: CampaignType, daily_rate: Decimal) -> bool:
        data = PricingUpdatedEventData(
            campaign_type=campaign_type.value,
            daily_rate=daily_rate,
            timestamp=datetime.now(timezone.utc),
        )
        return await self.publish(PromotionEventType.PRICING_UPDATED, data.model_dump(mode="json"))
