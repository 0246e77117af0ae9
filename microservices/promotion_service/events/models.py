"""
Promotion Event Data Models

Event type definitions and payloads for promotion_service events.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel


# =============================================================================
# Event Type Definitions
# =============================================================================


class PromotionEventType(str, Enum):
    """
    Events published by promotion_service.

    Other services should reference these when subscribing.
    """
    # Campaign lifecycle events
    CAMPAIGN_CREATED = "promotion.campaign.created"
    CAMPAIGN_APPROVED = "promotion.campaign.approved"
    CAMPAIGN_REJECTED = "promotion.campaign.rejected"
    CAMPAIGN_PAUSED = "promotion.campaign.paused"
    CAMPAIGN_RESUMED = "promotion.campaign.resumed"
    CAMPAIGN_STOPPED = "promotion.campaign.stopped"
    CAMPAIGN_PRIORITY_CHANGED = "promotion.campaign.priority_changed"

    # Wallet events
    WALLET_DEBITED = "promotion.wallet.debited"
    WALLET_REFUNDED = "promotion.wallet.refunded"

    # Pricing events
    PRICING_UPDATED = "promotion.pricing.updated"


# =============================================================================
# Event Data Models
# =============================================================================


class CampaignLifecycleEventData(BaseModel):
    """Payload for every campaign status change"""
    campaign_id: str
    vendor_id: str
    listing_id: Optional[str] = None
    campaign_type: str
    status: str
    previous_status: Optional[str] = None
    total_cost: Decimal
    reason: Optional[str] = None
    timestamp: datetime


class WalletMovementEventData(BaseModel):
    """Payload for promotion debits and refunds"""
    user_id: str
    transaction_id: str
    campaign_id: str
    amount: Decimal
    balance_after: Decimal
    timestamp: datetime


class PricingUpdatedEventData(BaseModel):
    campaign_type: str
    daily_rate: Decimal
    timestamp: datetime
