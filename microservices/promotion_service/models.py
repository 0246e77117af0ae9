"""
Promotion Service Models

Campaigns, listings, wallets, ledger entries, pricing and the
notification outbox.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Coerce to a Decimal amount with two decimal places"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ====================
# Enums
# ====================

class CampaignType(str, Enum):
    """Promotion product"""
    FEATURED_LISTING = "featured_listing"
    BANNER_AD = "banner_ad"
    SOCIAL_BOOST = "social_boost"


class CampaignStatus(str, Enum):
    """Campaign lifecycle status"""
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    PAUSED = "paused"
    REJECTED = "rejected"
    COMPLETED = "completed"


class CampaignPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


class CampaignGoal(str, Enum):
    TRAFFIC = "traffic"
    CALLS = "calls"
    AWARENESS = "awareness"


class TransactionType(str, Enum):
    """Wallet ledger entry types"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    ADJUSTMENT = "adjustment"
    BONUS = "bonus"
    PENALTY = "penalty"
    FEE = "fee"
    COMMISSION = "commission"
    PROMOTION = "promotion"
    REFERRAL_BONUS = "referral_bonus"


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


class NotificationKind(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class OutboxStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Failure categories reported to API callers"""
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    STORE_UNAVAILABLE = "store_unavailable"


# ====================
# Core Models
# ====================

class Campaign(BaseModel):
    """A vendor-purchased promotion of a listing"""
    model_config = ConfigDict(from_attributes=True)

    campaign_id: str = Field(default_factory=lambda: f"cmp_{uuid4().hex[:16]}")
    vendor_id: str
    listing_id: Optional[str] = None
    listing_title: Optional[str] = None
    listing_image: Optional[str] = None

    campaign_type: CampaignType
    goal: CampaignGoal = CampaignGoal.TRAFFIC
    target_location: str = "All Pakistan"
    status: CampaignStatus = CampaignStatus.PENDING_APPROVAL
    priority: CampaignPriority = CampaignPriority.NORMAL

    duration_days: int = Field(..., ge=1)
    daily_rate: Decimal = Field(..., gt=0)
    total_cost: Decimal = Field(..., ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    impressions: int = Field(default=0, ge=0)
    clicks: int = Field(default=0, ge=0)
    conversions: int = Field(default=0, ge=0)

    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("daily_rate", "total_cost", mode="before")
    @classmethod
    def _quantize(cls, v):
        return to_money(v)

    @property
    def ctr(self) -> Decimal:
        """Click-through rate in percent"""
        if not self.impressions:
            return Decimal("0.00")
        return to_money(Decimal(self.clicks) * 100 / Decimal(self.impressions))

    @property
    def cpc(self) -> Decimal:
        """Cost per click"""
        if not self.clicks:
            return Decimal("0.00")
        return to_money(self.total_cost / Decimal(self.clicks))

    @property
    def sort_date(self) -> datetime:
        return self.start_date or self.created_at


class Listing(BaseModel):
    """Marketplace listing; the ledger owns only the promotion fields"""
    model_config = ConfigDict(from_attributes=True)

    listing_id: str
    vendor_id: str
    title: str = ""
    image_url: Optional[str] = None
    status: str = "active"
    is_promoted: bool = False
    active_campaign_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)


class Wallet(BaseModel):
    """Vendor prepaid wallet"""
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    balance: Decimal = Field(default=Decimal("0.00"))
    total_spend: Decimal = Field(default=Decimal("0.00"), ge=0)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("balance", "total_spend", mode="before")
    @classmethod
    def _quantize(cls, v):
        return to_money(v)


class WalletTransaction(BaseModel):
    """Immutable ledger entry"""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    transaction_id: str
    user_id: str
    transaction_type: TransactionType
    amount: Decimal
    status: TransactionStatus = TransactionStatus.COMPLETED
    description: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("amount", mode="before")
    @classmethod
    def _quantize(cls, v):
        return to_money(v)


class OutboxNotification(BaseModel):
    """Notification written in the ledger transaction, delivered later"""
    model_config = ConfigDict(from_attributes=True)

    notification_id: str = Field(default_factory=lambda: f"ntf_{uuid4().hex[:16]}")
    user_id: str
    title: str
    message: str
    kind: NotificationKind = NotificationKind.INFO
    link: Optional[str] = None
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    delivered_at: Optional[datetime] = None


class PricingTable(BaseModel):
    """Daily rate per campaign type"""
    model_config = ConfigDict(from_attributes=True)

    rates: Dict[CampaignType, Decimal]
    updated_at: Optional[datetime] = None

    @field_validator("rates", mode="before")
    @classmethod
    def _quantize_rates(cls, v):
        return {CampaignType(k): to_money(rate) for k, rate in dict(v).items()}

    def rate_for(self, campaign_type: CampaignType) -> Decimal:
        return self.rates[CampaignType(campaign_type)]

    def total_cost(self, campaign_type: CampaignType, duration_days: int) -> Decimal:
        return to_money(self.rate_for(campaign_type) * duration_days)


# ====================
# Read Models
# ====================

class PromotionOverview(BaseModel):
    """Admin overview figures"""
    total_revenue: Decimal = Decimal("0.00")
    status_counts: Dict[CampaignStatus, int] = Field(default_factory=dict)
    revenue_by_type: Dict[CampaignType, Decimal] = Field(default_factory=dict)
    total_impressions: int = 0
    total_clicks: int = 0


class CampaignQuote(BaseModel):
    """Cost preview before a vendor submits a campaign"""
    campaign_type: CampaignType
    duration_days: int
    daily_rate: Decimal
    total_cost: Decimal
    balance: Decimal
    can_afford: bool


# ====================
# Response Models
# ====================

class PromotionResponse(BaseModel):
    """Result returned by the admin and vendor APIs"""
    success: bool
    message: str
    error_kind: Optional[ErrorKind] = None
    campaign: Optional[Campaign] = None
    campaigns: List[Campaign] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)
