"""
Promotion Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncContextManager, Dict, List, Optional, Protocol, runtime_checkable

from .models import (
    Campaign,
    CampaignStatus,
    CampaignType,
    ErrorKind,
    Listing,
    OutboxNotification,
    PricingTable,
    Wallet,
    WalletTransaction,
)


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class PromotionLedgerError(Exception):
    """Base error for ledger operations"""

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInputError(PromotionLedgerError):
    """Missing or malformed input, rejected before any store access"""
    kind = ErrorKind.INVALID_INPUT


class NotFoundError(PromotionLedgerError):
    """Referenced campaign, listing or wallet does not exist"""
    kind = ErrorKind.NOT_FOUND


class InvalidStateError(PromotionLedgerError):
    """Requested transition is not legal from the current status"""
    kind = ErrorKind.INVALID_STATE


class InsufficientFundsError(PromotionLedgerError):
    """Wallet balance below the campaign cost"""
    kind = ErrorKind.INSUFFICIENT_FUNDS


class StoreUnavailableError(PromotionLedgerError):
    """Store transaction failed for infrastructure reasons; nothing was applied"""
    kind = ErrorKind.STORE_UNAVAILABLE


class ConcurrentModificationError(StoreUnavailableError):
    """Optimistic version check failed on commit"""
    pass


# ============================================================================
# Store Protocols
# ============================================================================

@runtime_checkable
class LedgerUnitOfWorkProtocol(Protocol):
    """
    One store transaction.

    Reads with ``lock=True`` hold the row until the transaction ends.
    Writes become visible together when the owning context exits cleanly and
    are discarded when it exits with an exception.
    """

    async def get_campaign(self, campaign_id: str, lock: bool = True) -> Optional[Campaign]:
        ...

    async def get_listing(self, listing_id: str, lock: bool = True) -> Optional[Listing]:
        ...

    async def get_wallet(self, user_id: str, lock: bool = True) -> Optional[Wallet]:
        ...

    async def get_pricing(self) -> PricingTable:
        """Pricing snapshot as of this transaction"""
        ...

    async def insert_campaign(self, campaign: Campaign) -> Campaign:
        ...

    async def update_campaign(
        self, campaign_id: str, expected_version: int, updates: Dict[str, Any]
    ) -> Campaign:
        """Apply updates if the stored version matches; bumps version"""
        ...

    async def increment_campaign_metrics(
        self, campaign_id: str, impressions: int, clicks: int, conversions: int
    ) -> Campaign:
        ...

    async def set_listing_promotion(
        self, listing_id: str, is_promoted: bool, active_campaign_id: Optional[str]
    ) -> Listing:
        ...

    async def adjust_wallet(
        self, user_id: str, balance_delta: Decimal, spend_delta: Decimal
    ) -> Wallet:
        """Atomic increment of balance and total_spend"""
        ...

    async def append_transaction(self, transaction: WalletTransaction) -> WalletTransaction:
        ...

    async def enqueue_notification(self, notification: OutboxNotification) -> OutboxNotification:
        ...

    async def upsert_rate(self, campaign_type: CampaignType, daily_rate: Decimal) -> None:
        ...


@runtime_checkable
class EntityStoreProtocol(Protocol):
    """Durable store for campaigns, listings, wallets, pricing and the outbox"""

    async def initialize(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def health_check(self) -> bool:
        ...

    def transaction(self) -> AsyncContextManager[LedgerUnitOfWorkProtocol]:
        """Open an all-or-nothing unit of work"""
        ...

    # Point-in-time reads
    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        ...

    async def list_campaigns(
        self,
        vendor_id: Optional[str] = None,
        statuses: Optional[List[CampaignStatus]] = None,
    ) -> List[Campaign]:
        ...

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        ...

    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        ...

    async def get_wallet_history(self, user_id: str, limit: int = 100) -> List[WalletTransaction]:
        """Ledger entries, newest first"""
        ...

    async def get_pricing(self) -> PricingTable:
        ...

    # Outbox
    async def fetch_pending_notifications(self, limit: int = 50) -> List[OutboxNotification]:
        ...

    async def mark_notification_delivered(self, notification_id: str, delivered_at: datetime) -> None:
        ...

    async def mark_notification_attempt_failed(
        self, notification_id: str, error: str, max_attempts: int
    ) -> OutboxNotification:
        """Record a failed attempt; status becomes failed at max_attempts"""
        ...


# ============================================================================
# Client Protocols
# ============================================================================

@runtime_checkable
class NotificationSinkProtocol(Protocol):
    """Persists user-facing notifications for later display"""

    async def send_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        kind: str,
        link: Optional[str] = None,
    ) -> Dict[str, Any]:
        ...


@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for Event Bus - no I/O imports"""

    async def publish_event(self, event: Any) -> bool:
        ...


# ============================================================================
# Exports
# ============================================================================

__all__ = [
    # Exceptions
    "PromotionLedgerError",
    "InvalidInputError",
    "NotFoundError",
    "InvalidStateError",
    "InsufficientFundsError",
    "StoreUnavailableError",
    "ConcurrentModificationError",
    # Protocols
    "LedgerUnitOfWorkProtocol",
    "EntityStoreProtocol",
    "NotificationSinkProtocol",
    "EventBusProtocol",
]
