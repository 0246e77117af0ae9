"""
In-memory Entity Store Mock for Component Testing

Implements EntityStoreProtocol with real transaction semantics:
- writes are staged per unit of work and applied only on commit
- reads with lock=True hold a per-row lock until the transaction ends
- campaign updates are version checked
- wallet balance may not go negative (mirrors the CHECK constraint)

Faults can be injected per operation with fail_next().
"""
import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from microservices.promotion_service.models import (
    Campaign,
    CampaignStatus,
    CampaignType,
    Listing,
    OutboxNotification,
    OutboxStatus,
    PricingTable,
    Wallet,
    WalletTransaction,
    to_money,
    utcnow,
)
from microservices.promotion_service.pricing import build_pricing_table
from microservices.promotion_service.protocols import (
    ConcurrentModificationError,
    InsufficientFundsError,
    NotFoundError,
    StoreUnavailableError,
)


class MockUnitOfWork:
    """Staged writes over a MockEntityStore"""

    def __init__(self, store: "MockEntityStore"):
        self.store = store
        self.campaigns: Dict[str, Campaign] = {}
        self.listings: Dict[str, Listing] = {}
        self.wallets: Dict[str, Wallet] = {}
        self.new_transactions: List[WalletTransaction] = []
        self.new_notifications: List[OutboxNotification] = []
        self.rates: Dict[CampaignType, Decimal] = {}
        self._base_versions: Dict[str, int] = {}
        self._held: List[asyncio.Lock] = []

    async def _lock(self, key: str) -> None:
        lock = self.store._row_locks[key]
        if lock in self._held:
            return
        await lock.acquire()
        self._held.append(lock)

    def release_locks(self) -> None:
        while self._held:
            self._held.pop().release()

    # Reads

    async def get_campaign(self, campaign_id: str, lock: bool = True) -> Optional[Campaign]:
        await self.store._io("get_campaign")
        if lock:
            await self._lock(f"campaign:{campaign_id}")
        if campaign_id in self.campaigns:
            return self.campaigns[campaign_id]
        committed = self.store.campaigns.get(campaign_id)
        if committed is None:
            return None
        self._base_versions.setdefault(campaign_id, committed.version)
        return committed.model_copy(deep=True)

    async def get_listing(self, listing_id: str, lock: bool = True) -> Optional[Listing]:
        await self.store._io("get_listing")
        if lock:
            await self._lock(f"listing:{listing_id}")
        if listing_id in self.listings:
            return self.listings[listing_id]
        committed = self.store.listings.get(listing_id)
        return committed.model_copy(deep=True) if committed else None

    async def get_wallet(self, user_id: str, lock: bool = True) -> Optional[Wallet]:
        await self.store._io("get_wallet")
        if lock:
            await self._lock(f"wallet:{user_id}")
        if user_id in self.wallets:
            return self.wallets[user_id]
        committed = self.store.wallets.get(user_id)
        return committed.model_copy(deep=True) if committed else None

    async def get_pricing(self) -> PricingTable:
        await self.store._io("get_pricing")
        return build_pricing_table({**self.store.rates, **self.rates}, self.store.default_rates)

    # Writes

    async def insert_campaign(self, campaign: Campaign) -> Campaign:
        await self.store._io("insert_campaign")
        if campaign.campaign_id in self.store.campaigns or campaign.campaign_id in self.campaigns:
            raise StoreUnavailableError(f"Duplicate campaign id {campaign.campaign_id}")
        self.campaigns[campaign.campaign_id] = campaign.model_copy(deep=True)
        return self.campaigns[campaign.campaign_id]

    async def update_campaign(
        self, campaign_id: str, expected_version: int, updates: Dict[str, Any]
    ) -> Campaign:
        await self.store._io("update_campaign")
        current = await self.get_campaign(campaign_id, lock=False)
        if current is None:
            raise NotFoundError(f"Campaign not found: {campaign_id}")
        if current.version != expected_version:
            raise ConcurrentModificationError(f"Campaign {campaign_id} version mismatch")
        updated = current.model_copy(update={**updates, "version": current.version + 1})
        self.campaigns[campaign_id] = updated
        return updated

    async def increment_campaign_metrics(
        self, campaign_id: str, impressions: int, clicks: int, conversions: int
    ) -> Campaign:
        await self.store._io("increment_campaign_metrics")
        current = await self.get_campaign(campaign_id, lock=False)
        if current is None:
            raise NotFoundError(f"Campaign not found: {campaign_id}")
        updated = current.model_copy(update={
            "impressions": current.impressions + impressions,
            "clicks": current.clicks + clicks,
            "conversions": current.conversions + conversions,
            "version": current.version + 1,
            "updated_at": utcnow(),
        })
        self.campaigns[campaign_id] = updated
        return updated

    async def set_listing_promotion(
        self, listing_id: str, is_promoted: bool, active_campaign_id: Optional[str]
    ) -> Listing:
        await self.store._io("set_listing_promotion")
        current = await self.get_listing(listing_id, lock=False)
        if current is None:
            raise NotFoundError(f"Listing not found: {listing_id}")
        updated = current.model_copy(update={
            "is_promoted": is_promoted,
            "active_campaign_id": active_campaign_id,
            "updated_at": utcnow(),
        })
        self.listings[listing_id] = updated
        return updated

    async def adjust_wallet(self, user_id: str, balance_delta: Decimal, spend_delta: Decimal) -> Wallet:
        await self.store._io("adjust_wallet")
        current = await self.get_wallet(user_id, lock=False)
        if current is None:
            raise NotFoundError(f"Wallet not found for vendor {user_id}")
        balance = to_money(current.balance + balance_delta)
        total_spend = to_money(current.total_spend + spend_delta)
        if balance < 0:
            raise InsufficientFundsError("Wallet balance would become negative")
        if total_spend < 0:
            raise StoreUnavailableError("wallets_total_spend_non_negative violated")
        updated = current.model_copy(update={
            "balance": balance,
            "total_spend": total_spend,
            "updated_at": utcnow(),
        })
        self.wallets[user_id] = updated
        return updated

    async def append_transaction(self, transaction: WalletTransaction) -> WalletTransaction:
        await self.store._io("append_transaction")
        self.new_transactions.append(transaction)
        return transaction

    async def enqueue_notification(self, notification: OutboxNotification) -> OutboxNotification:
        await self.store._io("enqueue_notification")
        self.new_notifications.append(notification)
        return notification

    async def upsert_rate(self, campaign_type: CampaignType, daily_rate: Decimal) -> None:
        await self.store._io("upsert_rate")
        self.rates[CampaignType(campaign_type)] = daily_rate

    # Commit

    def commit(self) -> None:
        for campaign_id, base in self._base_versions.items():
            if campaign_id not in self.campaigns:
                continue
            committed = self.store.campaigns.get(campaign_id)
            if committed is not None and committed.version != base:
                raise ConcurrentModificationError(f"Campaign {campaign_id} changed before commit")

        self.store.campaigns.update(self.campaigns)
        self.store.listings.update(self.listings)
        self.store.wallets.update(self.wallets)
        self.store.transactions.extend(self.new_transactions)
        for notification in self.new_notifications:
            self.store.notifications[notification.notification_id] = notification
        if self.rates:
            self.store.rates.update(self.rates)
            self.store.pricing_updated_at = utcnow()


class MockEntityStore:
    """In-memory EntityStoreProtocol implementation"""

    def __init__(self, default_rates: Optional[Dict[str, Decimal]] = None, latency: float = 0.0):
        self.default_rates = default_rates or {}
        self.latency = latency

        self.campaigns: Dict[str, Campaign] = {}
        self.listings: Dict[str, Listing] = {}
        self.wallets: Dict[str, Wallet] = {}
        self.transactions: List[WalletTransaction] = []
        self.notifications: Dict[str, OutboxNotification] = {}
        self.rates: Dict[CampaignType, Decimal] = {}
        self.pricing_updated_at: Optional[datetime] = None

        self.initialized = False
        self.closed = False
        self.available = True
        self.commits = 0
        self.rollbacks = 0
        self._row_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._failures: Dict[str, Exception] = {}

    # Fault injection

    def fail_next(self, operation: str, error: Optional[Exception] = None) -> None:
        """Raise error on the next call of operation ("commit" included)"""
        self._failures[operation] = error or StoreUnavailableError(f"Injected failure in {operation}")

    async def _io(self, operation: str) -> None:
        if not self.available:
            raise StoreUnavailableError(f"Store unavailable during {operation}")
        if operation in self._failures:
            raise self._failures.pop(operation)
        await asyncio.sleep(self.latency)

    # Lifecycle

    async def initialize(self) -> None:
        self.initialized = True

    async def close(self) -> None:
        self.closed = True

    async def health_check(self) -> bool:
        return self.available

    @asynccontextmanager
    async def transaction(self):
        await self._io("transaction")
        uow = MockUnitOfWork(self)
        try:
            yield uow
            await self._io("commit")
            uow.commit()
            self.commits += 1
        except BaseException:
            self.rollbacks += 1
            raise
        finally:
            uow.release_locks()

    # Point-in-time reads

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        await self._io("get_campaign")
        campaign = self.campaigns.get(campaign_id)
        return campaign.model_copy(deep=True) if campaign else None

    async def list_campaigns(
        self,
        vendor_id: Optional[str] = None,
        statuses: Optional[List[CampaignStatus]] = None,
    ) -> List[Campaign]:
        await self._io("list_campaigns")
        found = [
            c.model_copy(deep=True) for c in self.campaigns.values()
            if (vendor_id is None or c.vendor_id == vendor_id)
            and (statuses is None or c.status in statuses)
        ]
        return sorted(found, key=lambda c: c.sort_date, reverse=True)

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        await self._io("get_listing")
        listing = self.listings.get(listing_id)
        return listing.model_copy(deep=True) if listing else None

    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        await self._io("get_wallet")
        wallet = self.wallets.get(user_id)
        return wallet.model_copy(deep=True) if wallet else None

    async def get_wallet_history(self, user_id: str, limit: int = 100) -> List[WalletTransaction]:
        await self._io("get_wallet_history")
        entries = [(i, t) for i, t in enumerate(self.transactions) if t.user_id == user_id]
        entries.sort(key=lambda pair: (pair[1].created_at, pair[0]), reverse=True)
        return [t for _, t in entries[:limit]]

    async def get_pricing(self) -> PricingTable:
        await self._io("get_pricing")
        return build_pricing_table(self.rates, self.default_rates, self.pricing_updated_at)

    # Outbox

    async def fetch_pending_notifications(self, limit: int = 50) -> List[OutboxNotification]:
        await self._io("fetch_pending_notifications")
        pending = [n for n in self.notifications.values() if n.status == OutboxStatus.PENDING]
        return sorted(pending, key=lambda n: n.created_at)[:limit]

    async def mark_notification_delivered(self, notification_id: str, delivered_at: datetime) -> None:
        await self._io("mark_notification_delivered")
        current = self.notifications[notification_id]
        self.notifications[notification_id] = current.model_copy(update={
            "status": OutboxStatus.DELIVERED,
            "delivered_at": delivered_at,
            "attempts": current.attempts + 1,
            "last_error": None,
        })

    async def mark_notification_attempt_failed(
        self, notification_id: str, error: str, max_attempts: int
    ) -> OutboxNotification:
        await self._io("mark_notification_attempt_failed")
        current = self.notifications.get(notification_id)
        if current is None:
            raise NotFoundError(f"Notification not found: {notification_id}")
        attempts = current.attempts + 1
        updated = current.model_copy(update={
            "attempts": attempts,
            "last_error": error,
            "status": OutboxStatus.FAILED if attempts >= max_attempts else current.status,
        })
        self.notifications[notification_id] = updated
        return updated

    # Seeding helpers

    def add_listing(self, listing: Listing) -> Listing:
        self.listings[listing.listing_id] = listing
        return listing

    def add_wallet(self, wallet: Wallet) -> Wallet:
        self.wallets[wallet.user_id] = wallet
        return wallet

    # Inspection helpers

    def transactions_for(self, user_id: str) -> List[WalletTransaction]:
        return [t for t in self.transactions if t.user_id == user_id]

    def notifications_for(self, user_id: str) -> List[OutboxNotification]:
        return [n for n in self.notifications.values() if n.user_id == user_id]

    def snapshot(self) -> Dict[str, Any]:
        """Comparable copy of all committed state"""
        return {
            "campaigns": {k: v.model_dump() for k, v in self.campaigns.items()},
            "listings": {k: v.model_dump() for k, v in self.listings.items()},
            "wallets": {k: v.model_dump() for k, v in self.wallets.items()},
            "transactions": [t.model_dump() for t in self.transactions],
            "notifications": {k: v.model_dump() for k, v in self.notifications.items()},
            "rates": dict(self.rates),
        }
