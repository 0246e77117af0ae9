"""
Promotion Ledger Engine

Applies campaign lifecycle transitions together with their listing and
wallet effects as one store transaction:

- create_campaign: debit wallet, append promotion entry, insert pending campaign
- approve: activate campaign, promote listing, queue success notification
- reject: refund total cost, clear listing, queue error notification
- stop: complete campaign, clear listing (no refund)
- toggle_pause / toggle_priority / record_performance
- set_pricing

Notifications are written to the outbox inside the same transaction and
delivered later by the outbox relay. Domain events are published after
commit and never affect the result.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Tuple

from .events.models import PromotionEventType
from .events.publishers import PromotionEventPublisher
from .locks import KeyedLock, campaign_key, listing_key, wallet_key
from .models import (
    Campaign,
    CampaignGoal,
    CampaignPriority,
    CampaignQuote,
    CampaignStatus,
    CampaignType,
    Listing,
    NotificationKind,
    OutboxNotification,
    PricingTable,
    TransactionType,
    Wallet,
    WalletTransaction,
    utcnow,
)
from .pricing import parse_campaign_type, validate_rate
from .protocols import (
    EntityStoreProtocol,
    InsufficientFundsError,
    InvalidInputError,
    InvalidStateError,
    LedgerUnitOfWorkProtocol,
    NotFoundError,
    PromotionLedgerError,
)

logger = logging.getLogger(__name__)


class LedgerEngine:
    """Atomic, invariant-preserving campaign/listing/wallet transitions"""

    # Valid state transitions
    VALID_TRANSITIONS = {
        CampaignStatus.PENDING_APPROVAL: [CampaignStatus.ACTIVE, CampaignStatus.REJECTED],
        CampaignStatus.ACTIVE: [CampaignStatus.PAUSED, CampaignStatus.COMPLETED],
        CampaignStatus.PAUSED: [CampaignStatus.ACTIVE, CampaignStatus.COMPLETED],
        CampaignStatus.REJECTED: [],  # Terminal state
        CampaignStatus.COMPLETED: [],  # Terminal state
    }

    APPROVED_TITLE = "Ad Request Approved!"
    REJECTED_TITLE = "Ad Request Rejected"

    def __init__(
        self,
        store: EntityStoreProtocol,
        event_publisher: Optional[PromotionEventPublisher] = None,
        locks: Optional[KeyedLock] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.event_publisher = event_publisher
        self.locks = locks or KeyedLock()
        self.clock = clock

    # ====================
    # State machine helpers
    # ====================

    @classmethod
    def can_transition(cls, from_status: CampaignStatus, to_status: CampaignStatus) -> bool:
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def is_terminal(cls, status: CampaignStatus) -> bool:
        return not cls.VALID_TRANSITIONS.get(status)

    def _check_transition(
        self,
        campaign: Campaign,
        target: CampaignStatus,
        allowed_from: Iterable[CampaignStatus],
        operation: str,
    ) -> None:
        allowed = set(allowed_from)
        if campaign.status not in allowed or not self.can_transition(campaign.status, target):
            expected = ", ".join(sorted(s.value for s in allowed))
            raise InvalidStateError(
                f"Cannot {operation} campaign {campaign.campaign_id} in status "
                f"'{campaign.status.value}' (requires {expected})",
                campaign_id=campaign.campaign_id,
                status=campaign.status.value,
            )

    # ====================
    # Plumbing
    # ====================

    @asynccontextmanager
    async def _unit_of_work(self, operation: str) -> AsyncIterator[LedgerUnitOfWorkProtocol]:
        try:
            async with self.store.transaction() as uow:
                yield uow
        except PromotionLedgerError as e:
            logger.warning(f"{operation} rolled back ({e.kind.value}): {e.message}")
            raise

    @staticmethod
    def _require_text(value: Optional[str], field: str) -> str:
        if value is None or not str(value).strip():
            raise InvalidInputError(f"{field} is required")
        return str(value).strip()

    @staticmethod
    def _require_count(value: int, field: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidInputError(f"{field} must be a non-negative integer, got {value!r}")
        return value

    async def _snapshot(self, campaign_id: str) -> Campaign:
        """Unlocked read used to learn which listing and wallet to lock"""
        campaign = await self.store.get_campaign(campaign_id)
        if campaign is None:
            raise NotFoundError(f"Campaign not found: {campaign_id}", campaign_id=campaign_id)
        return campaign

    @staticmethod
    async def _load_campaign(uow: LedgerUnitOfWorkProtocol, campaign_id: str) -> Campaign:
        campaign = await uow.get_campaign(campaign_id, lock=True)
        if campaign is None:
            raise NotFoundError(f"Campaign not found: {campaign_id}", campaign_id=campaign_id)
        return campaign

    @staticmethod
    async def _release_listing(uow: LedgerUnitOfWorkProtocol, campaign: Campaign) -> Optional[Listing]:
        """Clear promotion flags only when they point at this campaign"""
        if not campaign.listing_id:
            return None
        listing = await uow.get_listing(campaign.listing_id, lock=True)
        if listing is None or listing.active_campaign_id != campaign.campaign_id:
            return listing
        return await uow.set_listing_promotion(campaign.listing_id, False, None)

    @staticmethod
    async def _claim_listing(uow: LedgerUnitOfWorkProtocol, campaign: Campaign) -> Optional[Listing]:
        """Point the listing at this campaign; one active campaign per listing"""
        if not campaign.listing_id:
            return None
        listing = await uow.get_listing(campaign.listing_id, lock=True)
        if listing is None:
            raise NotFoundError(f"Listing not found: {campaign.listing_id}", listing_id=campaign.listing_id)
        if listing.active_campaign_id and listing.active_campaign_id != campaign.campaign_id:
            raise InvalidStateError(
                f"Listing {listing.listing_id} already has active campaign {listing.active_campaign_id}",
                listing_id=listing.listing_id,
                active_campaign_id=listing.active_campaign_id,
            )
        return await uow.set_listing_promotion(campaign.listing_id, True, campaign.campaign_id)

    async def _publish_campaign(self, event_type, campaign, previous_status=None, reason=None):
        if self.event_publisher:
            await self.event_publisher.publish_campaign_event(event_type, campaign, previous_status, reason)

    async def _publish_wallet(self, event_type, transaction, wallet):
        if self.event_publisher:
            await self.event_publisher.publish_wallet_movement(event_type, transaction, wallet.balance)

    # ====================
    # Vendor operations
    # ====================

    async def create_campaign(
        self,
        vendor_id: str,
        campaign_type: CampaignType,
        duration_days: int,
        listing_id: Optional[str] = None,
        goal: CampaignGoal = CampaignGoal.TRAFFIC,
        target_location: Optional[str] = None,
    ) -> Campaign:
        """
        Create a campaign in pending_approval and pre-pay it from the wallet.

        Raises:
            InvalidInputError: bad type/duration/goal, or listing owned by another vendor
            NotFoundError: wallet or listing missing
            InvalidStateError: listing not active or already promoted
            InsufficientFundsError: balance below total cost
            StoreUnavailableError: store failure, nothing applied
        """
        vendor_id = self._require_text(vendor_id, "vendor_id")
        campaign_type = parse_campaign_type(campaign_type)
        if isinstance(duration_days, bool) or not isinstance(duration_days, int) or duration_days < 1:
            raise InvalidInputError(f"duration_days must be a positive integer, got {duration_days!r}")
        try:
            goal = CampaignGoal(goal)
        except ValueError:
            raise InvalidInputError(f"Unknown campaign goal '{goal}'")
        if listing_id is not None:
            listing_id = self._require_text(listing_id, "listing_id")

        async with self.locks.hold(wallet_key(vendor_id), listing_key(listing_id)):
            async with self._unit_of_work("create_campaign") as uow:
                wallet = await uow.get_wallet(vendor_id, lock=True)
                if wallet is None:
                    raise NotFoundError(f"Wallet not found for vendor {vendor_id}", vendor_id=vendor_id)

                listing = None
                if listing_id:
                    listing = await uow.get_listing(listing_id, lock=True)
                    if listing is None:
                        raise NotFoundError(f"Listing not found: {listing_id}", listing_id=listing_id)
                    if listing.vendor_id != vendor_id:
                        raise InvalidInputError(
                            f"Listing {listing_id} does not belong to vendor {vendor_id}",
                            listing_id=listing_id,
                        )
                    if listing.status != "active":
                        raise InvalidStateError(
                            f"Listing {listing_id} is not active (status '{listing.status}')",
                            listing_id=listing_id,
                        )
                    if listing.active_campaign_id:
                        raise InvalidStateError(
                            f"Listing {listing_id} already has active campaign {listing.active_campaign_id}",
                            listing_id=listing_id,
                            active_campaign_id=listing.active_campaign_id,
                        )

                pricing = await uow.get_pricing()
                daily_rate = pricing.rate_for(campaign_type)
                total_cost = pricing.total_cost(campaign_type, duration_days)
                if wallet.balance < total_cost:
                    raise InsufficientFundsError(
                        f"Insufficient balance: {wallet.balance} available, {total_cost} required",
                        balance=str(wallet.balance),
                        required=str(total_cost),
                    )

                now = self.clock()
                campaign = await uow.insert_campaign(
                    Campaign(
                        vendor_id=vendor_id,
                        listing_id=listing_id,
                        listing_title=listing.title if listing else None,
                        listing_image=listing.image_url if listing else None,
                        campaign_type=campaign_type,
                        goal=goal,
                        target_location=target_location or "All Pakistan",
                        status=CampaignStatus.PENDING_APPROVAL,
                        duration_days=duration_days,
                        daily_rate=daily_rate,
                        total_cost=total_cost,
                        created_at=now,
                        updated_at=now,
                    )
                )
                wallet = await uow.adjust_wallet(vendor_id, -total_cost, total_cost)
                transaction = await uow.append_transaction(
                    WalletTransaction(
                        transaction_id=f"tx_ad_{uuid.uuid4().hex[:16]}",
                        user_id=vendor_id,
                        transaction_type=TransactionType.PROMOTION,
                        amount=total_cost,
                        description=f"Promo: {campaign_type.value}",
                        reference_id=campaign.campaign_id,
                        created_at=now,
                    )
                )

        logger.info(
            f"Campaign created: {campaign.campaign_id} vendor={vendor_id} "
            f"type={campaign_type.value} cost={total_cost} balance_after={wallet.balance}"
        )
        await self._publish_campaign(PromotionEventType.CAMPAIGN_CREATED, campaign)
        await self._publish_wallet(PromotionEventType.WALLET_DEBITED, transaction, wallet)
        return campaign

    async def toggle_pause(self, campaign_id: str, vendor_id: Optional[str] = None) -> Campaign:
        """Pause an active campaign or resume a paused one"""
        campaign_id = self._require_text(campaign_id, "campaign_id")
        snapshot = await self._snapshot(campaign_id)
        if vendor_id is not None and snapshot.vendor_id != vendor_id:
            raise NotFoundError(f"Campaign not found: {campaign_id}", campaign_id=campaign_id)

        async with self.locks.hold(campaign_key(campaign_id), listing_key(snapshot.listing_id)):
            async with self._unit_of_work("toggle_pause") as uow:
                campaign = await self._load_campaign(uow, campaign_id)
                previous = campaign.status
                if previous == CampaignStatus.ACTIVE:
                    target = CampaignStatus.PAUSED
                else:
                    target = CampaignStatus.ACTIVE
                    self._check_transition(campaign, target, [CampaignStatus.PAUSED], "resume")

                updated = await uow.update_campaign(
                    campaign_id, campaign.version, {"status": target, "updated_at": self.clock()}
                )
                if target == CampaignStatus.PAUSED:
                    await self._release_listing(uow, campaign)
                else:
                    await self._claim_listing(uow, campaign)

        logger.info(f"Campaign {campaign_id} {previous.value} -> {target.value}")
        event_type = (
            PromotionEventType.CAMPAIGN_PAUSED
            if target == CampaignStatus.PAUSED
            else PromotionEventType.CAMPAIGN_RESUMED
        )
        await self._publish_campaign(event_type, updated, previous)
        return updated

    # ====================
    # Admin operations
    # ====================

    async def approve(self, campaign_id: str) -> Campaign:
        """
        Activate a pending campaign.

        Consuming transition: a second approve fails with InvalidStateError.
        """
        campaign_id = self._require_text(campaign_id, "campaign_id")
        snapshot = await self._snapshot(campaign_id)

        async with self.locks.hold(campaign_key(campaign_id), listing_key(snapshot.listing_id)):
            async with self._unit_of_work("approve") as uow:
                campaign = await self._load_campaign(uow, campaign_id)
                self._check_transition(
                    campaign, CampaignStatus.ACTIVE, [CampaignStatus.PENDING_APPROVAL], "approve"
                )
                await self._claim_listing(uow, campaign)

                now = self.clock()
                updated = await uow.update_campaign(
                    campaign_id,
                    campaign.version,
                    {
                        "status": CampaignStatus.ACTIVE,
                        "start_date": now,
                        "end_date": now + timedelta(days=campaign.duration_days),
                        "priority": CampaignPriority.NORMAL,
                        "updated_at": now,
                    },
                )
                subject = campaign.listing_title or campaign.campaign_type.value.replace("_", " ")
                await uow.enqueue_notification(
                    OutboxNotification(
                        user_id=campaign.vendor_id,
                        title=self.APPROVED_TITLE,
                        message=f'Your request to feature "{subject}" has been approved.',
                        kind=NotificationKind.SUCCESS,
                        link="vendor-dashboard",
                        created_at=now,
                    )
                )

        logger.info(f"Campaign approved: {campaign_id} listing={campaign.listing_id}")
        await self._publish_campaign(
            PromotionEventType.CAMPAIGN_APPROVED, updated, CampaignStatus.PENDING_APPROVAL
        )
        return updated

    async def reject(self, campaign_id: str, reason: str) -> Campaign:
        """
        Reject a pending campaign and refund its full total cost.

        The refund is exactly total_cost; the pending_approval precondition
        makes a repeated reject fail instead of refunding twice.
        """
        campaign_id = self._require_text(campaign_id, "campaign_id")
        reason = self._require_text(reason, "reason")
        snapshot = await self._snapshot(campaign_id)

        async with self.locks.hold(
            campaign_key(campaign_id), listing_key(snapshot.listing_id), wallet_key(snapshot.vendor_id)
        ):
            async with self._unit_of_work("reject") as uow:
                campaign = await self._load_campaign(uow, campaign_id)
                self._check_transition(
                    campaign, CampaignStatus.REJECTED, [CampaignStatus.PENDING_APPROVAL], "reject"
                )
                wallet = await uow.get_wallet(campaign.vendor_id, lock=True)
                if wallet is None:
                    raise NotFoundError(
                        f"Wallet not found for vendor {campaign.vendor_id}", vendor_id=campaign.vendor_id
                    )

                refund = campaign.total_cost
                spend_delta = -min(wallet.total_spend, refund)
                if wallet.total_spend < refund:
                    logger.warning(
                        f"total_spend for {campaign.vendor_id} ({wallet.total_spend}) below refund "
                        f"{refund} on {campaign_id}; clamping at zero"
                    )

                now = self.clock()
                updated = await uow.update_campaign(
                    campaign_id, campaign.version, {"status": CampaignStatus.REJECTED, "updated_at": now}
                )
                await self._release_listing(uow, campaign)
                wallet = await uow.adjust_wallet(campaign.vendor_id, refund, spend_delta)
                transaction = await uow.append_transaction(
                    WalletTransaction(
                        transaction_id=f"tx_refund_{uuid.uuid4().hex[:16]}",
                        user_id=campaign.vendor_id,
                        transaction_type=TransactionType.ADJUSTMENT,
                        amount=refund,
                        description=f"Refund: Ad Rejected - {reason}",
                        reference_id=campaign_id,
                        created_at=now,
                    )
                )
                await uow.enqueue_notification(
                    OutboxNotification(
                        user_id=campaign.vendor_id,
                        title=self.REJECTED_TITLE,
                        message=f"Ad rejected. Reason: {reason}. Funds refunded.",
                        kind=NotificationKind.ERROR,
                        link="wallet-history",
                        created_at=now,
                    )
                )

        logger.info(f"Campaign rejected: {campaign_id} refund={refund} balance_after={wallet.balance}")
        await self._publish_campaign(
            PromotionEventType.CAMPAIGN_REJECTED, updated, CampaignStatus.PENDING_APPROVAL, reason
        )
        await self._publish_wallet(PromotionEventType.WALLET_REFUNDED, transaction, wallet)
        return updated

    async def stop(self, campaign_id: str) -> Campaign:
        """Complete an active or paused campaign. No refund."""
        campaign_id = self._require_text(campaign_id, "campaign_id")
        snapshot = await self._snapshot(campaign_id)

        async with self.locks.hold(campaign_key(campaign_id), listing_key(snapshot.listing_id)):
            async with self._unit_of_work("stop") as uow:
                campaign = await self._load_campaign(uow, campaign_id)
                previous = campaign.status
                self._check_transition(
                    campaign, CampaignStatus.COMPLETED, [CampaignStatus.ACTIVE, CampaignStatus.PAUSED], "stop"
                )
                updated = await uow.update_campaign(
                    campaign_id, campaign.version, {"status": CampaignStatus.COMPLETED, "updated_at": self.clock()}
                )
                await self._release_listing(uow, campaign)

        logger.info(f"Campaign stopped: {campaign_id}")
        await self._publish_campaign(PromotionEventType.CAMPAIGN_STOPPED, updated, previous)
        return updated

    async def toggle_priority(self, campaign_id: str) -> Campaign:
        """Flip normal/high on an active campaign"""
        campaign_id = self._require_text(campaign_id, "campaign_id")

        async with self.locks.hold(campaign_key(campaign_id)):
            async with self._unit_of_work("toggle_priority") as uow:
                campaign = await self._load_campaign(uow, campaign_id)
                if campaign.status != CampaignStatus.ACTIVE:
                    raise InvalidStateError(
                        f"Priority can only change while active (status '{campaign.status.value}')",
                        campaign_id=campaign_id,
                    )
                priority = (
                    CampaignPriority.NORMAL
                    if campaign.priority == CampaignPriority.HIGH
                    else CampaignPriority.HIGH
                )
                updated = await uow.update_campaign(
                    campaign_id, campaign.version, {"priority": priority, "updated_at": self.clock()}
                )

        logger.info(f"Campaign {campaign_id} priority -> {priority.value}")
        await self._publish_campaign(PromotionEventType.CAMPAIGN_PRIORITY_CHANGED, updated)
        return updated

    async def record_performance(
        self,
        campaign_id: str,
        impressions: int = 0,
        clicks: int = 0,
        conversions: int = 0,
    ) -> Campaign:
        """Add delivery counters to an active campaign"""
        campaign_id = self._require_text(campaign_id, "campaign_id")
        impressions = self._require_count(impressions, "impressions")
        clicks = self._require_count(clicks, "clicks")
        conversions = self._require_count(conversions, "conversions")

        async with self.locks.hold(campaign_key(campaign_id)):
            async with self._unit_of_work("record_performance") as uow:
                campaign = await self._load_campaign(uow, campaign_id)
                if campaign.status != CampaignStatus.ACTIVE:
                    raise InvalidStateError(
                        f"Performance is only recorded while active (status '{campaign.status.value}')",
                        campaign_id=campaign_id,
                    )
                updated = await uow.increment_campaign_metrics(campaign_id, impressions, clicks, conversions)

        logger.debug(
            f"Campaign {campaign_id} metrics +{impressions} impressions +{clicks} clicks +{conversions} conversions"
        )
        return updated

    async def set_pricing(self, campaign_type: CampaignType, daily_rate: Decimal) -> PricingTable:
        """Update a daily rate; existing campaigns keep their frozen total_cost"""
        campaign_type = parse_campaign_type(campaign_type)
        daily_rate = validate_rate(daily_rate)

        async with self._unit_of_work("set_pricing") as uow:
            await uow.upsert_rate(campaign_type, daily_rate)
            pricing = await uow.get_pricing()

        logger.info(f"Ad pricing updated: {campaign_type.value} = {daily_rate}/day")
        if self.event_publisher:
            await self.event_publisher.publish_pricing_updated(campaign_type, daily_rate)
        return pricing

    # ====================
    # Reads
    # ====================

    async def get_campaign(self, campaign_id: str) -> Campaign:
        return await self._snapshot(self._require_text(campaign_id, "campaign_id"))

    async def list_campaigns(
        self,
        vendor_id: Optional[str] = None,
        statuses: Optional[List[CampaignStatus]] = None,
    ) -> List[Campaign]:
        return await self.store.list_campaigns(vendor_id=vendor_id, statuses=statuses)

    async def get_pricing(self) -> PricingTable:
        return await self.store.get_pricing()

    async def get_wallet(self, user_id: str) -> Wallet:
        user_id = self._require_text(user_id, "user_id")
        wallet = await self.store.get_wallet(user_id)
        if wallet is None:
            raise NotFoundError(f"Wallet not found for vendor {user_id}", vendor_id=user_id)
        return wallet

    async def get_wallet_history(self, user_id: str, limit: int = 100) -> List[WalletTransaction]:
        user_id = self._require_text(user_id, "user_id")
        return await self.store.get_wallet_history(user_id, limit=limit)

    async def quote(self, vendor_id: str, campaign_type: CampaignType, duration_days: int) -> CampaignQuote:
        """Price a campaign against the current wallet without reserving anything"""
        campaign_type = parse_campaign_type(campaign_type)
        if isinstance(duration_days, bool) or not isinstance(duration_days, int) or duration_days < 1:
            raise InvalidInputError(f"duration_days must be a positive integer, got {duration_days!r}")
        wallet = await self.get_wallet(vendor_id)
        pricing = await self.store.get_pricing()
        total_cost = pricing.total_cost(campaign_type, duration_days)
        return CampaignQuote(
            campaign_type=campaign_type,
            duration_days=duration_days,
            daily_rate=pricing.rate_for(campaign_type),
            total_cost=total_cost,
            balance=wallet.balance,
            can_afford=wallet.balance >= total_cost,
        )
