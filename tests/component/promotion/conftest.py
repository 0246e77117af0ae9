"""
Component Test Fixtures for Promotion Service

LedgerEngine and the APIs wired over the in-memory store, mock event bus
and mock notification sink. Uses PromotionTestDataFactory from the data
contract.
"""

from decimal import Decimal

import pytest

from microservices.promotion_service.events.publishers import PromotionEventPublisher
from microservices.promotion_service.ledger_engine import LedgerEngine
from microservices.promotion_service.outbox import NotificationOutboxRelay
from microservices.promotion_service.promotion_api import AdminPromotionAPI, VendorPromotionAPI
from tests.component.mocks import MockEntityStore, MockEventBus, MockNotificationSink
from tests.contracts.promotion.data_contract import PromotionTestDataFactory


@pytest.fixture
def publisher(mock_event_bus: MockEventBus) -> PromotionEventPublisher:
    return PromotionEventPublisher(mock_event_bus)


@pytest.fixture
def engine(mock_store: MockEntityStore, publisher: PromotionEventPublisher) -> LedgerEngine:
    return LedgerEngine(store=mock_store, event_publisher=publisher)


@pytest.fixture
def admin_api(engine: LedgerEngine) -> AdminPromotionAPI:
    return AdminPromotionAPI(engine)


@pytest.fixture
def vendor_api(engine: LedgerEngine) -> VendorPromotionAPI:
    return VendorPromotionAPI(engine)


@pytest.fixture
def relay(mock_store: MockEntityStore, mock_sink: MockNotificationSink) -> NotificationOutboxRelay:
    return NotificationOutboxRelay(
        store=mock_store,
        sink=mock_sink,
        batch_size=10,
        max_attempts=3,
        delivery_retries=2,
        retry_wait=0,
        poll_interval=0.01,
    )


@pytest.fixture
def vendor(mock_store: MockEntityStore):
    """Vendor with a 1000 balance wallet"""
    return mock_store.add_wallet(PromotionTestDataFactory.make_wallet(balance=Decimal("1000")))


@pytest.fixture
def listing(mock_store: MockEntityStore, vendor):
    """Active listing owned by the vendor"""
    return mock_store.add_listing(
        PromotionTestDataFactory.make_listing(vendor_id=vendor.user_id, title="Toyota Corolla 2018")
    )


@pytest.fixture
def create(engine: LedgerEngine, vendor, listing):
    """Create a featured_listing campaign for the seeded vendor and listing"""

    async def _create(duration_days: int = 5, campaign_type: str = "featured_listing", **kwargs):
        kwargs.setdefault("listing_id", listing.listing_id)
        return await engine.create_campaign(
            vendor_id=vendor.user_id,
            campaign_type=campaign_type,
            duration_days=duration_days,
            **kwargs,
        )

    return _create
