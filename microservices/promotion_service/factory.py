"""
Promotion Service Factory

Wires the store, event bus, notification client, ledger engine, APIs and
outbox relay with explicit dependency injection. The store handle lives
exactly as long as the factory: initialize() opens it and close() releases it.
"""

import logging
from typing import Optional

from core.config import LedgerSettings, get_settings
from core.nats_client import NATSEventBus
from core.postgres_client import PostgresClientWrapper

from .clients.notification_client import NotificationClient
from .events.publishers import PromotionEventPublisher
from .ledger_engine import LedgerEngine
from .outbox import NotificationOutboxRelay
from .promotion_api import AdminPromotionAPI, VendorPromotionAPI
from .promotion_repository import PromotionRepository
from .protocols import EntityStoreProtocol, EventBusProtocol, NotificationSinkProtocol

logger = logging.getLogger(__name__)


class PromotionServiceFactory:
    """Factory for creating promotion service components"""

    def __init__(
        self,
        settings: Optional[LedgerSettings] = None,
        store: Optional[EntityStoreProtocol] = None,
        notification_sink: Optional[NotificationSinkProtocol] = None,
        event_bus: Optional[EventBusProtocol] = None,
    ):
        self.settings = settings or get_settings()
        self._store = store
        self._notification_sink = notification_sink
        self._event_bus = event_bus
        self._owns_event_bus = False
        self._event_publisher: Optional[PromotionEventPublisher] = None
        self._engine: Optional[LedgerEngine] = None
        self._admin_api: Optional[AdminPromotionAPI] = None
        self._vendor_api: Optional[VendorPromotionAPI] = None
        self._relay: Optional[NotificationOutboxRelay] = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize all components"""
        if self._initialized:
            return
        logger.info("Initializing Promotion Service components...")
        promotion = self.settings.promotion
        infra = self.settings.infrastructure

        # Store (sole source of truth, no fallback)
        if self._store is None:
            self._store = PromotionRepository(
                PostgresClientWrapper("promotion_service", infra), promotion
            )
        await self._store.initialize()

        # Event bus is optional; ledger results never depend on it
        if self._event_bus is None and infra.nats_enabled:
            bus = NATSEventBus(service_name="promotion_service", servers=infra.nats_servers)
            try:
                await bus.connect()
                self._event_bus = bus
                self._owns_event_bus = True
                logger.info("NATS client connected")
            except Exception as e:
                logger.warning(f"NATS client initialization failed, events disabled: {e}")
        self._event_publisher = PromotionEventPublisher(self._event_bus)

        if self._notification_sink is None:
            self._notification_sink = NotificationClient(promotion)

        self._engine = LedgerEngine(store=self._store, event_publisher=self._event_publisher)
        self._admin_api = AdminPromotionAPI(self._engine)
        self._vendor_api = VendorPromotionAPI(self._engine)
        self._relay = NotificationOutboxRelay(
            store=self._store,
            sink=self._notification_sink,
            batch_size=promotion.outbox_batch_size,
            max_attempts=promotion.outbox_max_attempts,
            delivery_retries=promotion.delivery_retries,
            retry_wait=promotion.delivery_retry_wait,
            poll_interval=promotion.outbox_poll_interval,
        )

        self._initialized = True
        logger.info("Promotion Service components initialized")

    async def close(self) -> None:
        """Close all components"""
        logger.info("Closing Promotion Service components...")

        if self._relay and self._relay.is_running:
            await self._relay.stop()

        if self._owns_event_bus and self._event_bus is not None:
            await self._event_bus.close()
            self._event_bus = None
            self._owns_event_bus = False

        if self._store is not None and self._initialized:
            await self._store.close()

        self._initialized = False
        logger.info("Promotion Service components closed")

    async def __aenter__(self) -> "PromotionServiceFactory":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require(self, component):
        if not self._initialized or component is None:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return component

    @property
    def store(self) -> EntityStoreProtocol:
        """Get entity store"""
        return self._require(self._store)

    @property
    def engine(self) -> LedgerEngine:
        """Get ledger engine"""
        return self._require(self._engine)

    @property
    def admin_api(self) -> AdminPromotionAPI:
        return self._require(self._admin_api)

    @property
    def vendor_api(self) -> VendorPromotionAPI:
        return self._require(self._vendor_api)

    @property
    def relay(self) -> NotificationOutboxRelay:
        """Get notification outbox relay"""
        return self._require(self._relay)

    @property
    def event_publisher(self) -> Optional[PromotionEventPublisher]:
        return self._event_publisher

    async def health_check(self) -> dict:
        store_ok = await self.store.health_check()
        return {
            "status": "healthy" if store_ok else "unhealthy",
            "store": store_ok,
            "event_bus": bool(self._event_bus is not None and getattr(self._event_bus, "is_connected", True)),
            "outbox_relay": self._relay.is_running if self._relay else False,
        }


__all__ = ["PromotionServiceFactory"]
