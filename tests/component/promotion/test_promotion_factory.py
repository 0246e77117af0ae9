"""
Component Tests for PromotionServiceFactory and the outbox worker
"""

import asyncio
from dataclasses import replace

import pytest

from core.config import InfraConfig, LedgerSettings, PromotionConfig
from microservices.promotion_service.factory import PromotionServiceFactory
from microservices.promotion_service.worker import run_worker

pytestmark = [pytest.mark.component, pytest.mark.asyncio]


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(
        environment="testing",
        infrastructure=replace(InfraConfig(), nats_enabled=False),
        promotion=PromotionConfig(outbox_poll_interval=0.01, delivery_retry_wait=0),
    )


@pytest.fixture
def service_factory(settings, mock_store, mock_sink, mock_event_bus) -> PromotionServiceFactory:
    return PromotionServiceFactory(
        settings, store=mock_store, notification_sink=mock_sink, event_bus=mock_event_bus
    )


class TestLifecycle:

    async def test_components_require_initialize(self, service_factory):
        with pytest.raises(RuntimeError):
            _ = service_factory.engine
        with pytest.raises(RuntimeError):
            _ = service_factory.vendor_api

    async def test_initialize_and_close(self, service_factory, mock_store, mock_event_bus):
        await service_factory.initialize()
        assert mock_store.initialized
        assert service_factory.store is mock_store
        assert service_factory.event_publisher.event_bus is mock_event_bus

        await service_factory.close()
        assert mock_store.closed
        # injected bus belongs to the caller
        assert mock_event_bus.closed is False
        with pytest.raises(RuntimeError):
            _ = service_factory.admin_api

    async def test_context_manager(self, service_factory, mock_store):
        async with service_factory as f:
            assert f.relay is not None
        assert mock_store.closed

    async def test_health_check(self, service_factory, mock_store):
        async with service_factory as f:
            health = await f.health_check()
            assert health["status"] == "healthy"
            assert health["event_bus"] is True
            assert health["outbox_relay"] is False

            mock_store.available = False
            assert (await f.health_check())["status"] == "unhealthy"

    async def test_nats_disabled_without_bus(self, settings, mock_store, mock_sink):
        factory = PromotionServiceFactory(settings, store=mock_store, notification_sink=mock_sink)
        async with factory as f:
            assert f.event_publisher.event_bus is None
            assert (await f.health_check())["event_bus"] is False


class TestWiredFlow:

    async def test_end_to_end_through_factory(self, service_factory, mock_store, mock_sink, factory):
        wallet = mock_store.add_wallet(factory.make_wallet(balance="500"))
        listing = mock_store.add_listing(factory.make_listing(vendor_id=wallet.user_id, title="Honda Civic"))

        async with service_factory as f:
            created = await f.vendor_api.create_campaign(
                wallet.user_id, "featured_listing", 2, listing_id=listing.listing_id
            )
            assert created.success
            approved = await f.admin_api.approve(created.campaign.campaign_id)
            assert approved.success

            result = await f.relay.run_once()

        assert result["delivered"] == 1
        assert mock_sink.sent_to(wallet.user_id)[0]["title"] == "Ad Request Approved!"


class TestWorker:

    async def test_run_worker_stops_on_event(self, service_factory, mock_store):
        stop_event = asyncio.Event()
        stop_event.set()
        await run_worker(service_factory, stop_event)
        assert mock_store.closed

    async def test_run_worker_delivers_until_stopped(self, service_factory, mock_store, mock_sink, factory):
        notification = factory.make_notification(user_id="vnd_worker")
        mock_store.notifications[notification.notification_id] = notification
        stop_event = asyncio.Event()
        task = asyncio.create_task(run_worker(service_factory, stop_event))

        for _ in range(200):
            if mock_sink.sent:
                break
            await asyncio.sleep(0.01)
        stop_event.set()
        await asyncio.wait_for(task, timeout=2)

        assert [n["user_id"] for n in mock_sink.sent] == ["vnd_worker"]
        assert mock_store.closed
