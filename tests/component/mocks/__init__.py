"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (database, NATS, HTTP).
"""

from .nats_mock import MockEventBus
from .notification_mock import MockNotificationSink
from .store_mock import MockEntityStore, MockUnitOfWork

__all__ = [
    'MockEntityStore',
    'MockUnitOfWork',
    'MockEventBus',
    'MockNotificationSink',
]
