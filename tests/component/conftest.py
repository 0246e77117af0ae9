"""
Component Test Layer Configuration

Structure:
    tests/component/
    ├── promotion/   Ledger engine, APIs, relay, publishers
    └── mocks/       Mock implementations

Usage:
    pytest tests/component -v
"""
import os
import sys

import pytest

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"
os.environ["NATS_ENABLED"] = "false"

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from tests.component.mocks import (
    MockEntityStore,
    MockEventBus,
    MockNotificationSink,
)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "component: marks tests as component tests"
    )


# =============================================================================
# Infrastructure Mocks
# =============================================================================

@pytest.fixture
def mock_store() -> MockEntityStore:
    """In-memory entity store"""
    return MockEntityStore()


@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()


@pytest.fixture
def mock_sink() -> MockNotificationSink:
    """Mock notification_service"""
    return MockNotificationSink()
