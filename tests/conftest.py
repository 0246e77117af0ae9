"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers:
    - integration/: Repository tests against a real PostgreSQL (skipped when unavailable)
    - component/  : Ledger engine, APIs and relay over in-memory mocks
    - unit/       : Pure functions and models, no I/O
"""
import os
import sys

import pytest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

# Keep component and unit runs off real infrastructure
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("NATS_ENABLED", "false")

from tests.contracts.promotion.data_contract import PromotionTestDataFactory


# =============================================================================
# Test Data
# =============================================================================

@pytest.fixture
def factory() -> PromotionTestDataFactory:
    """Promotion test data factory"""
    return PromotionTestDataFactory()


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "component: Component tests")
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "requires_db: Needs a reachable PostgreSQL")


def pytest_collection_modifyitems(config, items):
    """Skip DB tests when explicitly disabled"""
    skip_db = pytest.mark.skip(reason="PostgreSQL tests disabled (SKIP_DB_TESTS)")
    for item in items:
        if "requires_db" in item.keywords and os.getenv("SKIP_DB_TESTS"):
            item.add_marker(skip_db)
