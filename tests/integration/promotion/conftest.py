"""
Integration Test Fixtures for Promotion Service

Runs the repository against a real PostgreSQL. Each test gets its own
schema, dropped afterwards. Tests are skipped when the database is not
reachable.

Requires: PostgreSQL (POSTGRES_HOST / POSTGRES_PORT / POSTGRES_USER /
POSTGRES_PASSWORD / POSTGRES_DB)
"""

import os
import sys
import uuid
from dataclasses import replace
from decimal import Decimal

import pytest
import pytest_asyncio

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../.."))

from core.config import InfraConfig, PromotionConfig
from core.postgres_client import PostgresClientWrapper
from microservices.promotion_service.ledger_engine import LedgerEngine
from microservices.promotion_service.promotion_repository import PromotionRepository
from microservices.promotion_service.protocols import StoreUnavailableError
from tests.contracts.promotion.data_contract import PromotionTestDataFactory


# ====================
# Test Configuration
# ====================


class IntegrationTestConfig:
    """Configuration for integration tests"""

    SCHEMA_PREFIX = "promotion_it"
    DB_TIMEOUT = 10


# ====================
# Database Fixtures
# ====================


@pytest_asyncio.fixture
async def repository():
    """PromotionRepository on a fresh schema"""
    schema = f"{IntegrationTestConfig.SCHEMA_PREFIX}_{uuid.uuid4().hex[:8]}"
    infra = replace(
        InfraConfig.from_env(),
        postgres_min_pool=1,
        postgres_max_pool=4,
        postgres_command_timeout=IntegrationTestConfig.DB_TIMEOUT,
    )
    db = PostgresClientWrapper("promotion_service_it", infra)
    repo = PromotionRepository(db, PromotionConfig(schema=schema))
    try:
        await repo.initialize()
    except StoreUnavailableError as e:
        await db.close()
        pytest.skip(f"PostgreSQL not available: {e}")

    yield repo

    await db.execute(f"DROP SCHEMA IF EXISTS {schema} CASCADE")
    await repo.close()


@pytest.fixture
def engine(repository) -> LedgerEngine:
    return LedgerEngine(store=repository)


@pytest_asyncio.fixture
async def seeded(repository):
    """Vendor wallet with 1000 and one active listing"""
    vendor_id = PromotionTestDataFactory.make_vendor_id()
    wallet = await repository.create_wallet(vendor_id, Decimal("1000"))
    listing = await repository.save_listing(
        PromotionTestDataFactory.make_listing(vendor_id=vendor_id, title="Suzuki Alto 2020")
    )
    return wallet, listing
