"""
Promotion Repository Implementation

PostgreSQL entity store for campaigns, listings, wallets, ledger entries,
ad pricing and the notification outbox.

Every ledger operation runs inside one asyncpg transaction. Rows read for
update are locked with SELECT ... FOR UPDATE, campaign updates are guarded
by the version column and wallet amounts change through SQL increments.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg

from core.config import PromotionConfig
from core.postgres_client import PostgresClientWrapper

from .models import (
    Campaign,
    CampaignStatus,
    CampaignType,
    Listing,
    OutboxNotification,
    OutboxStatus,
    PricingTable,
    Wallet,
    WalletTransaction,
    utcnow,
)
from .pricing import build_pricing_table
from .protocols import (
    ConcurrentModificationError,
    InsufficientFundsError,
    NotFoundError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

BALANCE_CONSTRAINT = "wallets_balance_non_negative"

# Columns the engine may change through update_campaign
UPDATABLE_CAMPAIGN_COLUMNS = frozenset(
    {"status", "priority", "start_date", "end_date", "updated_at"}
)

STORE_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


def _db_value(value: Any) -> Any:
    """Enums are stored by value"""
    return getattr(value, "value", value)


@asynccontextmanager
async def _store_errors(operation: str) -> AsyncIterator[None]:
    """Translate driver failures into ledger errors"""
    try:
        yield
    except asyncpg.CheckViolationError as e:
        if e.constraint_name == BALANCE_CONSTRAINT:
            raise InsufficientFundsError("Wallet balance would become negative") from e
        logger.error(f"{operation} violated constraint {e.constraint_name}: {e}")
        raise StoreUnavailableError(f"{operation} failed: {e}") from e
    except asyncpg.SerializationError as e:
        logger.warning(f"{operation} lost a serialization race: {e}")
        raise StoreUnavailableError(f"{operation} conflicted with a concurrent update") from e
    except STORE_ERRORS as e:
        logger.error(f"{operation} failed: {e}")
        raise StoreUnavailableError(f"Store unavailable during {operation}: {e}") from e


class PostgresUnitOfWork:
    """Statements bound to one connection inside an open transaction"""

    def __init__(self, conn: asyncpg.Connection, schema: str, default_rates: Dict[str, Decimal]):
        self.conn = conn
        self.schema = schema
        self.default_rates = default_rates

    def _t(self, table: str) -> str:
        return f"{self.schema}.{table}"

    # ====================
    # Reads
    # ====================

    async def get_campaign(self, campaign_id: str, lock: bool = True) -> Optional[Campaign]:
        query = f"SELECT * FROM {self._t('campaigns')} WHERE campaign_id = $1"
        if lock:
            query += " FOR UPDATE"
        row = await self.conn.fetchrow(query, campaign_id)
        return PromotionRepository._row_to_campaign(row) if row else None

    async def get_listing(self, listing_id: str, lock: bool = True) -> Optional[Listing]:
        query = f"SELECT * FROM {self._t('listings')} WHERE listing_id = $1"
        if lock:
            query += " FOR UPDATE"
        row = await self.conn.fetchrow(query, listing_id)
        return Listing.model_validate(dict(row)) if row else None

    async def get_wallet(self, user_id: str, lock: bool = True) -> Optional[Wallet]:
        query = f"SELECT * FROM {self._t('wallets')} WHERE user_id = $1"
        if lock:
            query += " FOR UPDATE"
        row = await self.conn.fetchrow(query, user_id)
        return Wallet.model_validate(dict(row)) if row else None

    async def get_pricing(self) -> PricingTable:
        rows = await self.conn.fetch(
            f"SELECT campaign_type, daily_rate, updated_at FROM {self._t('ad_pricing')}"
        )
        return PromotionRepository._rows_to_pricing(rows, self.default_rates)

    # ====================
    # Writes
    # ====================

    async def insert_campaign(self, campaign: Campaign) -> Campaign:
        row = await self.conn.fetchrow(
            f"""
            INSERT INTO {self._t('campaigns')} (
                campaign_id, vendor_id, listing_id, listing_title, listing_image,
                campaign_type, goal, target_location, status, priority,
                duration_days, daily_rate, total_cost, start_date, end_date,
                impressions, clicks, conversions, version, created_at, updated_at
            ) VALUES (
                $1, $2, $3, $4, $5, $6, $7, $8, $9, $10,
                $11, $12, $13, $14, $15, $16, $17, $18, $19, $20, $21
            )
            RETURNING *
            """,
            campaign.campaign_id, campaign.vendor_id, campaign.listing_id,
            campaign.listing_title, campaign.listing_image,
            campaign.campaign_type.value, campaign.goal.value, campaign.target_location,
            campaign.status.value, campaign.priority.value,
            campaign.duration_days, campaign.daily_rate, campaign.total_cost,
            campaign.start_date, campaign.end_date,
            campaign.impressions, campaign.clicks, campaign.conversions,
            campaign.version, campaign.created_at, campaign.updated_at,
        )
        return PromotionRepository._row_to_campaign(row)

    async def update_campaign(
        self, campaign_id: str, expected_version: int, updates: Dict[str, Any]
    ) -> Campaign:
        unknown = set(updates) - UPDATABLE_CAMPAIGN_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update campaign columns: {sorted(unknown)}")

        columns = list(updates)
        assignments = [f"{col} = ${i}" for i, col in enumerate(columns, start=3)]
        assignments.append("version = version + 1")
        row = await self.conn.fetchrow(
            f"""
            UPDATE {self._t('campaigns')}
            SET {', '.join(assignments)}
            WHERE campaign_id = $1 AND version = $2
            RETURNING *
            """,
            campaign_id, expected_version, *[_db_value(updates[c]) for c in columns],
        )
        if row is None:
            raise ConcurrentModificationError(
                f"Campaign {campaign_id} changed concurrently (expected version {expected_version})",
                campaign_id=campaign_id,
            )
        return PromotionRepository._row_to_campaign(row)

    async def increment_campaign_metrics(
        self, campaign_id: str, impressions: int, clicks: int, conversions: int
    ) -> Campaign:
        row = await self.conn.fetchrow(
            f"""
            UPDATE {self._t('campaigns')}
            SET impressions = impressions + $2,
                clicks = clicks + $3,
                conversions = conversions + $4,
                version = version + 1,
                updated_at = NOW()
            WHERE campaign_id = $1
            RETURNING *
            """,
            campaign_id, impressions, clicks, conversions,
        )
        if row is None:
            raise NotFoundError(f"Campaign not found: {campaign_id}", campaign_id=campaign_id)
        return PromotionRepository._row_to_campaign(row)

    async def set_listing_promotion(
        self, listing_id: str, is_promoted: bool, active_campaign_id: Optional[str]
    ) -> Listing:
        row = await self.conn.fetchrow(
            f"""
            UPDATE {self._t('listings')}
            SET is_promoted = $2, active_campaign_id = $3, updated_at = NOW()
            WHERE listing_id = $1
            RETURNING *
            """,
            listing_id, is_promoted, active_campaign_id,
        )
        if row is None:
            raise NotFoundError(f"Listing not found: {listing_id}", listing_id=listing_id)
        return Listing.model_validate(dict(row))

    async def adjust_wallet(self, user_id: str, balance_delta: Decimal, spend_delta: Decimal) -> Wallet:
        row = await self.conn.fetchrow(
            f"""
            UPDATE {self._t('wallets')}
            SET balance = balance + $2,
                total_spend = total_spend + $3,
                updated_at = NOW()
            WHERE user_id = $1
            RETURNING *
            """,
            user_id, balance_delta, spend_delta,
        )
        if row is None:
            raise NotFoundError(f"Wallet not found for vendor {user_id}", vendor_id=user_id)
        return Wallet.model_validate(dict(row))

    async def append_transaction(self, transaction: WalletTransaction) -> WalletTransaction:
        row = await self.conn.fetchrow(
            f"""
            INSERT INTO {self._t('wallet_transactions')} (
                transaction_id, user_id, transaction_type, amount, status,
                description, reference_id, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING *
            """,
            transaction.transaction_id, transaction.user_id,
            transaction.transaction_type.value, transaction.amount, transaction.status.value,
            transaction.description, transaction.reference_id, transaction.created_at,
        )
        return WalletTransaction.model_validate(dict(row))

    async def enqueue_notification(self, notification: OutboxNotification) -> OutboxNotification:
        row = await self.conn.fetchrow(
            f"""
            INSERT INTO {self._t('notification_outbox')} (
                notification_id, user_id, title, message, kind, link,
                status, attempts, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING *
            """,
            notification.notification_id, notification.user_id, notification.title,
            notification.message, notification.kind.value, notification.link,
            notification.status.value, notification.attempts, notification.created_at,
        )
        return OutboxNotification.model_validate(dict(row))

    async def upsert_rate(self, campaign_type: CampaignType, daily_rate: Decimal) -> None:
        await self.conn.execute(
            f"""
            INSERT INTO {self._t('ad_pricing')} (campaign_type, daily_rate, updated_at)
            VALUES ($1, $2, NOW())
            ON CONFLICT (campaign_type)
            DO UPDATE SET daily_rate = EXCLUDED.daily_rate, updated_at = EXCLUDED.updated_at
            """,
            campaign_type.value, daily_rate,
        )


class PromotionRepository:
    """Repository for promotion ledger operations"""

    def __init__(self, db: PostgresClientWrapper, config: Optional[PromotionConfig] = None):
        self.db = db
        self.config = config or PromotionConfig.from_env()
        self.schema = self.config.schema
        self._schema_initialized = False

        logger.info(f"PromotionRepository initialized (schema={self.schema})")

    # ====================
    # Lifecycle
    # ====================

    async def initialize(self) -> None:
        async with _store_errors("initialize"):
            await self.db.initialize()
            await self.ensure_schema()

    async def close(self) -> None:
        await self.db.close()

    async def health_check(self) -> bool:
        return await self.db.health_check()

    async def ensure_schema(self) -> None:
        """Create the schema and tables if missing"""
        if self._schema_initialized:
            return

        s = self.schema
        statements = [
            f"CREATE SCHEMA IF NOT EXISTS {s}",
            f"""
            CREATE TABLE IF NOT EXISTS {s}.listings (
                listing_id TEXT PRIMARY KEY,
                vendor_id TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                image_url TEXT,
                status TEXT NOT NULL DEFAULT 'active',
                is_promoted BOOLEAN NOT NULL DEFAULT FALSE,
                active_campaign_id TEXT,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,
            f"""
            CREATE TABLE IF NOT EXISTS {s}.wallets (
                user_id TEXT PRIMARY KEY,
                balance NUMERIC(14, 2) NOT NULL DEFAULT 0,
                total_spend NUMERIC(14, 2) NOT NULL DEFAULT 0,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                CONSTRAINT {BALANCE_CONSTRAINT} CHECK (balance >= 0),
                CONSTRAINT wallets_total_spend_non_negative CHECK (total_spend >= 0)
            )
            """,
            f"""
            CREATE TABLE IF NOT EXISTS {s}.campaigns (
                campaign_id TEXT PRIMARY KEY,
                vendor_id TEXT NOT NULL,
                listing_id TEXT REFERENCES {s}.listings(listing_id),
                listing_title TEXT,
                listing_image TEXT,
                campaign_type TEXT NOT NULL,
                goal TEXT NOT NULL DEFAULT 'traffic',
                target_location TEXT NOT NULL DEFAULT 'All Pakistan',
                status TEXT NOT NULL,
                priority TEXT NOT NULL DEFAULT 'normal',
                duration_days INTEGER NOT NULL CHECK (duration_days >= 1),
                daily_rate NUMERIC(14, 2) NOT NULL CHECK (daily_rate > 0),
                total_cost NUMERIC(14, 2) NOT NULL CHECK (total_cost >= 0),
                start_date TIMESTAMPTZ,
                end_date TIMESTAMPTZ,
                impressions BIGINT NOT NULL DEFAULT 0,
                clicks BIGINT NOT NULL DEFAULT 0,
                conversions BIGINT NOT NULL DEFAULT 0,
                version INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,
            f"CREATE INDEX IF NOT EXISTS idx_campaigns_vendor ON {s}.campaigns(vendor_id)",
            f"CREATE INDEX IF NOT EXISTS idx_campaigns_status ON {s}.campaigns(status)",
            f"""
            CREATE TABLE IF NOT EXISTS {s}.wallet_transactions (
                transaction_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES {s}.wallets(user_id),
                transaction_type TEXT NOT NULL,
                amount NUMERIC(14, 2) NOT NULL,
                status TEXT NOT NULL DEFAULT 'completed',
                description TEXT,
                reference_id TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,
            f"CREATE INDEX IF NOT EXISTS idx_wallet_tx_user ON {s}.wallet_transactions(user_id, created_at DESC)",
            f"""
            CREATE TABLE IF NOT EXISTS {s}.ad_pricing (
                campaign_type TEXT PRIMARY KEY,
                daily_rate NUMERIC(14, 2) NOT NULL CHECK (daily_rate > 0),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,
            f"""
            CREATE TABLE IF NOT EXISTS {s}.notification_outbox (
                notification_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                kind TEXT NOT NULL DEFAULT 'info',
                link TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                attempts INTEGER NOT NULL DEFAULT 0,
                last_error TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                delivered_at TIMESTAMPTZ
            )
            """,
            f"CREATE INDEX IF NOT EXISTS idx_outbox_pending ON {s}.notification_outbox(status, created_at)",
        ]

        async with self.db.acquire() as conn:
            async with conn.transaction():
                for statement in statements:
                    await conn.execute(statement)

        self._schema_initialized = True
        logger.info(f"Promotion schema '{s}' ready")

    # ====================
    # Unit of work
    # ====================

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresUnitOfWork]:
        """One all-or-nothing ledger transaction"""
        async with _store_errors("ledger transaction"):
            async with self.db.acquire() as conn:
                async with conn.transaction():
                    yield PostgresUnitOfWork(conn, self.schema, self.config.default_rates)

    # ====================
    # Point-in-time reads
    # ====================

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        async with _store_errors("get_campaign"):
            row = await self.db.query_row(
                f"SELECT * FROM {self.schema}.campaigns WHERE campaign_id = $1", campaign_id
            )
        return self._row_to_campaign(row) if row else None

    async def list_campaigns(
        self,
        vendor_id: Optional[str] = None,
        statuses: Optional[List[CampaignStatus]] = None,
    ) -> List[Campaign]:
        conditions = []
        params: List[Any] = []
        if vendor_id is not None:
            params.append(vendor_id)
            conditions.append(f"vendor_id = ${len(params)}")
        if statuses is not None:
            params.append([CampaignStatus(s).value for s in statuses])
            conditions.append(f"status = ANY(${len(params)}::text[])")

        query = f"SELECT * FROM {self.schema}.campaigns"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY COALESCE(start_date, created_at) DESC"

        async with _store_errors("list_campaigns"):
            rows = await self.db.query(query, *params)
        return [self._row_to_campaign(r) for r in rows]

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        async with _store_errors("get_listing"):
            row = await self.db.query_row(
                f"SELECT * FROM {self.schema}.listings WHERE listing_id = $1", listing_id
            )
        return Listing.model_validate(row) if row else None

    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        async with _store_errors("get_wallet"):
            row = await self.db.query_row(
                f"SELECT * FROM {self.schema}.wallets WHERE user_id = $1", user_id
            )
        return Wallet.model_validate(row) if row else None

    async def get_wallet_history(self, user_id: str, limit: int = 100) -> List[WalletTransaction]:
        async with _store_errors("get_wallet_history"):
            rows = await self.db.query(
                f"""
                SELECT * FROM {self.schema}.wallet_transactions
                WHERE user_id = $1
                ORDER BY created_at DESC
                LIMIT $2
                """,
                user_id, limit,
            )
        return [WalletTransaction.model_validate(r) for r in rows]

    async def get_pricing(self) -> PricingTable:
        async with _store_errors("get_pricing"):
            rows = await self.db.query(
                f"SELECT campaign_type, daily_rate, updated_at FROM {self.schema}.ad_pricing"
            )
        return self._rows_to_pricing(rows, self.config.default_rates)

    # ====================
    # Outbox
    # ====================

    async def fetch_pending_notifications(self, limit: int = 50) -> List[OutboxNotification]:
        async with _store_errors("fetch_pending_notifications"):
            rows = await self.db.query(
                f"""
                SELECT * FROM {self.schema}.notification_outbox
                WHERE status = $1
                ORDER BY created_at
                LIMIT $2
                """,
                OutboxStatus.PENDING.value, limit,
            )
        return [OutboxNotification.model_validate(r) for r in rows]

    async def mark_notification_delivered(self, notification_id: str, delivered_at: datetime) -> None:
        async with _store_errors("mark_notification_delivered"):
            await self.db.execute(
                f"""
                UPDATE {self.schema}.notification_outbox
                SET status = $2, delivered_at = $3, attempts = attempts + 1, last_error = NULL
                WHERE notification_id = $1
                """,
                notification_id, OutboxStatus.DELIVERED.value, delivered_at,
            )

    async def mark_notification_attempt_failed(
        self, notification_id: str, error: str, max_attempts: int
    ) -> OutboxNotification:
        async with _store_errors("mark_notification_attempt_failed"):
            row = await self.db.query_row(
                f"""
                UPDATE {self.schema}.notification_outbox
                SET attempts = attempts + 1,
                    last_error = $2,
                    status = CASE WHEN attempts + 1 >= $3 THEN $4 ELSE status END
                WHERE notification_id = $1
                RETURNING *
                """,
                notification_id, error[:1000], max_attempts, OutboxStatus.FAILED.value,
            )
        if row is None:
            raise NotFoundError(f"Notification not found: {notification_id}")
        return OutboxNotification.model_validate(row)

    # ====================
    # Seeding (listings and wallets are owned by other services)
    # ====================

    async def save_listing(self, listing: Listing) -> Listing:
        async with _store_errors("save_listing"):
            row = await self.db.query_row(
                f"""
                INSERT INTO {self.schema}.listings (
                    listing_id, vendor_id, title, image_url, status,
                    is_promoted, active_campaign_id, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                ON CONFLICT (listing_id) DO UPDATE SET
                    vendor_id = EXCLUDED.vendor_id,
                    title = EXCLUDED.title,
                    image_url = EXCLUDED.image_url,
                    status = EXCLUDED.status,
                    updated_at = EXCLUDED.updated_at
                RETURNING *
                """,
                listing.listing_id, listing.vendor_id, listing.title, listing.image_url,
                listing.status, listing.is_promoted, listing.active_campaign_id, listing.updated_at,
            )
        return Listing.model_validate(row)

    async def create_wallet(self, user_id: str, balance: Decimal = Decimal("0.00")) -> Wallet:
        async with _store_errors("create_wallet"):
            row = await self.db.query_row(
                f"""
                INSERT INTO {self.schema}.wallets (user_id, balance, updated_at)
                VALUES ($1, $2, $3)
                RETURNING *
                """,
                user_id, balance, utcnow(),
            )
        return Wallet.model_validate(row)

    # ====================
    # Row conversion
    # ====================

    @staticmethod
    def _row_to_campaign(row) -> Campaign:
        return Campaign.model_validate(dict(row))

    @staticmethod
    def _rows_to_pricing(rows, defaults: Dict[str, Decimal]) -> PricingTable:
        stored = {r["campaign_type"]: r["daily_rate"] for r in rows}
        updated = [r["updated_at"] for r in rows if r["updated_at"] is not None]
        return build_pricing_table(stored, defaults, max(updated) if updated else None)
