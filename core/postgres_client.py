"""
PostgreSQL Client Wrapper for the promotion ledger

Owns the asyncpg connection pool. Repositories borrow connections from it
and open their own transactions.

Usage:
    from core.postgres_client import PostgresClientWrapper

    db = PostgresClientWrapper("promotion_service", infra_config)
    await db.initialize()

    async with db.acquire() as conn:
        async with conn.transaction():
            row = await conn.fetchrow("SELECT ...", campaign_id)
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg

from core.config import InfraConfig

logger = logging.getLogger(__name__)


class PostgresClientWrapper:
    """
    PostgreSQL pool wrapper.

    Provides:
    - Explicit pool lifecycle (initialize / close)
    - Connection acquisition as an async context manager
    - Convenience query helpers for read paths
    """

    def __init__(self, service_name: str, config: Optional[InfraConfig] = None):
        """
        Initialize PostgreSQL client wrapper.

        Args:
            service_name: Name of the service using this client
            config: Infrastructure config (defaults to environment)
        """
        self.service_name = service_name
        self.config = config or InfraConfig.from_env()
        self._pool: Optional[asyncpg.Pool] = None

        logger.info(
            f"PostgreSQL client configured for {service_name}: "
            f"{self.config.postgres_host}:{self.config.postgres_port}/{self.config.postgres_db}"
        )

    async def initialize(self) -> None:
        """Create the connection pool"""
        if self._pool is not None:
            return
        self._pool = await asyncpg.create_pool(
            host=self.config.postgres_host,
            port=self.config.postgres_port,
            user=self.config.postgres_user,
            password=self.config.postgres_password,
            database=self.config.postgres_db,
            min_size=self.config.postgres_min_pool,
            max_size=self.config.postgres_max_pool,
            command_timeout=self.config.postgres_command_timeout,
            server_settings={"application_name": self.service_name},
        )
        logger.info(f"PostgreSQL pool ready for {self.service_name}")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("PostgreSQL pool not initialized. Call initialize() first.")
        return self._pool

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """Borrow a connection from the pool"""
        async with self.pool.acquire() as conn:
            yield conn

    async def health_check(self) -> bool:
        """Check database health"""
        try:
            async with self.acquire() as conn:
                return await conn.fetchval("SELECT 1") == 1
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            logger.warning(f"PostgreSQL health check failed: {e}")
            return False

    async def query(self, sql: str, *params: Any) -> List[Dict[str, Any]]:
        """Execute query and return results"""
        async with self.acquire() as conn:
            rows = await conn.fetch(sql, *params)
        return [dict(r) for r in rows]

    async def query_row(self, sql: str, *params: Any) -> Optional[Dict[str, Any]]:
        """Execute query and return single row"""
        async with self.acquire() as conn:
            row = await conn.fetchrow(sql, *params)
        return dict(row) if row else None

    async def execute(self, sql: str, *params: Any) -> str:
        """Execute SQL statement"""
        async with self.acquire() as conn:
            return await conn.execute(sql, *params)

    async def close(self):
        """Close the pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info(f"PostgreSQL pool closed for {self.service_name}")
