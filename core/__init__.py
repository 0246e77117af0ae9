#!/usr/bin/env python3
"""
Core Module

Shared infrastructure for the promotion ledger service.

COMPONENTS:
    - config/: Environment driven configuration (infra, logging, promotion)
    - logger.py: Service logger setup
    - postgres_client.py: asyncpg pool wrapper (entity store connection)
    - nats_client.py: NATS JetStream event bus

USAGE:
    from core.config import get_settings
    from core.postgres_client import PostgresClientWrapper

    settings = get_settings()
    db = PostgresClientWrapper("promotion_service", settings.infrastructure)
"""

__version__ = "1.0.0"
