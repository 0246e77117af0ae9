#!/usr/bin/env python3
"""Promotion ledger settings

Default ad pricing, notification outbox relay tuning and the
notification service endpoint.
"""
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default

def _decimal(val: str, default: str) -> Decimal:
    try:
        return Decimal(val) if val else Decimal(default)
    except InvalidOperation:
        return Decimal(default)


def _default_rates() -> Dict[str, Decimal]:
    return {
        "featured_listing": Decimal("100"),
        "banner_ad": Decimal("500"),
        "social_boost": Decimal("300"),
    }


@dataclass
class PromotionConfig:
    """Promotion ledger configuration"""

    # Database schema holding campaigns, listings, wallets and the outbox
    schema: str = "promotion"

    # Daily rates used when the ad_pricing table has no row for a type
    default_rates: Dict[str, Decimal] = field(default_factory=_default_rates)

    # Notification outbox relay
    outbox_batch_size: int = 50
    outbox_poll_interval: float = 2.0
    outbox_max_attempts: int = 5
    delivery_retries: int = 3
    delivery_retry_wait: float = 0.5

    # Notification service (sink)
    notification_service_host: str = "localhost"
    notification_service_port: int = 8270
    notification_timeout: float = 10.0

    @property
    def notification_service_url(self) -> str:
        return f"http://{self.notification_service_host}:{self.notification_service_port}"

    @classmethod
    def from_env(cls) -> 'PromotionConfig':
        """Load promotion settings from environment variables"""
        return cls(
            schema=os.getenv("PROMOTION_SCHEMA", "promotion"),
            default_rates={
                "featured_listing": _decimal(os.getenv("AD_RATE_FEATURED_LISTING", ""), "100"),
                "banner_ad": _decimal(os.getenv("AD_RATE_BANNER_AD", ""), "500"),
                "social_boost": _decimal(os.getenv("AD_RATE_SOCIAL_BOOST", ""), "300"),
            },
            outbox_batch_size=_int(os.getenv("OUTBOX_BATCH_SIZE", "50"), 50),
            outbox_poll_interval=_float(os.getenv("OUTBOX_POLL_INTERVAL", "2"), 2.0),
            outbox_max_attempts=_int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"), 5),
            delivery_retries=_int(os.getenv("NOTIFICATION_DELIVERY_RETRIES", "3"), 3),
            delivery_retry_wait=_float(os.getenv("NOTIFICATION_RETRY_WAIT", "0.5"), 0.5),
            notification_service_host=os.getenv("NOTIFICATION_SERVICE_HOST", "localhost"),
            notification_service_port=_int(os.getenv("NOTIFICATION_SERVICE_PORT", "8270"), 8270),
            notification_timeout=_float(os.getenv("NOTIFICATION_TIMEOUT", "10"), 10.0),
        )
