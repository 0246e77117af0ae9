#!/usr/bin/env python3
"""Modular configuration system for the promotion ledger

Configuration hierarchy:
- infra_config: PostgreSQL and NATS endpoints
- promotion_config: Pricing defaults, outbox relay, notification sink
- logging_config: Logging configuration
"""
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .infra_config import InfraConfig
from .logging_config import LoggingConfig
from .promotion_config import PromotionConfig

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)


@dataclass
class LedgerSettings:
    """Main configuration with all sub-configs"""

    environment: str = "development"
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    infrastructure: InfraConfig = field(default_factory=InfraConfig)
    promotion: PromotionConfig = field(default_factory=PromotionConfig)

    @classmethod
    def from_env(cls) -> 'LedgerSettings':
        """Load complete configuration from environment"""
        return cls(
            environment=os.getenv("ENV") or os.getenv("ENVIRONMENT", "development"),
            logging=LoggingConfig.from_env(),
            infrastructure=InfraConfig.from_env(),
            promotion=PromotionConfig.from_env(),
        )


settings = LedgerSettings.from_env()

def get_settings() -> LedgerSettings:
    """Get global settings instance"""
    return settings

def reload_settings() -> LedgerSettings:
    """Reload settings from environment"""
    global settings
    settings = LedgerSettings.from_env()
    return settings

__all__ = [
    'LedgerSettings',
    'get_settings',
    'reload_settings',
    'settings',
    'LoggingConfig',
    'InfraConfig',
    'PromotionConfig',
]
