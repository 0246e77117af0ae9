#!/usr/bin/env python3
"""Logging configuration for the ledger and the outbox worker"""
import os
from dataclasses import dataclass, field
from typing import Tuple

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _bool(val: str) -> bool:
    return val.lower() in ("1", "true", "yes")


def _names(val: str) -> Tuple[str, ...]:
    return tuple(n.strip() for n in val.split(",") if n.strip())


@dataclass
class LoggingConfig:
    """Handlers and levels applied by core.logger.setup_service_logger"""
    log_level: str = "INFO"
    log_format: str = DEFAULT_FORMAT
    log_file: str = ""
    enable_console: bool = True

    # Driver loggers held at INFO or above even when the service runs at DEBUG
    quiet_loggers: Tuple[str, ...] = field(default_factory=lambda: ("asyncpg", "nats", "httpx"))

    @classmethod
    def from_env(cls) -> 'LoggingConfig':
        """Load logging config from environment variables"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            log_level=os.getenv("LOG_LEVEL", "DEBUG" if env == "development" else "INFO"),
            log_format=os.getenv("LOG_FORMAT", DEFAULT_FORMAT),
            log_file=os.getenv("LOG_FILE", ""),
            enable_console=_bool(os.getenv("LOG_CONSOLE", "true")),
            quiet_loggers=_names(os.getenv("LOG_QUIET_LOGGERS", "asyncpg,nats,httpx")),
        )
