"""
Service logger setup

Usage:
    from core.logger import setup_service_logger
    logger = setup_service_logger("promotion_service")
"""

import logging
from typing import Optional

from core.config import LoggingConfig


def setup_service_logger(
    service_name: str,
    level: Optional[str] = None,
    config: Optional[LoggingConfig] = None,
) -> logging.Logger:
    """
    Configure root handlers once and return the service logger.

    Console output is always on unless disabled in config; a file handler is
    added when LOG_FILE is set.
    """
    config = config or LoggingConfig.from_env()
    log_level = getattr(logging, (level or config.log_level).upper(), logging.INFO)
    formatter = logging.Formatter(config.log_format)

    root = logging.getLogger()
    root.setLevel(log_level)

    if not getattr(root, "_promotion_configured", False):
        if config.enable_console:
            console = logging.StreamHandler()
            console.setFormatter(formatter)
            root.addHandler(console)
        if config.log_file:
            file_handler = logging.FileHandler(config.log_file)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        root._promotion_configured = True

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(max(log_level, logging.INFO))

    logger = logging.getLogger(service_name)
    logger.setLevel(log_level)
    return logger
