"""
Centralized logging configuration for the participant substrate.
"""

import logging
import sys
from typing import Optional

from .config import AppConfig

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
PACKAGE_LOGGER = 'agentmind'


def setup_logging(config: Optional[AppConfig] = None, level: Optional[str] = None) -> None:
    """
    Attach a stdout handler to the package logger.

    Calling this more than once only updates the level, so re-imports and
    explicit calls from entry points do not duplicate output.

    Args:
        config: AppConfig instance, uses default if None
        level: Explicit level name overriding config.log_level
    """
    if config is None:
        from .config import config as default_config
        config = default_config

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(getattr(logging, (level or config.log_level).upper()))

    if not any(getattr(h, '_agentmind', False) for h in package_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._agentmind = True
        package_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the package hierarchy.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance inheriting the package level and handler
    """
    if not name.startswith(PACKAGE_LOGGER):
        name = f'{PACKAGE_LOGGER}.{name}'
    return logging.getLogger(name)
