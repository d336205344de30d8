"""
Core Infrastructure - Configuration and Logging

Usage:
    from flowmetrics.core import get_config, get_logger

    config = get_config()
    logger = get_logger(__name__)
"""

from .config import (
    ConfigurationError,
    EngineConfig,
    LoggingConfig,
    get_config,
    load_config_from_environment,
    reset_config,
)
from .logging_config import (
    configure_from_environment,
    get_logger,
    log_with_context,
    setup_logging,
)

__all__ = [
    # Configuration
    "ConfigurationError",
    "EngineConfig",
    "LoggingConfig",
    "get_config",
    "load_config_from_environment",
    "reset_config",
    # Logging
    "configure_from_environment",
    "get_logger",
    "log_with_context",
    "setup_logging",
]
