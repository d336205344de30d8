"""
Engine Configuration

Provides validated configuration for the flow-metrics engine, read from the
environment (and a local .env file through python-dotenv).

Usage:
    from flowmetrics.core.config import get_config

    config = get_config()
    print(config.logging.level)
    print(config.default_timezone)

Environment variables:
    FLOWMETRICS_LOG_LEVEL         DEBUG | INFO | WARNING | ERROR | CRITICAL (default INFO)
    FLOWMETRICS_LOG_JSON          true | false (default false)
    FLOWMETRICS_LOG_FILE          optional path for JSON log output
    FLOWMETRICS_DEFAULT_TIMEZONE  IANA zone used when a client timezone is invalid (default UTC)
    FLOWMETRICS_BENCHMARK_FILE    optional path to an alternative industry benchmark JSON

Raises:
    ConfigurationError: If configuration is invalid
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
TRUTHY_VALUES = ("1", "true", "yes", "on")
FALSY_VALUES = ("0", "false", "no", "off", "")


class ConfigurationError(ValueError):
    """Raised when configuration is missing or invalid."""

    pass


@dataclass(frozen=True)
class LoggingConfig:
    """
    Validated logging configuration.
    """

    level: str = "INFO"
    json_output: bool = False
    log_file: Path | None = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """
        Raises:
            ConfigurationError: If the log level is unknown
        """
        if self.level.upper() not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"FLOWMETRICS_LOG_LEVEL must be one of {', '.join(VALID_LOG_LEVELS)}: {self.level}"
            )


@dataclass(frozen=True)
class EngineConfig:
    """
    Validated engine configuration.
    """

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    default_timezone: str = "UTC"
    benchmark_file: Path | None = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """
        Validate timezone and benchmark file settings.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.default_timezone:
            raise ConfigurationError("FLOWMETRICS_DEFAULT_TIMEZONE must not be empty")

        try:
            ZoneInfo(self.default_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(
                f"FLOWMETRICS_DEFAULT_TIMEZONE is not a valid IANA timezone: {self.default_timezone}"
            ) from e

        if self.benchmark_file is not None and not self.benchmark_file.is_file():
            raise ConfigurationError(f"FLOWMETRICS_BENCHMARK_FILE does not exist: {self.benchmark_file}")


def _parse_bool(name: str, raw_value: str | None) -> bool:
    value = (raw_value or "").strip().lower()
    if value in TRUTHY_VALUES:
        return True
    if value in FALSY_VALUES:
        return False
    raise ConfigurationError(f"{name} must be true or false: {raw_value}")


def load_config_from_environment() -> EngineConfig:
    """
    Build a validated configuration from environment variables.

    Returns:
        EngineConfig: Validated configuration

    Raises:
        ConfigurationError: If any variable is invalid
    """
    log_file = os.getenv("FLOWMETRICS_LOG_FILE")
    benchmark_file = os.getenv("FLOWMETRICS_BENCHMARK_FILE")

    logging_config = LoggingConfig(
        level=(os.getenv("FLOWMETRICS_LOG_LEVEL") or "INFO").upper(),
        json_output=_parse_bool("FLOWMETRICS_LOG_JSON", os.getenv("FLOWMETRICS_LOG_JSON")),
        log_file=Path(log_file) if log_file else None,
    )

    return EngineConfig(
        logging=logging_config,
        default_timezone=os.getenv("FLOWMETRICS_DEFAULT_TIMEZONE") or "UTC",
        benchmark_file=Path(benchmark_file) if benchmark_file else None,
    )


# Convenience function for getting configuration
_config_instance: EngineConfig | None = None


def get_config() -> EngineConfig:
    """
    Get the global configuration instance (loads .env on first call).

    Returns:
        EngineConfig: The validated configuration
    """
    global _config_instance
    if _config_instance is None:
        load_dotenv()
        _config_instance = load_config_from_environment()
    return _config_instance


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    global _config_instance
    _config_instance = None
