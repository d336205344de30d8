"""
Tests for Logging Configuration

Tests cover:
- JSON formatting of records, extra fields and context fields
- Handler setup for console and file output
- Logger lookup
"""

import json
import logging

import pytest

from flowmetrics.core.config import LoggingConfig
from flowmetrics.core.logging_config import (
    JSONFormatter,
    configure_from_environment,
    get_logger,
    log_with_context,
    setup_logging,
)


@pytest.fixture
def restore_root_logger():
    """Restore root handlers and level after a test reconfigures logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers.clear()
    root.handlers.extend(handlers)
    root.setLevel(level)


def make_record(**extra):
    record = logging.LogRecord("flowmetrics.test", logging.INFO, __file__, 10, "Computed %s", ("lead time",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test JSON log formatting"""

    def test_basic_fields(self):
        """Test the standard fields are present"""
        document = json.loads(JSONFormatter().format(make_record()))

        assert document["level"] == "INFO"
        assert document["logger"] == "flowmetrics.test"
        assert document["message"] == "Computed lead time"
        assert document["timestamp"].endswith("Z")

    def test_extra_fields_merged(self):
        """Test fields passed through extra= appear in the document"""
        document = json.loads(JSONFormatter().format(make_record(org_id="org-1", item_count=4)))

        assert document["org_id"] == "org-1"
        assert document["item_count"] == 4

    def test_context_fields_merged(self):
        """Test extra_fields from log_with_context are flattened"""
        document = json.loads(JSONFormatter().format(make_record(extra_fields={"groups": 3})))

        assert document["groups"] == 3
        assert "extra_fields" not in document


class TestSetupLogging:
    """Test handler configuration"""

    def test_console_handler_level(self, restore_root_logger):
        """Test the requested level is applied"""
        setup_logging(level="DEBUG")

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1

    def test_file_handler_writes_json(self, restore_root_logger, tmp_path):
        """Test a log file receives JSON lines"""
        log_file = tmp_path / "logs" / "flowmetrics.log"
        setup_logging(level="INFO", log_file=log_file)

        get_logger("flowmetrics.test").info("Lead time computed", extra={"org_id": "org-1"})
        for handler in restore_root_logger.handlers:
            handler.flush()

        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        assert json.loads(line)["org_id"] == "org-1"

    def test_configure_from_explicit_settings(self, restore_root_logger):
        """Test the logging section of the configuration is applied"""
        configure_from_environment(LoggingConfig(level="WARNING", json_output=True))

        assert restore_root_logger.level == logging.WARNING
        assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)


class TestLogWithContext:
    """Test context logging"""

    def test_context_attached(self, caplog):
        """Test context is attached as extra_fields"""
        logger = get_logger("flowmetrics.context")

        with caplog.at_level(logging.INFO, logger="flowmetrics.context"):
            log_with_context(logger, "info", "Service levels computed", org_id="org-1")

        assert caplog.records[-1].extra_fields == {"org_id": "org-1"}
