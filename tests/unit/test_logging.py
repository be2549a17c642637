"""
Unit Tests - Logging Configuration
"""
import logging
from datetime import date

import structlog

from src.config.logging import configure_logging, report_context


class TestConfigureLogging:
    """Tests for logging setup"""

    def test_level_override(self, test_settings):
        """Test that the level argument wins over LOG_LEVEL"""
        configure_logging("debug", test_settings)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert logging.getLogger("prefect").level == logging.INFO

    def test_reconfigure_replaces_handlers(self, test_settings):
        """Test that configuring twice does not duplicate output"""
        configure_logging("INFO", test_settings)
        configure_logging("WARNING", test_settings)

        assert len(logging.getLogger().handlers) == 1


class TestReportContext:
    """Tests for per-report log context"""

    def test_binds_report_fields(self):
        """Test that the report name and as-of date are bound inside the block"""
        with report_context("store_margin", date(2025, 11, 22)):
            bound = structlog.contextvars.get_contextvars()
            assert bound["report"] == "store_margin"
            assert bound["as_of"] == "2025-11-22"

        assert "report" not in structlog.contextvars.get_contextvars()
