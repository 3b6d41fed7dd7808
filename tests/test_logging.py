"""Tests for structured logging configuration."""

from __future__ import annotations

import logging

import structlog
from structlog.testing import capture_logs

from core.config import LoggingSettings, Settings
from core.logging import (
    bind_context,
    clear_context,
    configure_logging,
    configure_logging_from_settings,
    get_logger,
    unbind_context,
)


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_console_format(self) -> None:
        """configure_logging should work with defaults."""
        configure_logging()

        assert get_logger(__name__) is not None

    def test_json_format(self) -> None:
        """configure_logging should configure JSON rendering."""
        configure_logging(json_format=True)

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        configure_logging()

    def test_events_carry_key_values(self) -> None:
        """Events are recorded with their key/value pairs."""
        configure_logging()
        logger = get_logger("tests.events")

        with capture_logs() as logs:
            logger.info("Search completed", total_results=2)

        assert logs == [{"event": "Search completed", "total_results": 2, "log_level": "info"}]

    def test_level_filters_lower_events(self) -> None:
        """Events below the configured level are dropped."""
        configure_logging(log_level="WARNING")
        logger = get_logger("tests.level")

        with capture_logs() as logs:
            logger.info("Provider response")
            logger.warning("Provider timed out", provider="JustServe")

        assert [entry["event"] for entry in logs] == ["Provider timed out"]
        configure_logging()

    def test_httpx_logger_quietened(self) -> None:
        """httpx request logs are raised to at least WARNING."""
        configure_logging(log_level="DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING
        configure_logging()

    def test_configure_from_settings(self) -> None:
        """configure_logging_from_settings uses the LOG_ section."""
        settings = Settings(logging=LoggingSettings(level="ERROR", json_format=True))

        configure_logging_from_settings(settings)
        logger = get_logger("tests.settings")
        with capture_logs() as logs:
            logger.warning("ignored")
            logger.error("kept")

        assert [entry["event"] for entry in logs] == ["kept"]
        configure_logging()


class TestContextFunctions:
    """Tests for context binding functions."""

    def test_bind_context(self) -> None:
        """bind_context should add context variables."""
        bind_context(search_id="abc123", provider="Idealist")

        assert structlog.contextvars.get_contextvars() == {
            "search_id": "abc123",
            "provider": "Idealist",
        }

    def test_unbind_context(self) -> None:
        """unbind_context removes only the given keys."""
        bind_context(search_id="abc123", provider="Idealist")

        unbind_context("search_id")

        assert structlog.contextvars.get_contextvars() == {"provider": "Idealist"}

    def test_clear_context(self) -> None:
        """clear_context should clear context variables."""
        bind_context(search_id="abc123")

        clear_context()

        assert structlog.contextvars.get_contextvars() == {}
