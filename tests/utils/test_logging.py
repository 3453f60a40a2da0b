"""Tests for structured logging helpers."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from doh_router.models import RouterEvent
from doh_router.utils.logging import ISO8601Formatter, configure_logging, get_logger, log_event


def _record(msg: object, level: int = logging.WARNING) -> logging.LogRecord:
    return logging.LogRecord("doh-router.test", level, __file__, 1, msg, None, None)


class TestISO8601Formatter:
    """Tests for ISO8601Formatter."""

    def test_dict_message_is_merged(self) -> None:
        """Event dicts become top-level JSON fields next to time and level."""
        line = ISO8601Formatter().format(_record({"event": "proxy_started", "port": 8080}))
        data = json.loads(line)

        assert data["event"] == "proxy_started"
        assert data["port"] == 8080
        assert data["level"] == "WARNING"
        assert data["time"].endswith("Z")

    def test_plain_message_is_wrapped(self) -> None:
        data = json.loads(ISO8601Formatter().format(_record("plain text")))

        assert data["message"] == "plain text"


class TestLogEvent:
    """Tests for log_event."""

    def test_none_fields_are_excluded(self, caplog: pytest.LogCaptureFixture) -> None:
        """Only populated event fields are logged."""
        logger = get_logger("test")
        logger.addHandler(caplog.handler)
        try:
            log_event(logger, logging.WARNING, RouterEvent(event="connection_failed", host="a.test"))
        finally:
            logger.removeHandler(caplog.handler)

        assert caplog.records[-1].msg == {"event": "connection_failed", "host": "a.test"}


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_file_receives_warnings_only(self, tmp_path: Path) -> None:
        """The JSONL file gets WARNING and above, not INFO."""
        log_file = tmp_path / "logs" / "system.jsonl"
        configure_logging("INFO", log_file)
        logger = get_logger("test")
        try:
            log_event(logger, logging.INFO, RouterEvent(event="proxy_started"))
            log_event(logger, logging.WARNING, RouterEvent(event="cleanup_handler_failed"))
        finally:
            configure_logging("INFO")

        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert [line["event"] for line in lines] == ["cleanup_handler_failed"]
