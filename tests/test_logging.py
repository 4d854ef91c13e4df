"""Tests for the structured logging configuration."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest
import structlog

from cmssync.logging import setup_logging


@pytest.fixture(autouse=True)
def _reset_logging():
    """Reset logging state between tests."""
    yield
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    structlog.reset_defaults()


def test_setup_creates_log_dir_and_files(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.get_logger("cmssync.test").info("hello")

    assert (log_dir / "cmssync.log").exists()
    assert (log_dir / "sync.log").exists()


def test_main_log_human_readable(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.get_logger("cmssync.cli").info("test_event", key="value")

    content = (log_dir / "cmssync.log").read_text()
    assert "test_event" in content
    assert "key=value" in content
    with pytest.raises(json.JSONDecodeError):
        json.loads(content.strip())


def test_sync_log_json(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.get_logger("cmssync.sync.runner").info("sync_language_start", language="en-us")

    data = json.loads((log_dir / "sync.log").read_text().strip())
    assert data["event"] == "sync_language_start"
    assert data["language"] == "en-us"
    assert data["level"] == "info"
    assert "timestamp" in data


def test_sync_log_excludes_non_sync_events(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.get_logger("cmssync.cli").info("cli_event")
    structlog.get_logger("cmssync.sync.engine").info("sync_event")

    sync_content = (log_dir / "sync.log").read_text()
    assert "sync_event" in sync_content
    assert "cli_event" not in sync_content

    main_content = (log_dir / "cmssync.log").read_text()
    assert "sync_event" in main_content
    assert "cli_event" in main_content


def test_level_filtering_suppresses_lower(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="warning", log_dir=log_dir)

    log = structlog.get_logger("cmssync.test")
    log.info("should_not_appear")
    log.warning("should_appear")

    content = (log_dir / "cmssync.log").read_text()
    assert "should_not_appear" not in content
    assert "should_appear" in content


def test_rotation_parameters(tmp_path: Path):
    setup_logging(log_level="info", log_dir=tmp_path / "logs")

    rotating = [h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)]
    assert len(rotating) == 2
    for handler in rotating:
        assert handler.maxBytes == 10 * 1024 * 1024
        assert handler.backupCount == 5


def test_no_log_dir_no_handlers():
    setup_logging(log_level="info", log_dir=None)
    assert len(logging.getLogger().handlers) == 0


def test_httpx_logger_quieted():
    setup_logging(log_level="debug", log_dir=None)
    assert logging.getLogger("httpx").level == logging.WARNING


def test_context_variables_in_sync_log(tmp_path: Path):
    log_dir = tmp_path / "logs"
    setup_logging(log_level="info", log_dir=log_dir)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(run_id=7)
    structlog.get_logger("cmssync.sync.engine").info("with_context")
    structlog.contextvars.clear_contextvars()

    data = json.loads((log_dir / "sync.log").read_text().strip())
    assert data["run_id"] == 7
