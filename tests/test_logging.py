"""Tests for logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from agentorch.config.schema import LoggingConfig
from agentorch.logging import TRACE, VERBOSE, get_logger, logger, resolve_level, setup_logging


@pytest.fixture
def restore_logger():
    level = logger.level
    handlers = list(logger.handlers)
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)


class TestResolveLevel:
    """Test level selection."""

    def test_default(self) -> None:
        assert resolve_level(None) == logging.INFO
        assert resolve_level(LoggingConfig()) == logging.INFO

    def test_named_level(self) -> None:
        assert resolve_level(LoggingConfig(level="debug")) == logging.DEBUG
        assert resolve_level(LoggingConfig(level="trace")) == TRACE

    def test_verbose_wins(self) -> None:
        assert resolve_level(LoggingConfig(level="error", verbose=3)) == VERBOSE
        assert resolve_level(LoggingConfig(verbose=0)) == logging.ERROR


def test_child_logger_names() -> None:
    assert get_logger().name == "agentorch"
    assert get_logger("activity.poller").name == "agentorch.activity.poller"


def test_file_logging(tmp_path: Path, restore_logger: None) -> None:
    log_file = tmp_path / "agentorch.log"
    setup_logging(LoggingConfig(level="debug", file=str(log_file)), force=True)
    get_logger("test").debug("hello from the test")
    for handler in logger.handlers:
        handler.flush()
    text = log_file.read_text(encoding="utf-8")
    assert "debug: hello from the test" in text
