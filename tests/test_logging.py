"""Tests for logging setup and per-session context binding."""

import json
import logging

import pytest
import structlog

from memchat.logging import get_logger, session_context, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger("memchat")
    handlers, level, propagate = list(root.handlers), root.level, root.propagate
    client_levels = {name: logging.getLogger(name).level for name in ("LiteLLM", "httpx", "httpcore", "chromadb")}
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root.handlers[:] = handlers
    root.setLevel(level)
    root.propagate = propagate
    for name, client_level in client_levels.items():
        logging.getLogger(name).setLevel(client_level)


class TestSessionContext:
    def test_binds_and_restores(self) -> None:
        structlog.contextvars.clear_contextvars()
        with session_context("s1"):
            assert structlog.contextvars.get_contextvars() == {"session_id": "s1"}
            with session_context("s2"):
                assert structlog.contextvars.get_contextvars()["session_id"] == "s2"
            assert structlog.contextvars.get_contextvars()["session_id"] == "s1"
        assert "session_id" not in structlog.contextvars.get_contextvars()


class TestSetupLogging:
    def test_json_lines_carry_session_and_scrubbed_fields(self, capsys, restore_logging) -> None:
        setup_logging(json_output=True, level="INFO")
        logger = get_logger("memchat.test")

        with session_context("s1"):
            logger.info("summary_stored", summary="z" * 1000, api_key="sk-abcdefghijklmnop")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "summary_stored"
        assert record["session_id"] == "s1"
        assert record["level"] == "info"
        assert record["summary"].endswith("(1000 chars)")
        assert "abcdefghijklmnop" not in line

    def test_memchat_logger_does_not_propagate(self, restore_logging) -> None:
        setup_logging(json_output=False, level="warning")
        root = logging.getLogger("memchat")
        assert root.propagate is False
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING

    def test_client_loggers_are_quiet_unless_debugging(self, restore_logging) -> None:
        setup_logging(level="INFO")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("LiteLLM").level == logging.WARNING

        setup_logging(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.DEBUG
        assert logging.getLogger("chromadb").level == logging.DEBUG
