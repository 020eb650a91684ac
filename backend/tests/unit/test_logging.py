"""Tests for logging setup."""

import json
import logging

import graypy
import pytest
import structlog

from tezos_indexer.core.config import GraylogSettings, LoggingSettings
from tezos_indexer.core.logging import bind_context, clear_context, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    structlog.reset_defaults()


class TestSetupLogging:
    def test_stdout_handler_and_level(self):
        setup_logging(LoggingSettings(level="warn", format="json"))

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_unknown_level_defaults_to_info(self):
        setup_logging(LoggingSettings(level="loud"))

        assert logging.getLogger().level == logging.INFO

    def test_file_output(self, tmp_path):
        path = tmp_path / "indexer.log"
        setup_logging(LoggingSettings(format="json", enable_file=True, file_path=str(path)))

        structlog.get_logger("test").info("file line", answer=42)
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = path.read_text()
        assert '"event": "file line"' in text
        assert '"answer": 42' in text

    def test_module_loggers_follow_later_setup(self, tmp_path):
        """Loggers defined at import time render through handlers configured afterwards."""
        from tezos_indexer.core import scheduler
        from tezos_indexer.services.query import get_delegations
        from tezos_indexer.services.sync import delegation_sync

        path = tmp_path / "indexer.log"
        setup_logging(LoggingSettings(format="json", enable_file=True, file_path=str(path)))

        delegation_sync.logger.info("sync line")
        scheduler.logger.info("poller line")
        get_delegations.logger.info("query line")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = {entry["event"]: entry for entry in map(json.loads, path.read_text().splitlines())}
        assert lines["sync line"]["usecase"] == "sync_delegations"
        assert lines["poller line"]["component"] == "poller"
        assert lines["query line"]["usecase"] == "get_delegations"

    def test_unwritable_file_falls_back_to_stdout(self, tmp_path):
        path = tmp_path / "missing" / "indexer.log"
        setup_logging(LoggingSettings(enable_file=True, file_path=str(path)))

        handler = logging.getLogger().handlers[0]
        assert not isinstance(handler, logging.FileHandler)

    def test_graylog_handler(self):
        setup_logging(
            LoggingSettings(graylog=GraylogSettings(enabled=True, host="127.0.0.1", port=12201))
        )

        gelf = [h for h in logging.getLogger().handlers if isinstance(h, graypy.GELFUDPHandler)]
        assert len(gelf) == 1

    def test_graylog_requires_host(self):
        setup_logging(LoggingSettings(graylog=GraylogSettings(enabled=True, host="")))

        assert not any(isinstance(h, graypy.GELFUDPHandler) for h in logging.getLogger().handlers)


class TestContext:
    def test_bind_and_clear(self):
        bind_context(request_id="abc")
        assert structlog.contextvars.get_contextvars() == {"request_id": "abc"}

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
