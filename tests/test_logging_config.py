import json
import logging

import pytest
import structlog

from solcopy.logging_config import event_context, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def test_json_lines_include_bound_context(restore_root_logger, capsys):
    setup_logging("INFO", "json")

    with event_context(trade_id="T1", signature=None):
        logging.getLogger("solcopy.test").info("Trade filled")

    line = capsys.readouterr().out.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["event"] == "Trade filled"
    assert record["trade_id"] == "T1"
    assert "signature" not in record
    assert record["level"] == "info"


def test_context_is_reset_after_block():
    with event_context(trade_id="T2"):
        assert structlog.contextvars.get_contextvars()["trade_id"] == "T2"

    assert "trade_id" not in structlog.contextvars.get_contextvars()


def test_level_and_quiet_loggers(restore_root_logger):
    setup_logging("DEBUG", "console")

    assert restore_root_logger.level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
