import json
import logging

import pytest

from mcp_chat.utils.logger import setup_logger


@pytest.fixture
def named_logger():
    logger = logging.getLogger("mcp_chat.test_logger")
    yield logger
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_file_records_are_json(tmp_path, named_logger):
    log_file = tmp_path / "logs" / "app.log"
    setup_logger(named_logger.name, log_level="INFO", log_file=str(log_file), quiet=())

    named_logger.info("Connected to MCP server 'files'")
    for handler in named_logger.handlers:
        handler.flush()

    record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    assert record["message"] == "Connected to MCP server 'files'"
    assert record["level"] == "INFO"
    assert record["logger"] == "mcp_chat.test_logger"
    assert record["service"] == "mcp-chat"


def test_setup_is_idempotent(named_logger):
    setup_logger(named_logger.name, quiet=())
    setup_logger(named_logger.name, quiet=())

    assert len(named_logger.handlers) == 1


def test_quiets_noisy_loggers(named_logger):
    setup_logger(named_logger.name, quiet=("mcp_chat.test_noisy",))
    assert logging.getLogger("mcp_chat.test_noisy").level == logging.WARNING


def test_unknown_level(named_logger):
    with pytest.raises(ValueError):
        setup_logger(named_logger.name, log_level="LOUD")
