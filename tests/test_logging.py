"""
Test structured logging setup.
"""

import json
import logging

import pytest
import structlog

from incubator.core.config import Settings
from incubator.core.logging import get_logger, setup_logging


@pytest.fixture
def restore_logging():
    yield
    structlog.reset_defaults()
    for handler in logging.getLogger().handlers:
        handler.close()
    logging.getLogger().handlers.clear()


def test_json_logs_are_written_to_file(tmp_path, restore_logging):
    log_file = tmp_path / "logs" / "incubator.log"
    config = Settings(_env_file=None, log_format="json", log_level="info")

    setup_logging(log_file=str(log_file), config=config)
    get_logger("incubator.test").info("Balance refreshed", address="wallet")

    record = json.loads(log_file.read_text().strip().splitlines()[-1])
    assert record["event"] == "Balance refreshed"
    assert record["address"] == "wallet"
    assert record["level"] == "info"
    assert logging.getLogger("httpx").level == logging.WARNING
