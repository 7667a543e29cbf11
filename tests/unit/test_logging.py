"""Tests for the Loguru logging setup."""

import logging

import pytest
from loguru import logger

from reelhub.config import Settings
from reelhub.core.logging import InterceptHandler, apply_log_levels, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root_handlers = logging.root.handlers[:]
    root_level = logging.root.level
    touched = ["reelhub.services.probe", "reelhub.services.aggregator", "httpx"]
    levels = {name: logging.getLogger(name).level for name in touched}
    yield
    logger.remove()
    logging.root.handlers = root_handlers
    logging.root.setLevel(root_level)
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


def test_apply_log_levels():
    apply_log_levels({"reelhub.services.probe": "warning"})

    assert logging.getLogger("reelhub.services.probe").level == logging.WARNING


def test_stdlib_records_reach_loguru():
    setup_logging(Settings(log_to_file=False, log_levels={"reelhub.services.probe": "WARNING"}))
    messages: list[str] = []
    logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")

    logging.getLogger("reelhub.services.aggregator").info("fan-out done")
    logging.getLogger("reelhub.services.probe").info("probe chatter")
    logging.getLogger("reelhub.services.probe").warning("probe timed out")

    assert isinstance(logging.root.handlers[0], InterceptHandler)
    assert messages == ["fan-out done", "probe timed out"]


def test_debug_setting_lowers_root_level():
    setup_logging(Settings(log_to_file=False, debug=True))

    assert logging.root.level == logging.DEBUG


def test_file_sink(tmp_path):
    log_file = setup_logging(Settings(log_dir=str(tmp_path / "logs")))

    logging.getLogger("reelhub.services.resolver").info("selected alpha:1")
    logger.complete()

    assert log_file == tmp_path / "logs" / "reelhub.log"
    assert "selected alpha:1" in log_file.read_text()


def test_file_sink_disabled():
    assert setup_logging(Settings(log_to_file=False)) is None
