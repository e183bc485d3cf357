import logging
from pathlib import Path

import pytest

from krouter.config import LoggingSettings, ProgramSettings
from krouter_agent import logging_config


@pytest.fixture
def restore_loggers():
    yield
    logging_config._remove_installed()
    for name in logging_config.PROJECT_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(logging.NOTSET)
        logger.propagate = True


@pytest.mark.parametrize(
    "flags, level",
    [
        (LoggingSettings(info=True, error=True, debug=True), logging.DEBUG),
        (LoggingSettings(info=True, error=True, debug=False), logging.INFO),
        (LoggingSettings(info=False, error=True, debug=False), logging.ERROR),
        (LoggingSettings(info=False, error=False, debug=False), logging.CRITICAL + 1),
    ],
)
def test_level_for(flags, level):
    assert logging_config.level_for(flags) == level


def test_verbose_forces_debug():
    quiet = LoggingSettings(info=False, error=False, debug=False)
    assert logging_config.level_for(quiet, verbose=True) == logging.DEBUG


def test_log_lines_reach_file(tmp_path: Path, restore_loggers):
    log_file = tmp_path / "logs" / "krouter.log"
    logging_config.configure_logging(ProgramSettings(log_file_path=log_file))

    logging.getLogger("krouter.reconciler").info("Configured tunnel: %s", "gre1")
    logging.getLogger("krouter.reconciler").debug("not at info level")
    for handler in logging_config._installed:
        handler.flush()

    content = log_file.read_text()
    assert "| INFO     | krouter.reconciler | Configured tunnel: gre1" in content
    assert "not at info level" not in content


def test_reconfigure_replaces_handlers(tmp_path: Path, restore_loggers):
    first = ProgramSettings(log_file_path=tmp_path / "a.log")
    second = ProgramSettings(log_file_path=tmp_path / "b.log")

    logging_config.configure_logging(first)
    logging_config.configure_logging(second)

    handlers = logging.getLogger("krouter").handlers
    assert len(handlers) == 2
    logging.getLogger("krouter").error("after reload")
    for handler in handlers:
        handler.flush()
    assert "after reload" in (tmp_path / "b.log").read_text()
    assert "after reload" not in (tmp_path / "a.log").read_text()
