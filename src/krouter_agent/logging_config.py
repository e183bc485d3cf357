"""Logging sink configuration for the krouter agent.

Log lines go to stdout and, when ``program_settings.log_file_path`` is set,
to that file.  The three boolean flags in ``program_settings.logging`` pick
the level: ``debug`` wins over ``info`` which wins over ``error``.  With all
three off the agent's loggers are silenced.  Rotation is left to logrotate;
:class:`~logging.handlers.WatchedFileHandler` reopens the file after it has
been moved away.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import WatchedFileHandler
from typing import List

from krouter.config import LoggingSettings, ProgramSettings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Loggers owned by this project; handlers are attached here rather than to
# the root logger so library users keep control of their own logging.
PROJECT_LOGGERS = ("krouter", "krouter_agent")

_installed: List[logging.Handler] = []


def level_for(flags: LoggingSettings, verbose: bool = False) -> int:
    if verbose or flags.debug:
        return logging.DEBUG
    if flags.info:
        return logging.INFO
    if flags.error:
        return logging.ERROR
    return logging.CRITICAL + 1


def setup_bootstrap_logging(verbose: bool) -> None:
    """Console-only logging used until the configuration has been read."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stdout,
    )


def _remove_installed() -> None:
    for handler in _installed:
        for name in PROJECT_LOGGERS:
            logging.getLogger(name).removeHandler(handler)
        handler.close()
    _installed.clear()


def configure_logging(settings: ProgramSettings, verbose: bool = False) -> None:
    """Route project loggers according to ``settings``.

    Safe to call again after a configuration reload; previously installed
    handlers are replaced.
    """

    _remove_installed()
    level = level_for(settings.logging, verbose)
    formatter = logging.Formatter(LOG_FORMAT)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    file_error = None
    if settings.log_file_path is not None:
        try:
            settings.log_file_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(WatchedFileHandler(settings.log_file_path, encoding="utf-8"))
        except OSError as exc:
            file_error = exc

    for handler in handlers:
        handler.setFormatter(formatter)
        _installed.append(handler)

    for name in PROJECT_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.propagate = False
        for handler in handlers:
            logger.addHandler(handler)

    log = logging.getLogger(__name__)
    if file_error is not None:
        log.error("cannot open log file %s: %s", settings.log_file_path, file_error)
    else:
        log.debug(
            "Logging initialised: level=%s, file=%s",
            logging.getLevelName(level),
            settings.log_file_path,
        )
