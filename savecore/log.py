"""Logging setup for the save system loggers."""

from __future__ import annotations

import logging
from pathlib import Path


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOGGER_NAMES = ("savecore", "savekit")


def configure_logging(
    level: int = logging.INFO,
    log_file: Path | str | None = None,
) -> list[logging.Logger]:
    """
    Install a stream handler (and optionally a file handler) on the
    package loggers.

    Calling it again replaces the handlers it installed before.

    Args:
        level: Logging level, e.g. config.log_level
        log_file: Optional file to write the log to

    Returns:
        The configured package loggers
    """
    formatter = logging.Formatter(LOG_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, mode="a", encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)

    loggers = []
    for name in LOGGER_NAMES:
        package_logger = logging.getLogger(name)
        package_logger.setLevel(level)
        for old in list(package_logger.handlers):
            package_logger.removeHandler(old)
            old.close()
        package_logger.propagate = False
        for handler in handlers:
            package_logger.addHandler(handler)
        loggers.append(package_logger)

    return loggers
