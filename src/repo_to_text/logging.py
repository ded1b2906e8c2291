from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

_LOGGING_CONFIGURED = False


def setup_logging(filename: str | Path | None = None, level: str = "INFO") -> structlog.BoundLogger:
    """Set up structured JSON logging for the repo_to_text package.

    Logs go to stderr so that an artifact written to stdout stays clean. Calling
    again adjusts the level and, when `filename` is given, adds a file handler.

    Args:
        filename: Optional path to a log file, in addition to stderr.
        level: Minimum level name, e.g. "DEBUG" or "WARNING".

    Returns:
        A structlog logger instance named after the package.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    numeric = logging.getLevelNamesMapping()[level.upper()]
    root = logging.getLogger()
    if not _LOGGING_CONFIGURED:
        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
        if filename:
            handlers.append(logging.FileHandler(str(filename), encoding="utf-8"))
        logging.basicConfig(level=numeric, handlers=handlers, format="%(message)s")
        _LOGGING_CONFIGURED = True
    else:
        root.setLevel(numeric)
        if filename:
            root.addHandler(logging.FileHandler(str(filename), encoding="utf-8"))

    # Not cached: the module-level proxy must pick up a level changed by the CLI.
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    return structlog.get_logger("repo_to_text")


logger = setup_logging()
