"""structlog events rendered as JSON lines by stdlib handlers.

Layout under ``<home>/logs``: ``harvester.log`` gets every event of the
application, ``error.log`` only errors, and ``sources/<slug>.log`` the events
of one catalog source (crawl progress, item failures).
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Iterable

import structlog
from pythonjsonlogger.jsonlogger import JsonFormatter

from .config.loader import home_dir, slugify

LOGGER_NAME = "listing_harvester"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_LOGGING_INITIALISED = False


def default_log_dir() -> Path:
    return home_dir() / "logs"


def source_log_path(source_name: str) -> Path:
    return default_log_dir() / "sources" / f"{slugify(source_name)}.log"


def _file_handler(path: Path, level: str) -> dict[str, Any]:
    return {
        "class": "logging.FileHandler",
        "level": level,
        "filename": str(path),
        "formatter": "json",
        "encoding": "utf-8",
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Install handlers once per process and return the application logger."""

    global _LOGGING_INITIALISED

    if not _LOGGING_INITIALISED:
        log_dir = default_log_dir()
        (log_dir / "sources").mkdir(parents=True, exist_ok=True)
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "json": {"()": JsonFormatter, "fmt": JSON_FORMAT}
                },
                "handlers": {
                    # the terminal belongs to the progress bar; only warnings get through
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": "DEBUG" if verbose else "WARNING",
                        "formatter": "json",
                    },
                    "harvester_file": _file_handler(log_dir / "harvester.log", level),
                    "error_file": _file_handler(log_dir / "error.log", "ERROR"),
                },
                "loggers": {
                    LOGGER_NAME: {
                        "handlers": ["console", "harvester_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger(LOGGER_NAME)


def source_logger(source_name: str, verbose: bool = False) -> structlog.BoundLogger:
    """Logger of one source; its events also reach ``sources/<slug>.log``."""

    configure_logging(verbose)
    path = source_log_path(source_name)
    path.parent.mkdir(parents=True, exist_ok=True)

    # child of LOGGER_NAME, so the global handlers still see every event
    py_logger = logging.getLogger(f"{LOGGER_NAME}.source.{slugify(source_name)}")
    if not any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(path)
        for handler in py_logger.handlers
    ):
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setFormatter(JsonFormatter(JSON_FORMAT))
        handler.setLevel(logging.INFO)
        py_logger.addHandler(handler)

    return structlog.get_logger(py_logger.name).bind(source=source_name)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return stream.readlines()[-line_count:]


def available_source_logs() -> Iterable[Path]:
    return sorted((default_log_dir() / "sources").glob("*.log"))


__all__ = [
    "LOGGER_NAME",
    "available_source_logs",
    "configure_logging",
    "default_log_dir",
    "source_log_path",
    "source_logger",
    "tail_log",
]
