from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "rail_pathfinder"
LOG_FILE_NAME = "pathfinder.log.jsonl"


class PathfinderJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record: ``timestamp``, ``level``, ``logger`` plus the event fields."""

    def __init__(self) -> None:
        super().__init__(
            "%(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
            timestamp=True,
        )

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        # The event name already sits in "event"; the duplicate message adds nothing.
        if log_record.get("message") == log_record.get("event"):
            log_record.pop("message", None)


def configure_logging(*, level: str | None = None, log_dir: Path | None = None) -> logging.Logger:
    """(Re)attach handlers to the pathfinder logger; safe to call more than once."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    resolved = logging.getLevelName((level or settings.log_level).upper())
    logger.setLevel(resolved if isinstance(resolved, int) else logging.INFO)
    logger.propagate = False

    formatter = PathfinderJsonFormatter()
    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    target = log_dir if log_dir is not None else Path(settings.out_dir) / "logs"
    try:
        target.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(target / LOG_FILE_NAME, encoding="utf-8")
    except OSError as exc:
        # Read-only deployments still get stream logs.
        logger.warning("log_file_unavailable", extra={"event": "log_file_unavailable", "error_message": str(exc)})
    else:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    return logger


def _logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging()
    return logger


def log_event(event: str, **fields: Any) -> None:
    _logger().info(event, extra={"event": event, **fields})


def log_warning(event: str, **fields: Any) -> None:
    _logger().warning(event, extra={"event": event, **fields})


@contextmanager
def timed_event(event: str, **fields: Any) -> Iterator[dict[str, Any]]:
    """Log ``event`` once the block exits, with ``duration_ms`` and any fields set inside it."""
    extra: dict[str, Any] = dict(fields)
    t0 = time.perf_counter()
    try:
        yield extra
    finally:
        extra["duration_ms"] = round((time.perf_counter() - t0) * 1000.0, 2)
        log_event(event, **extra)
