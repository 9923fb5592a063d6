"""
JSON logging for SocialGrid.

Modules log event names with keyword fields:

    from socialgrid.logging import get_logger
    logger = get_logger(__name__)
    logger.info("region_recomputed", region_id=region.id, population=42)

Each record becomes one JSON line carrying timestamp, level, logger, the
event name as message, and the keyword fields. Errors also record where
they were raised.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

NOISY_LOGGERS = ("httpx", "uvicorn", "sqlalchemy", "pymongo")


class StructuredLogFormatter(logging.Formatter):
    """Renders a record and its event fields as a JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "fields", {}))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if record.levelno >= logging.ERROR:
            entry["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(entry, default=str)


class StructuredLogger:
    """Logger facade taking an event name plus keyword fields."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event: str, exc_info: bool = False, **fields):
        self._logger.log(level, event, exc_info=exc_info, extra={"fields": fields})

    def debug(self, event: str, **fields):
        self._log(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields):
        self._log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields):
        self._log(logging.WARNING, event, **fields)

    def error(self, event: str, exc_info: bool = False, **fields):
        self._log(logging.ERROR, event, exc_info=exc_info, **fields)

    def exception(self, event: str, **fields):
        self._log(logging.ERROR, event, exc_info=True, **fields)


_configured = False


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_file: Optional[str] = None,
    force: bool = False,
):
    """
    Install root handlers: stdout, plus a JSON file when `log_file` is set.

    Runs once per process unless `force` is given.
    """
    global _configured
    if _configured and not force:
        return
    _configured = True

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    if json_output:
        console.setFormatter(StructuredLogFormatter())
    else:
        console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredLogFormatter())
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """Structured logger for a module; configures logging from settings on first use."""
    if not _configured:
        from .settings import settings
        configure_logging(
            level=settings.log_level,
            json_output=settings.log_json,
            log_file=settings.log_file,
        )
    return StructuredLogger(name)
