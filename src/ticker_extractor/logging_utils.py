"""Logging setup for the extractor.

Messages follow the ``event_name key=value ...`` convention, so the
formatters only add a UTC timestamp, level and logger name around them.
"""

import json
import logging
import logging.handlers
import sys
import time
from pathlib import Path
from typing import Optional

from .config import Settings, get_settings

_MAX_BYTES = 10 * 1024 * 1024


def _utc(record: logging.LogRecord) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created))


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        doc = {
            "ts": _utc(record),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            doc["exc"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False)


class PlainFormatter(logging.Formatter):
    """Single line per record with the level coloured for terminals."""

    LEVEL_COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self.LEVEL_COLOURS.get(record.levelname, "")
        reset = self.RESET if colour else ""
        line = (
            f"{_utc(record)} {colour}{record.levelname:<8}{reset} "
            f"{record.name}: {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _rotating(path: Path, backups: int, level: int = logging.NOTSET) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=_MAX_BYTES, backupCount=backups, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    return handler


def setup_logging(level: str = "INFO", settings: Optional[Settings] = None) -> None:
    """Route all loggers to ``<data_dir>/logs`` and the console.

    ``extractor.jsonl`` receives every record and ``errors.log`` only
    WARNING and above; both rotate at 10MB keeping ``log_rotation_days``
    backups. The console is JSON unless ``log_plain`` is set. A configured
    ``log_level`` takes precedence over ``level``.
    """
    settings = settings or get_settings()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel((settings.log_level or level or "INFO").upper())

    log_dir = Path(settings.data_dir) / "logs"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        root.addHandler(_rotating(log_dir / "extractor.jsonl", settings.log_rotation_days))
        root.addHandler(
            _rotating(log_dir / "errors.log", settings.log_rotation_days, logging.WARNING)
        )
    except OSError as e:
        # console only when the data dir is not writable
        sys.stderr.write(f"log_file_setup_failed dir={log_dir} err={e.__class__.__name__}\n")

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(PlainFormatter() if settings.log_plain else JsonFormatter())
    root.addHandler(console)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
