"""Logging setup for the monitor.

Every module logs through `logging.getLogger(__name__)`. This module only
decides where those records go:

- a RotatingFileHandler on the configured log file (the persistent alert
  history, see notify/log_sink.py)
- a console handler on stderr

Both share one format, either plain text or one JSON object per line.
"""

import json
import logging
import logging.handlers
import pathlib
from datetime import datetime, timezone

from config import Settings

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON object.

    Structured fields passed via `extra={"fields": {...}}` are embedded
    under "fields".
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if fields:
            entry["fields"] = fields
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def console_level(verbosity: int) -> int:
    """-v / -vv → INFO, -vvv → DEBUG, none → WARNING."""
    if verbosity >= 3:
        return logging.DEBUG
    if verbosity >= 1:
        return logging.INFO
    return logging.WARNING


def file_level(settings: Settings, verbosity: int = 0) -> int:
    """The configured LOG_LEVEL, unless -v was given on the command line."""
    if verbosity:
        return console_level(verbosity)
    return _LEVELS.get(settings.log_level, logging.INFO)


def configure_logging(settings: Settings, verbosity: int = 0, console: bool = True) -> None:
    """Install file and console handlers on the root logger.

    Safe to call more than once: handlers installed by a previous call are
    replaced rather than duplicated.
    """
    formatter: logging.Formatter
    if settings.log_format == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_cronwatch", False):
            root.removeHandler(handler)
            handler.close()

    log_path = pathlib.Path(settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8",
    )
    file_handler.setLevel(file_level(settings, verbosity))
    handlers: list[logging.Handler] = [file_handler]

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(console_level(verbosity))
        handlers.append(console_handler)

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._cronwatch = True
        root.addHandler(handler)

    root.setLevel(min(h.level for h in handlers))
