"""Logging setup shared by the CLI and the daemon."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

LOG_LEVEL_ENV = "WEB_BROWSE_LOG_LEVEL"


class _JsonFormatter(logging.Formatter):
    """One JSON object per line, for log files that get machine-read."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(
    level: str | None = None,
    *,
    log_file: str | Path | None = None,
    json_format: bool = False,
) -> None:
    """Set up root logging.

    Args:
        level: Level name. Falls back to ``WEB_BROWSE_LOG_LEVEL``, then ``WARNING``.
        log_file: Optional file to append to in addition to stderr.
        json_format: Emit JSON lines instead of the plain-text format.
    """
    level_name = (level or os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()

    if json_format:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s — %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level_name, logging.WARNING))

    # Quieten noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
