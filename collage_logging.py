"""
Logging setup shared by ``collage.py`` and ``run_render.py``.

Console output follows ``--log-format``; a log file always gets the detailed
format so per-page timings can be matched to modules afterwards.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

FORMATS = {
    "simple": "%(levelname)s: %(message)s",
    "detailed": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}

# third-party loggers that flood DEBUG output with per-chunk decoder traces
NOISY_LOGGERS = ("PIL",)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for piping a run's log into other tools."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def make_formatter(format_style: str) -> logging.Formatter:
    if format_style == "json":
        return JsonFormatter()
    if format_style not in FORMATS:
        raise ValueError(f"unknown log format {format_style!r}; use simple, detailed or json")
    return logging.Formatter(FORMATS[format_style])


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    format_style: str = "simple",
) -> logging.Logger:
    """
    Configure the root logger for a collage run.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR); unknown names mean INFO
        log_file: Optional path that also receives every record
        format_style: Console format (simple, detailed, json)

    Returns:
        Configured root logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(make_formatter(format_style))
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(make_formatter("json" if format_style == "json" else "detailed"))
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.INFO))

    return logging.getLogger()
