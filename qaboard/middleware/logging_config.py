"""
Structured logging configuration.

- Development: human-readable colored format
- Production: JSON format (log aggregator compatible)
- LOG_LEVEL / LOG_FORMAT config keys override the environment defaults

Every record passes through RequestContextFilter, so lines logged while
serving a request (including report engine lines) carry its request id.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_app_context

# Record attributes copied into JSON log lines when present (passed via ``extra=``)
_EXTRA_FIELDS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "project_id",
    "report_type",
    "metric_id",
    "dimension_id",
    "row_count",
)

_NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


class RequestContextFilter(logging.Filter):
    """Attach the current request id (set by the timing middleware) to records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_app_context():
            record.request_id = g.get("request_id")
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        request_id = getattr(record, "request_id", None)
        rid = f" [{request_id}]" if request_id else ""
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        base = (f"{color}{ts} {record.levelname:<8}{self.RESET}{rid} "
                f"{record.name}: {record.getMessage()}{dur_str}")
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(app):
    """
    Set up structured logging for the Flask app.

    Level: LOG_LEVEL config, else DEBUG in dev/test and INFO in prod.
    Format: LOG_FORMAT config ("json" | "readable"), else JSON in prod only.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = (app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")).upper()
    level = getattr(logging, level_name, logging.INFO)

    log_format = (app.config.get("LOG_FORMAT") or ("json" if is_prod else "readable")).lower()
    formatter = JSONFormatter() if log_format == "json" else ReadableFormatter()

    # Single root stream handler; cleared first so repeated create_app calls don't duplicate
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, log_format)
