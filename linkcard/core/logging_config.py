"""Logging configuration.

Console logs by default, rotating files with optional JSON output when a log directory
is configured. Binds lightweight contextvars (request_id/preview_url) to every record so
lines emitted from worker threads can be correlated with the request that caused them.
"""

import json
import logging
import logging.handlers
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Context variables bound by the HTTP middleware and by pipeline workers
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
preview_url_ctx: ContextVar[Optional[str]] = ContextVar("preview_url", default=None)

PLAIN_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_CONTEXT_FIELDS = ("request_id", "preview_url", "method", "endpoint", "status_code")


class JSONFormatter(logging.Formatter):
    """Emit logs as JSON for aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }

        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)
        if hasattr(record, "duration"):
            log_data["duration_ms"] = record.duration

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Add ANSI colors to console output for local readability."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class ContextEnricher(logging.Filter):
    """Inject contextvars (request_id, preview_url) into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = request_id_ctx.get()
        preview_url = preview_url_ctx.get()
        if request_id and not hasattr(record, "request_id"):
            record.request_id = request_id
        if preview_url and not hasattr(record, "preview_url"):
            record.preview_url = preview_url
        return True


def bind_log_context(
    *, request_id: Optional[str] = None, preview_url: Optional[str] = None
):
    """Bind context into contextvars; returns tokens for reset."""
    tokens = []
    if request_id is not None:
        tokens.append((request_id_ctx, request_id_ctx.set(request_id)))
    if preview_url is not None:
        tokens.append((preview_url_ctx, preview_url_ctx.set(preview_url)))
    return tokens


def reset_log_context(tokens) -> None:
    """Reset bound contextvars using tokens returned by bind_log_context."""
    for var, token in reversed(tokens):
        var.reset(token)


def _rotating_handler(
    path: Path, level: int, max_bytes: int, backup_count: int
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(level)
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    app_name: str = "linkcard",
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
    use_json: bool = False,
    use_colors: bool = True,
) -> None:
    """Configure root logging.

    Args:
        log_level: Minimum logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_dir: Directory to store log files; if None, logs only to console.
        app_name: Name used in log filenames.
        max_bytes: Max size per log file before rotation.
        backup_count: Number of rotated files to keep.
        use_json: If True, use JSON for file handlers.
        use_colors: If True, add ANSI colors to console output.
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        try:
            handler.flush()
        finally:
            handler.close()
            root_logger.removeHandler(handler)
    for existing in list(root_logger.filters):
        if isinstance(existing, ContextEnricher):
            root_logger.removeFilter(existing)

    context_filter = ContextEnricher()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    formatter_cls = ColoredFormatter if use_colors else logging.Formatter
    console_handler.setFormatter(formatter_cls(PLAIN_FORMAT, datefmt=DATE_FORMAT))
    console_handler.addFilter(context_filter)
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        general_handler = _rotating_handler(
            log_path / f"{app_name}.log", logging.DEBUG, max_bytes, backup_count
        )
        error_handler = _rotating_handler(
            log_path / f"{app_name}_error.log", logging.ERROR, max_bytes, backup_count
        )
        for handler in (general_handler, error_handler):
            if use_json:
                handler.setFormatter(JSONFormatter())
            else:
                handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=DATE_FORMAT))
            handler.addFilter(context_filter)
            root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.info(
        f"Logging configured. Level: {log_level}, Directory: {log_dir or 'console only'}"
    )


def log_request(
    method: str,
    endpoint: str,
    status_code: int,
    duration_ms: float,
    request_id: Optional[str] = None,
) -> None:
    """Log an HTTP request with structured data."""
    logger = logging.getLogger("access")
    extra = {
        "method": method,
        "endpoint": endpoint,
        "status_code": status_code,
        "duration": f"{duration_ms:.2f}",
    }
    if request_id:
        extra["request_id"] = request_id

    logger.info(f"{method} {endpoint} - {status_code} - {duration_ms:.2f}ms", extra=extra)
