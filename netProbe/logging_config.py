"""
Centralized logging configuration for netProbe.

Provides structured JSONL logging with rotation, context injection,
and component-specific loggers. Enabled by default with environment
variable configuration.

Scan ID Propagation:
    Use `set_scan_id()` at the start of a scan. asyncio tasks copy the
    current context when they are created, so every work unit spawned
    afterwards logs with the same scan ID.

    Example:
        from netProbe.logging_config import set_scan_id, get_logger

        token = set_scan_id(uuid.uuid4().hex)
        logger.info("Scanning", extra={"target": "10.0.0.1"})
        # Log will include: "scan_id": "<hex>"
"""
import contextvars
import logging
import logging.handlers
import json
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit
import traceback


# Context variable for scan ID propagation across async boundaries
_scan_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "scan_id", default=""
)


def set_scan_id(scan_id: str) -> contextvars.Token:
    """
    Set the current scan ID for this async context.

    Args:
        scan_id: The scan ID to set

    Returns:
        Token that can be used to reset the context variable
    """
    return _scan_id_var.set(scan_id)


def get_scan_id() -> str:
    """Return the current scan ID, or empty string if not set."""
    return _scan_id_var.get()


def reset_scan_id(token: contextvars.Token) -> None:
    _scan_id_var.reset(token)


class JSONLFormatter(logging.Formatter):
    """
    Custom formatter that outputs logs in JSON Lines format.
    Each log entry is a single-line JSON object with standardized fields.
    Automatically includes scan_id from contextvars if set.
    """

    # Extra attributes copied onto the JSON line when a call sets them
    EXTRA_ATTRS = (
        "target", "domain", "network", "duration", "outcome", "state",
        "error_type", "error_code", "qtype", "transport", "concurrency",
        "timeout", "batch_size", "rows_affected", "action", "stats",
        "db_target", "num_addresses",
    )

    def __init__(self, component: str = "netprobe"):
        super().__init__()
        self.component = component
        self.hostname = os.getenv("HOSTNAME", os.getenv("COMPUTERNAME", "unknown"))

    def format(self, record: logging.LogRecord) -> str:
        """
        Format a log record as a JSON line.

        Args:
            record: The log record to format

        Returns:
            JSON string representation of the log record
        """
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "component": self.component,
            "logger": record.name,
            "message": record.getMessage(),
            "hostname": self.hostname,
            "process_id": record.process,
            "thread_id": record.thread,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        scan_id = get_scan_id()
        if scan_id:
            log_data["scan_id"] = scan_id

        # Add exception information if present
        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        for attr in self.EXTRA_ATTRS:
            if hasattr(record, attr):
                log_data[attr] = getattr(record, attr)

        return json.dumps(log_data, default=str)


def setup_logging(
    component: str = "netprobe",
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: int = 10,
    enable_console: bool = True
) -> logging.Logger:
    """
    Set up logging configuration for a netProbe component.

    Args:
        component: Component name (scanner, dispatcher, db, cli)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (default: logs/netprobe.jsonl)
        max_bytes: Max bytes per log file before rotation (default: 100MB)
        backup_count: Number of backup files to keep (default: 10)
        enable_console: Whether to enable console logging (default: True)

    Returns:
        Configured logger instance
    """
    log_level = (log_level or os.getenv("NETPROBE_LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("NETPROBE_LOG_FILE", "logs/netprobe.jsonl")
    max_bytes = max_bytes or int(os.getenv("NETPROBE_LOG_MAX_BYTES", str(100 * 1024 * 1024)))  # 100MB

    numeric_level = getattr(logging, log_level, logging.INFO)

    logger = logging.getLogger(f"netprobe.{component}")
    logger.setLevel(numeric_level)
    logger.propagate = False  # Don't propagate to root logger

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    log_dir = os.path.dirname(log_file)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir, exist_ok=True)

    formatter = JSONLFormatter(component=component)

    try:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except (IOError, OSError) as e:
        # If we can't write to file, log to stderr
        sys.stderr.write(f"Failed to set up file logging to {log_file}: {e}\n")

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    logger.debug(
        "Logging configured",
        extra={"state": "configured", "action": "setup_logging"}
    )

    return logger


def get_logger(component: str) -> logging.Logger:
    """
    Get or create a logger for a component.

    The logger is configured with defaults the first time it is requested.
    """
    logger = logging.getLogger(f"netprobe.{component}")

    if not logger.handlers:
        logger = setup_logging(component)

    return logger


def sanitize_dsn(dsn: str) -> str:
    """
    Mask the password of a database DSN so it can be logged.

    File paths and DSNs without credentials are returned unchanged.
    """
    if "://" not in dsn:
        return dsn
    parts = urlsplit(dsn)
    if parts.password is None:
        return dsn
    netloc = parts.netloc.rsplit("@", 1)[-1]
    user = parts.username or ""
    return urlunsplit(parts._replace(netloc=f"{user}:***REDACTED***@{netloc}"))
