"""
Structured logging configuration.

Emits both human-readable and JSON logs. JSON logs include:
- Timestamp
- Level
- Subsystem
- Policy key
- State key and action
- Event type
- Latency metrics

Library modules call ``logging.getLogger(__name__)`` or ``get_logger``;
handlers are installed by the application through ``configure_logging``.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        subsystem = getattr(record, "subsystem", None)
        if subsystem:
            log_data["subsystem"] = subsystem
        for name in ("policy_key", "state_key", "action"):
            value = getattr(record, name, None)
            if value:
                log_data[name] = value
        event_type = getattr(record, "event_type", None)
        if event_type:
            log_data["event"] = event_type
        latency_ms = getattr(record, "latency_ms", None)
        if latency_ms is not None:
            log_data["latency_ms"] = latency_ms
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """Human-readable format with colors."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        level = record.levelname[:4]

        prefix_parts = [f"{timestamp} {level}"]

        subsystem = getattr(record, "subsystem", None)
        if subsystem and subsystem != "general":
            prefix_parts.append(f"[{subsystem}]")
        policy_key = getattr(record, "policy_key", None)
        if policy_key:
            prefix_parts.append(f"policy={policy_key}")
        state_key = getattr(record, "state_key", None)
        if state_key:
            prefix_parts.append(f"state={state_key[:24]}")

        prefix = " ".join(prefix_parts)
        message = record.getMessage()

        latency_ms = getattr(record, "latency_ms", None)
        if latency_ms is not None:
            message = f"{message} ({latency_ms:.1f}ms)"

        line = f"{prefix}: {message}"

        if self.use_colors and sys.stderr.isatty():
            color = self.COLORS.get(record.levelname, "")
            line = f"{color}{line}{self.RESET}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class StructuredLogger(logging.LoggerAdapter):
    """
    Logger adapter with structured logging methods.

    Wraps a plain ``logging.Logger``, so it works for loggers created at
    import time, before ``configure_logging`` runs. Per-call ``extra``
    values are merged over the adapter's bound fields.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def _log_structured(
        self,
        level: int,
        msg: str,
        policy_key: Optional[str] = None,
        state_key: Optional[str] = None,
        action: Optional[str] = None,
        subsystem: Optional[str] = None,
        event_type: Optional[str] = None,
        latency_ms: Optional[float] = None,
        **extra,
    ) -> None:
        if not self.isEnabledFor(level):
            return
        fields = {
            "policy_key": policy_key,
            "state_key": state_key,
            "action": action,
            "subsystem": subsystem,
            "event_type": event_type,
            "latency_ms": latency_ms,
        }
        # Unset fields must not mask values bound on the adapter
        record_extra = {k: v for k, v in fields.items() if v is not None}
        record_extra["extra_data"] = extra
        self.log(level, msg, extra=record_extra)

    def event(self, event_type: str, msg: str, level: int = logging.INFO, **kwargs) -> None:
        """Log an event."""
        self._log_structured(level, msg, event_type=event_type, **kwargs)

    def latency(self, operation: str, latency_ms: float, **kwargs) -> None:
        """Log a latency measurement."""
        self._log_structured(logging.DEBUG, f"{operation} completed", latency_ms=latency_ms, **kwargs)


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    json_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files
        json_file: Path for JSON logs (in log_dir if relative)
        max_bytes: Max size per log file
        backup_count: Number of backup files to keep
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = []

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(HumanFormatter())
    root_logger.addHandler(console)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

        human_handler = RotatingFileHandler(
            os.path.join(log_dir, "qpolicy.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        human_handler.setFormatter(HumanFormatter(use_colors=False))
        root_logger.addHandler(human_handler)

        json_path = json_file or os.path.join(log_dir, "qpolicy.json.log")
        if not os.path.isabs(json_path):
            json_path = os.path.join(log_dir, json_path)

        json_handler = RotatingFileHandler(
            json_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        json_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(json_handler)


def get_logger(name: str, **fields: Any) -> StructuredLogger:
    """Get a structured logger, optionally binding fields to every record."""
    return StructuredLogger(logging.getLogger(name), fields)
