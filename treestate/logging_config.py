"""
Structured logging configuration.

Emits both human-readable and JSON logs. JSON logs include:
- Timestamp
- Level
- Subsystem
- Namespace
- Action path and payload
"""
from __future__ import annotations

import functools
import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Callable, Optional

from .bus import Stream, Unsubscribe
from .core.events import ActionEvent


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "ts": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "subsystem"):
            log_data["subsystem"] = record.subsystem
        if getattr(record, "namespace", None):
            log_data["namespace"] = record.namespace
        if getattr(record, "action", None):
            log_data["action"] = record.action
        if getattr(record, "payload", None) is not None:
            log_data["payload"] = record.payload
        if getattr(record, "extra_data", None):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=repr)


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

        subsystem = getattr(record, "subsystem", "general")
        if subsystem != "general":
            prefix_parts.append(f"[{subsystem}]")
        if getattr(record, "namespace", None):
            prefix_parts.append(f"ns={record.namespace}")

        line = f"{' '.join(prefix_parts)}: {record.getMessage()}"

        if self.use_colors and sys.stderr.isatty():
            color = self.COLORS.get(record.levelname, "")
            line = f"{color}{line}{self.RESET}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def log_structured(
    logger: logging.Logger,
    level: int,
    msg: str,
    namespace: Optional[str] = None,
    subsystem: str = "general",
    action: Optional[str] = None,
    payload: Optional[Any] = None,
    **extra,
) -> None:
    """Log with structured data on any logger."""
    if not logger.isEnabledFor(level):
        return
    record = logger.makeRecord(logger.name, level, "", 0, msg, (), None)
    record.namespace = namespace
    record.subsystem = subsystem
    record.action = action
    record.payload = payload
    record.extra_data = extra
    logger.handle(record)


def log_action(logger: logging.Logger, event: ActionEvent, level: int = logging.INFO) -> None:
    """Log an action event."""
    log_structured(
        logger,
        level,
        f"{event.action} dispatched",
        namespace=event.namespace,
        subsystem="actions",
        action=event.action,
        payload=list(event.payload),
        kwargs=dict(event.kwargs),
    )


class StructuredLogger(logging.Logger):
    """Logger with structured logging methods."""

    def action(self, event: ActionEvent, level: int = logging.INFO) -> None:
        """Log an action event."""
        log_action(self, event, level)


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
    logging.setLoggerClass(StructuredLogger)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers = []

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(HumanFormatter())
    root_logger.addHandler(console)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

        human_handler = RotatingFileHandler(
            os.path.join(log_dir, "treestate.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        human_handler.setFormatter(HumanFormatter(use_colors=False))
        root_logger.addHandler(human_handler)

        json_path = json_file or "treestate.json.log"
        if not os.path.isabs(json_path):
            json_path = os.path.join(log_dir, json_path)

        json_handler = RotatingFileHandler(
            json_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        json_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(json_handler)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger."""
    return logging.getLogger(name)  # type: ignore


def log_actions(
    stream: Stream[ActionEvent],
    logger: Optional[logging.Logger] = None,
) -> Unsubscribe:
    """
    Log every action event emitted on an adapted tree's stream.

    Returns:
        Unsubscribe function
    """
    target = logger or logging.getLogger("treestate.actions")
    handler: Callable[[ActionEvent], None] = functools.partial(log_action, target)
    return stream.subscribe(handler)
