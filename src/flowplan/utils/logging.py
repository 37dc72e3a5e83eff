"""Logging helpers.

FlowPlan uses standard library `logging`:
- `setup_logging()` configures the root logger once (file handler, optional stderr console).
- Tool calls get their own log file next to the main one.
- `JsonLogFormatter` emits machine-readable records when `log_json` is enabled.

Console output goes to stderr so stdout stays clean for the MCP stdio transport.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Optional

from ..config.settings import Settings, get_settings

_CONFIGURED = False

_RESERVED_RECORD_KEYS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
    "asctime",
}


class JsonLogFormatter(logging.Formatter):
    """Minimal JSON formatter for machine-readable logs."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Include `extra=` fields if present
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _RESERVED_RECORD_KEYS:
                continue
            if is_dataclass(value) and not isinstance(value, type):
                payload[key] = asdict(value)
            else:
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(settings: Optional[Settings] = None) -> Path:
    """Configure FlowPlan logging once and return the main log file path."""
    global _CONFIGURED
    settings = settings or get_settings()
    resolved = resolve_log_path(settings)
    if _CONFIGURED:
        return resolved

    resolved.parent.mkdir(parents=True, exist_ok=True)
    level = getattr(logging, settings.log_level, logging.INFO)

    if settings.log_json:
        formatter: logging.Formatter = JsonLogFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    root_handler = logging.FileHandler(resolved, encoding="utf-8")
    root_handler.setFormatter(formatter)

    tool_handler = logging.FileHandler(
        resolved.parent / f"{resolved.stem}_tool_calls.log",
        encoding="utf-8",
    )
    tool_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(root_handler)
    if settings.log_stdout:
        # StreamHandler defaults to stderr.
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    _attach_logger("flowplan.tool_calls", level, tool_handler)

    _CONFIGURED = True
    logging.getLogger(__name__).info("Logging initialized: %s", resolved)
    return resolved


def resolve_log_path(settings: Settings) -> Path:
    if settings.log_file is not None:
        return settings.log_file
    return settings.project_dir / ".claude" / "flowplans-logs" / "flowplan.log"


def _attach_logger(name: str, level: int, handler: logging.Handler) -> None:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False
