"""
Structured JSON Logging for Stackwright
=======================================
Outputs one JSON line per log record, so a synth run can be piped into jq or
shipped to CloudWatch Logs from a CI job. The level defaults to INFO; the
entry points apply `Settings.log_level` (`LOG_LEVEL`) through `set_level`.

Usage:
  from stackwright.logger import get_logger
  logger = get_logger(__name__)
  logger.info("Stack created", extra={"component": "infrastructure", "environment": "nprd"})

Output:
  {"timestamp":"2024-01-01T00:00:00Z","level":"INFO","service":"stackwright.orchestrator",
   "message":"Stack created","component":"infrastructure","environment":"nprd"}
"""
from __future__ import annotations

import json
import logging
import sys
import time
from typing import Any

# Standard logging.LogRecord fields we don't want in the output
_STDLIB_FIELDS = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "message", "taskName",
}

_configured = False


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        log_obj: dict[str, Any] = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "service": record.name,
            "message": record.message,
        }

        for key, value in record.__dict__.items():
            if key not in _STDLIB_FIELDS:
                log_obj[key] = value

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger under the "stackwright" hierarchy emitting JSON lines.

    Logs go to stderr so the JSON plan printed by `stackwright plan` on
    stdout stays parseable. Idempotent, safe to call from every module.
    """
    global _configured
    if not _configured:
        root = logging.getLogger("stackwright")
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_JsonFormatter())
        root.addHandler(handler)
        root.propagate = False
        root.setLevel(logging.INFO)
        _configured = True
    return logging.getLogger(name)


def set_level(level: str) -> None:
    """Apply `Settings.log_level` to every stackwright logger."""
    get_logger("stackwright").setLevel(getattr(logging, level.upper(), logging.INFO))
