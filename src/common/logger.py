"""
Logging for the entitlement service.

Entitlement log lines carry who, what and which operation, with the user
id replaced by a short stable digest so logs never hold raw account ids:

    [record_purchase] [user:3f1a9c02] [tool:ats-checker] Purchase recorded
"""

import hashlib
import json
import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple


def redact_user_id(user_id: Optional[str]) -> str:
    """Short, stable, non-reversible tag for a user id."""
    if not user_id:
        return "anonymous"
    return hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:8]


class EntitlementLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with operation, redacted user and tool."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        parts = []
        if self.extra.get("operation"):
            parts.append(f"[{self.extra['operation']}]")
        parts.append(f"[user:{redact_user_id(self.extra.get('user_id'))}]")
        if self.extra.get("tool_id"):
            parts.append(f"[tool:{self.extra['tool_id']}]")
        return f"{' '.join(parts)} {msg}", kwargs


def get_logger(
    name: str,
    user_id: Optional[str] = None,
    tool_id: Optional[str] = None,
    operation: Optional[str] = None,
) -> EntitlementLogAdapter:
    """Logger bound to one user/tool operation."""
    return EntitlementLogAdapter(
        logging.getLogger(name),
        {"user_id": user_id, "tool_id": tool_id, "operation": operation},
    )


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(level: str = "INFO", format: str = "simple") -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        format: "simple" or "json"
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)
