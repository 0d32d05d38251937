"""JSON structured logging for Lambda handlers."""

import json
import os
import traceback
from datetime import UTC, datetime
from typing import Any

LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}


class StructuredLogger:
    """JSON-formatted logger for CloudWatch Logs Insights."""

    def __init__(
        self,
        name: str,
        level: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self._name = name
        self._level = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
        self._context = dict(context or {})

    @property
    def level(self) -> str:
        return self._level

    def set_level(self, level: str) -> None:
        """Change the threshold of this logger (children bound later inherit it)."""
        self._level = level.upper()

    def bind(self, **context: Any) -> "StructuredLogger":
        """Return a child logger that adds ``context`` to every entry."""
        return StructuredLogger(self._name, self._level, {**self._context, **context})

    def is_enabled_for(self, level: str) -> bool:
        return LEVELS[level] >= LEVELS.get(self._level, LEVELS["INFO"])

    def _log(self, level: str, message: str, **extra: Any) -> None:
        if not self.is_enabled_for(level):
            return
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": level,
            "logger": self._name,
            "message": message,
            **self._context,
            **extra,
        }
        print(json.dumps(log_entry, default=str))

    def debug(self, message: str, **extra: Any) -> None:
        self._log("DEBUG", message, **extra)

    def info(self, message: str, **extra: Any) -> None:
        self._log("INFO", message, **extra)

    def warning(self, message: str, exc_info: bool = False, **extra: Any) -> None:
        if exc_info:
            extra["exception"] = traceback.format_exc()
        self._log("WARNING", message, **extra)

    def error(self, message: str, exc_info: bool = False, **extra: Any) -> None:
        if exc_info:
            extra["exception"] = traceback.format_exc()
        self._log("ERROR", message, **extra)
