"""Bounded event journal shared by the engine components."""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from calgroups.storage import append_log


class Journal:
    def __init__(self, maxlen: int = 200, log_path: str = "") -> None:
        self._events: deque[dict[str, Any]] = deque(maxlen=max(10, int(maxlen)))
        self._log_path = Path(log_path) if log_path else None
        self._error_count = 0

    def record(self, event_type: str, message: str = "", *, severity: str = "info", **fields: Any) -> None:
        event: dict[str, Any] = {
            "type": str(event_type or "unknown").strip().lower(),
            "severity": severity if severity in {"info", "warn", "error"} else "warn",
            "message": str(message)[:400],
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        event.update(fields)
        self._events.append(event)
        if event["severity"] == "error":
            self._error_count += 1
        if self._log_path is not None:
            extras = " ".join(f"{key}={value}" for key, value in fields.items())
            line = f"{event['created_at']} {event['severity']} {event['type']} {event['message']}"
            try:
                append_log(self._log_path, f"{line} {extras}".rstrip())
            except OSError:
                self._log_path = None

    def info(self, event_type: str, message: str = "", **fields: Any) -> None:
        self.record(event_type, message, severity="info", **fields)

    def warn(self, event_type: str, message: str = "", **fields: Any) -> None:
        self.record(event_type, message, severity="warn", **fields)

    def error(self, event_type: str, message: str = "", **fields: Any) -> None:
        self.record(event_type, message, severity="error", **fields)

    def recent(self, count: int = 12) -> list[dict[str, Any]]:
        return list(self._events)[-max(0, count):]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [event for event in self._events if event["type"] == event_type]

    @property
    def error_count(self) -> int:
        return self._error_count
