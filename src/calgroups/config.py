"""Environment-driven engine settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Any

from calgroups.constants import DEFAULT_HOSTS


@dataclass(frozen=True)
class EngineConfig:
    hosts: tuple[str, ...] = field(default=DEFAULT_HOSTS)
    settle_ms: int = 200
    reveal_timeout_seconds: float = 20.0
    observe_timeout_seconds: float = 3.0
    quiet_intervals: int = 5
    ready_timeout_seconds: float = 15.0
    journal_size: int = 200
    log_path: str = ""

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        clean = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **clean)


def load_config() -> EngineConfig:
    hosts_raw = os.getenv("CALGROUPS_HOSTS", "")
    hosts = tuple(item.strip().lower() for item in hosts_raw.split(",") if item.strip())
    return EngineConfig(
        hosts=hosts or DEFAULT_HOSTS,
        settle_ms=_env_int("CALGROUPS_SETTLE_MS", 200, minimum=0),
        reveal_timeout_seconds=_env_float("CALGROUPS_REVEAL_TIMEOUT_S", 20.0),
        observe_timeout_seconds=_env_float("CALGROUPS_OBSERVE_TIMEOUT_S", 3.0),
        quiet_intervals=_env_int("CALGROUPS_QUIET_INTERVALS", 5, minimum=1),
        ready_timeout_seconds=_env_float("CALGROUPS_READY_TIMEOUT_S", 15.0),
        journal_size=_env_int("CALGROUPS_JOURNAL_SIZE", 200, minimum=10),
        log_path=os.getenv("CALGROUPS_LOG_PATH", "").strip(),
    )


def _env_int(name: str, default: int, *, minimum: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return max(0.1, float(raw))
    except ValueError:
        return default
