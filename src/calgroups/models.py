"""Data models for scanned candidates, entities and engine state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Candidate:
    """Serialized features of one candidate container, as reported by the probe."""

    token: str
    text: str = ""
    aria_label: str = ""
    title: str = ""
    descendant_label: str = ""
    descendant_title: str = ""
    short_texts: tuple[str, ...] = ()
    native_ids: tuple[tuple[str, str], ...] = ()
    sibling_index: int = 0
    toggle_count: int = 0
    structural_path: str = ""

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Candidate":
        token = str(payload.get("token", "") or "").strip()
        if not token:
            raise ValueError("candidate payload without token")
        native_ids: list[tuple[str, str]] = []
        for item in payload.get("nativeIds") or []:
            if isinstance(item, (list, tuple)) and len(item) == 2 and str(item[1]).strip():
                native_ids.append((str(item[0]), str(item[1]).strip()))
        return cls(
            token=token,
            text=str(payload.get("text", "") or ""),
            aria_label=str(payload.get("ariaLabel", "") or ""),
            title=str(payload.get("title", "") or ""),
            descendant_label=str(payload.get("descendantLabel", "") or ""),
            descendant_title=str(payload.get("descendantTitle", "") or ""),
            short_texts=tuple(str(item) for item in (payload.get("shortTexts") or [])),
            native_ids=tuple(native_ids),
            sibling_index=_as_int(payload.get("siblingIndex")),
            toggle_count=_as_int(payload.get("toggleCount")),
            structural_path=str(payload.get("path", "") or ""),
        )


@dataclass(frozen=True)
class Harvested:
    """A candidate seen during a reveal pass, with its visibility when seen."""

    candidate: Candidate
    visible: bool


@dataclass
class Entity:
    id: str
    name: str
    visible: bool
    token: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "visible": self.visible}


@dataclass(frozen=True)
class ToggleOutcome:
    entity_id: str
    target: bool
    converged: bool
    method: str = ""
    attempts: int = 0


@dataclass(frozen=True)
class EngineState:
    active_group: str | None = None

    @property
    def idle(self) -> bool:
        return self.active_group is None

    def label(self) -> str:
        return "idle" if self.idle else f"group_active:{self.active_group}"


@dataclass
class ScanResult:
    entities: list[Entity] = field(default_factory=list)
    strategy_counts: dict[str, int] = field(default_factory=dict)
    rejected: int = 0


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0
