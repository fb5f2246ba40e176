"""Read-only view of externally persisted group definitions."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Mapping

from calgroups.storage import read_json


@dataclass(frozen=True)
class GroupDefinition:
    group_id: str
    name: str
    selection: tuple[str, ...]

    @classmethod
    def from_dict(cls, group_id: str, payload: dict[str, Any]) -> "GroupDefinition":
        if not isinstance(payload, dict):
            raise ValueError(f"group '{group_id}' must be an object")
        raw = payload.get("selection", payload.get("calendars", []))
        if not isinstance(raw, list) or any(not isinstance(item, str) for item in raw):
            raise ValueError(f"group '{group_id}' selection must be a list of strings")
        name = payload.get("name", group_id)
        return cls(group_id=group_id, name=str(name or group_id), selection=tuple(raw))


class GroupDefinitions(Mapping[str, GroupDefinition]):
    def __init__(self, groups: Mapping[str, GroupDefinition] | None = None) -> None:
        self._groups = dict(groups or {})

    @classmethod
    def from_payload(cls, payload: Any) -> "GroupDefinitions":
        if isinstance(payload, dict) and isinstance(payload.get("groups"), dict):
            payload = payload["groups"]
        if not isinstance(payload, dict):
            raise ValueError("group definitions must be an object")
        return cls({str(key): GroupDefinition.from_dict(str(key), value) for key, value in payload.items()})

    def __getitem__(self, group_id: str) -> GroupDefinition:
        return self._groups[group_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)


class GroupFile(Mapping[str, GroupDefinition]):
    """Group definitions backed by a JSON file that another process owns.

    The file is re-read whenever its modification time changes; a missing
    file reads as no groups.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._mtime: float | None = None
        self._cached = GroupDefinitions()

    def current(self) -> GroupDefinitions:
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            self._mtime = None
            self._cached = GroupDefinitions()
            return self._cached
        if mtime != self._mtime:
            self._cached = GroupDefinitions.from_payload(read_json(self.path))
            self._mtime = mtime
        return self._cached

    def __getitem__(self, group_id: str) -> GroupDefinition:
        return self.current()[group_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self.current())

    def __len__(self) -> int:
        return len(self.current())
