"""Read and set one entity's visibility through its toggle control."""

from __future__ import annotations

from typing import Any

from calgroups.constants import TOGGLE_LADDER
from calgroups.errors import ConvergenceFailure
from calgroups.journal import Journal
from calgroups.models import Entity, ToggleOutcome


def read_visibility(state: Any) -> bool | None:
    """Checked property, then aria-checked, then aria-pressed; first present wins."""
    if not isinstance(state, dict) or not state.get("ok"):
        return None
    if not state.get("hasControl"):
        return False
    checked = state.get("checkedProp")
    if isinstance(checked, bool):
        return checked
    for key in ("ariaChecked", "ariaPressed"):
        value = state.get(key)
        if value is not None:
            return str(value).strip().lower() == "true"
    return False


class VisibilityController:
    def __init__(
        self,
        host: Any,
        *,
        journal: Journal,
        settle_ms: int = 200,
        ladder: tuple[str, ...] = TOGGLE_LADDER,
    ) -> None:
        self._host = host
        self._journal = journal
        self._settle_ms = max(0, int(settle_ms))
        self._ladder = ladder

    async def read(self, token: str) -> bool | None:
        try:
            state = await self._host.call("readState", {"token": token}, default=None)
        except Exception as exc:
            self._journal.warn("read_state_failed", str(exc)[:300], token=token)
            return None
        return read_visibility(state)

    async def get(self, token: str) -> bool:
        return bool(await self.read(token))

    async def set(self, entity: Entity, target: bool) -> ToggleOutcome:
        target = bool(target)
        current = await self.read(entity.token)
        if current is None:
            self._journal.warn("entity_missing", entity.name, entity_id=entity.id)
            return ToggleOutcome(entity_id=entity.id, target=target, converged=False, method="missing")
        if current == target:
            entity.visible = target
            return ToggleOutcome(entity_id=entity.id, target=target, converged=True, method="noop")

        attempts = 0
        for rung in self._ladder:
            attempts += 1
            await self._interact(entity, rung, target)
            await self._host.pause(self._settle_ms)
            current = await self.read(entity.token)
            if current == target:
                entity.visible = target
                if attempts > 1:
                    self._journal.info("toggle_escalated", entity.name, entity_id=entity.id, method=rung)
                return ToggleOutcome(
                    entity_id=entity.id,
                    target=target,
                    converged=True,
                    method=rung,
                    attempts=attempts,
                )

        failure = ConvergenceFailure(entity.id, target, attempts)
        self._journal.error(failure.code, str(failure), entity_id=entity.id)
        entity.visible = bool(current)
        return ToggleOutcome(entity_id=entity.id, target=target, converged=False, attempts=attempts)

    async def _interact(self, entity: Entity, method: str, target: bool) -> None:
        try:
            result = await self._host.call(
                "interact",
                {"token": entity.token, "method": method, "target": target},
                default={"ok": False},
            )
        except Exception as exc:
            self._journal.warn("interaction_failed", str(exc)[:300], entity_id=entity.id, method=method)
            return
        if not isinstance(result, dict) or not result.get("ok"):
            self._journal.warn("interaction_rejected", entity.name, entity_id=entity.id, method=method)
