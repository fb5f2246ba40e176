"""Request/response surface exposed to the external orchestrator."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from calgroups.common import is_host_page
from calgroups.constants import LEGACY_ACTIONS, READY_POLL_MS
from calgroups.engine import GroupEngine
from calgroups.errors import EngineError, GroupNotFound, InvalidRequest, NotOnHostPage
from calgroups.groups import GroupDefinition
from calgroups.mutation_watch import Deadline

T = TypeVar("T")

ACTIONS = ("getEntities", "forceRefreshEntities", "activateGroup", "restoreAll", "getState")


class TransitionSlot:
    """Single-slot, latest-wins queue in front of state transitions.

    One transition runs at a time. A transition waiting behind it is dropped
    as soon as a newer one is submitted; exclusive work that is not a
    transition (a forced refresh) queues without displacing anything.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._generation = 0

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def submit(self, work: Callable[[], Awaitable[T]]) -> tuple[bool, T | None]:
        self._generation += 1
        ticket = self._generation
        async with self._lock:
            if ticket != self._generation:
                return False, None
            return True, await work()

    async def exclusive(self, work: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            return await work()


class MessagingGateway:
    def __init__(
        self,
        engine: GroupEngine,
        groups: Mapping[str, GroupDefinition] | None = None,
    ) -> None:
        self.engine = engine
        self.groups: Mapping[str, GroupDefinition] = groups if groups is not None else {}
        self.slot = TransitionSlot()
        self._ready = False
        self._handlers: dict[str, Callable[[dict[str, Any], bool], Awaitable[dict[str, Any]]]] = {
            "getEntities": self._get_entities,
            "forceRefreshEntities": self._force_refresh,
            "activateGroup": self._activate_group,
            "restoreAll": self._restore_all,
            "getState": self._get_state,
        }

    async def handle(self, message: Any) -> dict[str, Any]:
        """Dispatch one message; never raises."""
        try:
            action, legacy = self._action_of(message)
            handler = self._handlers.get(action)
            if handler is None:
                return {"error": "Unknown action"}
            return await handler(message, legacy)
        except EngineError as exc:
            self.engine.journal.warn(exc.code, str(exc))
            return {"error": str(exc), "code": exc.code}
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.engine.journal.error("handler_failed", str(exc)[:300])
            return {"error": str(exc) or exc.__class__.__name__}

    def _action_of(self, message: Any) -> tuple[str, bool]:
        if not isinstance(message, dict):
            raise InvalidRequest("Message must be an object")
        action = message.get("action")
        if not isinstance(action, str) or not action.strip():
            raise InvalidRequest("Message is missing an action")
        action = action.strip()
        if action in LEGACY_ACTIONS:
            return LEGACY_ACTIONS[action], True
        return action, False

    async def _prepare(self) -> None:
        host = self.engine.host
        if not is_host_page(host.url, self.engine.config.hosts):
            raise NotOnHostPage(f"Not on a calendar page: {host.url or 'about:blank'}")
        if await host.sync_load():
            self._ready = False
            self.engine.reset()
        if not self._ready:
            await self._wait_ready()
            self._ready = True

    async def _wait_ready(self) -> None:
        deadline = Deadline.after(self.engine.config.ready_timeout_seconds, clock=self.engine.clock)
        while True:
            count = await self.engine.host.call("toggleCount", {}, default=0)
            if isinstance(count, (int, float)) and count > 0:
                return
            if deadline.expired():
                self.engine.journal.warn("dom_not_ready", "no toggle controls before timeout")
                return
            await self.engine.host.pause(min(READY_POLL_MS, max(1, deadline.remaining_ms())))

    def _entities_payload(self, entities: list[Any], legacy: bool) -> dict[str, Any]:
        key = "calendars" if legacy else "entities"
        return {key: self.engine.describe(entities)}

    async def _get_entities(self, _message: dict[str, Any], legacy: bool) -> dict[str, Any]:
        await self._prepare()
        result = await self.engine.discover()
        return self._entities_payload(result.entities, legacy)

    async def _force_refresh(self, _message: dict[str, Any], legacy: bool) -> dict[str, Any]:
        await self._prepare()
        result = await self.slot.exclusive(lambda: self.engine.discover(force_reveal=True))
        return self._entities_payload(result.entities, legacy)

    async def _activate_group(self, message: dict[str, Any], _legacy: bool) -> dict[str, Any]:
        group_id = message.get("groupId")
        if not isinstance(group_id, str) or not group_id.strip():
            raise InvalidRequest("groupId must be a non-empty string")
        selection = self._resolve_selection(group_id, message.get("selection", message.get("calendars")))
        await self._prepare()
        ran, _report = await self.slot.submit(lambda: self.engine.activate(group_id, selection))
        payload: dict[str, Any] = {"success": True, "activeGroup": self.engine.state.active_group}
        if not ran:
            payload["superseded"] = True
        return payload

    async def _restore_all(self, _message: dict[str, Any], _legacy: bool) -> dict[str, Any]:
        await self._prepare()
        ran, _report = await self.slot.submit(self.engine.restore)
        payload: dict[str, Any] = {"success": True}
        if not ran:
            payload["superseded"] = True
        return payload

    async def _get_state(self, _message: dict[str, Any], _legacy: bool) -> dict[str, Any]:
        state = self.engine.state
        last_reveal = self.engine.last_reveal
        return {
            "state": state.label(),
            "activeGroup": state.active_group,
            "snapshotSize": len(self.engine.snapshot),
            "busy": self.slot.busy,
            "lastReveal": last_reveal.to_dict() if last_reveal is not None else None,
            "errorCount": self.engine.journal.error_count,
            "recentEvents": self.engine.journal.recent(),
        }

    def _resolve_selection(self, group_id: str, raw: Any) -> list[str]:
        if isinstance(raw, list) and raw and all(isinstance(item, str) for item in raw):
            return list(raw)
        group = self.groups.get(group_id)
        if group is None:
            raise GroupNotFound(group_id)
        return list(group.selection)
