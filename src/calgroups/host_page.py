"""Playwright page wrapper that installs and calls the in-page probe."""

from __future__ import annotations

import asyncio
from typing import Any

from calgroups.journal import Journal
from calgroups.probe_script import (
    PROBE_CALL_JS,
    PROBE_INSTALL_JS,
    PROBE_PRESENT_JS,
    probe_config,
)


class HostPage:
    """Async facade over a Playwright ``Page``.

    Components only rely on ``call``, ``pause``, ``url`` and ``sync_load``, so
    tests substitute an in-memory host with the same surface.
    """

    def __init__(self, page: Any, *, journal: Journal | None = None) -> None:
        self._page = page
        self._journal = journal or Journal()
        self._load_id = ""
        self._replaced = False
        self._config = probe_config()

    @property
    def url(self) -> str:
        return str(getattr(self._page, "url", "") or "")

    async def install(self) -> str:
        load_id = await self._page.evaluate(PROBE_INSTALL_JS, self._config)
        return str(load_id or "")

    async def sync_load(self) -> bool:
        """Install the probe if needed; True when the document changed since the last sync."""
        try:
            current = str(await self._page.evaluate(PROBE_PRESENT_JS) or "")
            if not current:
                current = await self.install()
        except Exception as exc:
            self._journal.warn("probe_install_failed", str(exc))
            return False
        changed = self._replaced or (bool(self._load_id) and current != self._load_id)
        self._replaced = False
        self._load_id = current
        return changed

    async def call(self, op: str, args: dict[str, Any] | None = None, *, default: Any = None) -> Any:
        for attempt in range(2):
            try:
                return await self._page.evaluate(PROBE_CALL_JS, [op, args or {}])
            except Exception as exc:
                message = str(exc)
                if attempt == 0 and ("__calgroupsProbe" in message or "reading 'call'" in message):
                    # Document replaced underneath us; reinstall once.
                    self._replaced = True
                    try:
                        self._load_id = await self.install()
                    except Exception as install_exc:
                        self._journal.warn("probe_install_failed", str(install_exc)[:300], op=op)
                        break
                    continue
                self._journal.warn("probe_call_failed", message[:300], op=op)
                break
        return default

    async def pause(self, ms: int) -> None:
        wait = getattr(self._page, "wait_for_timeout", None)
        if callable(wait):
            try:
                await wait(max(0, int(ms)))
                return
            except Exception as exc:
                self._journal.warn("pause_failed", str(exc)[:300], ms=ms)
        await asyncio.sleep(max(0, int(ms)) / 1000.0)
