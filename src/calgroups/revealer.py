"""Forced rendering of virtualized sidebar lists before a scan.

The reveal pass is invasive: it clicks section toggles, moves scroll offsets
and triggers reflows. It only runs on an explicit refresh request and every
loop in it is bounded by one shared wall-clock deadline.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from calgroups.config import EngineConfig
from calgroups.constants import (
    CALENDAR_AREA_SELECTORS,
    COLLAPSE_PAUSE_MS,
    EXPAND_PAUSE_MS,
    EXPANDABLE_SELECTORS,
    FINAL_RENDER_PAUSE_MS,
    JUMP_PAUSE_MS,
    OBSERVE_INTERVAL_MS,
    SCROLL_CONTAINER_SELECTORS,
    SECONDARY_SECTION_DRAWER,
    SECONDARY_SECTION_PATTERNS,
    SMOOTH_SCROLL_PAUSE_MS,
    SWEEP_PAUSE_MS,
    SWEEP_STEP_PX,
    WHEEL_EVENTS,
    WHEEL_PAUSE_MS,
)
from calgroups.journal import Journal
from calgroups.models import Candidate, Harvested
from calgroups.mutation_watch import Clock, Deadline, MutationWatch, WatchConfig
from calgroups.scanner import accept_candidate, parse_candidates
from calgroups.visibility import read_visibility

MAX_EXPANDABLES = 40
MAX_SWEEP_STEPS = 400


@dataclass
class Viewport:
    token: str
    scroll_top: int
    scroll_height: int
    client_height: int

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Viewport | None":
        token = str(payload.get("token", "") or "").strip()
        if not token:
            return None
        try:
            return cls(
                token=token,
                scroll_top=int(payload.get("scrollTop", 0) or 0),
                scroll_height=int(payload.get("scrollHeight", 0) or 0),
                client_height=int(payload.get("clientHeight", 0) or 0),
            )
        except (TypeError, ValueError):
            return None

    @property
    def overflowing(self) -> bool:
        return self.scroll_height > self.client_height


@dataclass
class RevealReport:
    secondary_collapsed: bool = False
    expanded: int = 0
    viewports: int = 0
    passes: int = 0
    harvested: dict[str, Harvested] = field(default_factory=dict)
    deadline_hit: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "secondary_collapsed": self.secondary_collapsed,
            "expanded": self.expanded,
            "viewports": self.viewports,
            "passes": self.passes,
            "revealed": len(self.harvested),
            "deadline_hit": self.deadline_hit,
        }


def jump_offsets(scroll_height: int, client_height: int) -> list[float]:
    sh = float(scroll_height)
    ch = float(client_height)
    positions = [0.0, ch / 2, ch, ch * 1.5, ch * 2, sh / 4, sh / 2, sh * 0.75, sh - ch, sh]
    return [pos for pos in positions if 0 <= pos <= sh]


def sweep_offsets(scroll_height: int, step: int = SWEEP_STEP_PX) -> list[int]:
    step = max(1, int(step))
    down = list(range(0, max(0, scroll_height) + 1, step))
    if len(down) > MAX_SWEEP_STEPS // 2:
        stride = len(down) // (MAX_SWEEP_STEPS // 2) + 1
        down = down[::stride]
    return down + list(reversed(down))


class VirtualizationRevealer:
    def __init__(
        self,
        host: Any,
        *,
        journal: Journal,
        config: EngineConfig,
        clock: Clock = time.monotonic,
    ) -> None:
        self._host = host
        self._journal = journal
        self._config = config
        self._clock = clock

    async def reveal(self) -> RevealReport:
        deadline = Deadline.after(self._config.reveal_timeout_seconds, clock=self._clock)
        report = RevealReport()
        originals: dict[str, int] = {}
        try:
            await self._expand_sections(deadline, report)
            viewports = await self._viewports()
            report.viewports = len(viewports)
            originals = {vp.token: vp.scroll_top for vp in viewports}
            for viewport in viewports:
                if deadline.expired():
                    break
                await self._scroll_passes(viewport, deadline, report)
            await self._nudge(viewports, deadline, report)
            watch = MutationWatch(
                self._host,
                accept=accept_candidate,
                config=WatchConfig(
                    interval_ms=OBSERVE_INTERVAL_MS,
                    quiet_intervals=self._config.quiet_intervals,
                    timeout_seconds=self._config.observe_timeout_seconds,
                ),
                journal=self._journal,
                clock=self._clock,
            )
            await self._keep(report, await watch.watch(deadline))
        except Exception as exc:
            self._journal.warn("reveal_failed", str(exc)[:300])
        finally:
            await self._restore_offsets(originals)
        if not deadline.expired():
            await self._host.pause(min(FINAL_RENDER_PAUSE_MS, deadline.remaining_ms()))
        report.deadline_hit = deadline.expired()
        self._journal.info("reveal", "reveal pass finished", **report.to_dict())
        return report

    async def _expand_sections(self, deadline: Deadline, report: RevealReport) -> None:
        section_args = {"patterns": list(SECONDARY_SECTION_PATTERNS), "drawer": SECONDARY_SECTION_DRAWER}
        secondary = await self._host.call("secondaryToggles", section_args, default=[])
        if isinstance(secondary, list) and secondary:
            result = await self._host.call("activate", {"token": str(secondary[0])}, default={})
            if isinstance(result, dict) and result.get("ok"):
                report.secondary_collapsed = True
                self._journal.info("secondary_collapsed", "collapsed secondary section")
                await self._pause(COLLAPSE_PAUSE_MS, deadline)

        expandables = await self._host.call(
            "expandables",
            {
                **section_args,
                "selectors": list(EXPANDABLE_SELECTORS),
                "areaSelectors": list(CALENDAR_AREA_SELECTORS),
            },
            default=[],
        )
        if not isinstance(expandables, list):
            return
        for token in expandables[:MAX_EXPANDABLES]:
            if deadline.expired():
                return
            result = await self._host.call("activate", {"token": str(token)}, default={})
            if isinstance(result, dict) and result.get("ok"):
                report.expanded += 1
            await self._pause(EXPAND_PAUSE_MS, deadline)

    async def _viewports(self) -> list[Viewport]:
        raw = await self._host.call(
            "scrollContainers",
            {"selectors": list(SCROLL_CONTAINER_SELECTORS)},
            default=[],
        )
        out: list[Viewport] = []
        for item in raw if isinstance(raw, list) else []:
            viewport = Viewport.from_dict(item) if isinstance(item, dict) else None
            if viewport is not None and viewport.overflowing:
                out.append(viewport)
        return out

    async def _scroll_passes(self, viewport: Viewport, deadline: Deadline, report: RevealReport) -> None:
        sh = viewport.scroll_height
        ch = max(1, viewport.client_height)

        # Coarse sweep, harvesting roughly once per viewport height.
        harvest_every = max(1, ch // SWEEP_STEP_PX)
        for index, offset in enumerate(sweep_offsets(sh)):
            if deadline.expired():
                return
            await self._scroll(viewport.token, offset)
            await self._pause(SWEEP_PAUSE_MS, deadline)
            if index % harvest_every == 0:
                await self._harvest(report)
        report.passes += 1
        await self._harvest(report)

        for offset in jump_offsets(sh, ch):
            if deadline.expired():
                return
            await self._scroll(viewport.token, offset)
            await self._pause(JUMP_PAUSE_MS, deadline)
            await self._harvest(report)
        report.passes += 1

        for _ in range(WHEEL_EVENTS):
            if deadline.expired():
                return
            await self._host.call("wheel", {"token": viewport.token, "deltaY": ch / 4}, default=None)
            await self._pause(WHEEL_PAUSE_MS, deadline)
        for top in (sh, 0):
            if deadline.expired():
                return
            await self._scroll(viewport.token, top, smooth=True)
            await self._pause(SMOOTH_SCROLL_PAUSE_MS, deadline)
            await self._harvest(report)
        report.passes += 1

    async def _nudge(self, viewports: list[Viewport], deadline: Deadline, report: RevealReport) -> None:
        for viewport in viewports:
            if deadline.expired():
                return
            await self._host.call("scrollEvents", {"token": viewport.token}, default=None)
            await self._pause(JUMP_PAUSE_MS, deadline)
        await self._host.call("reflow", {"selectors": list(CALENDAR_AREA_SELECTORS[:3])}, default=None)
        await self._pause(JUMP_PAUSE_MS, deadline)
        for viewport in viewports:
            if deadline.expired():
                return
            for phase, wait_ms in (("open", 100), ("pulse", 50), ("intoView", 50), ("close", 100)):
                await self._host.call("relax", {"token": viewport.token, "phase": phase}, default=None)
                await self._pause(wait_ms, deadline)
            await self._harvest(report)

    async def _restore_offsets(self, originals: dict[str, int]) -> None:
        for token, offset in originals.items():
            await self._scroll(token, offset)
        if originals:
            await self._host.pause(JUMP_PAUSE_MS)

    async def _harvest(self, report: RevealReport) -> None:
        await self._keep(report, parse_candidates(await self._host.call("collectToggles", {}, default=[])))

    async def _keep(self, report: RevealReport, found: dict[str, Candidate]) -> None:
        # Rendered rows may unmount once offsets are restored, so keep the
        # features and the visibility read while they are still attached.
        for token, candidate in found.items():
            if token in report.harvested or not accept_candidate(candidate):
                continue
            state = await self._host.call("readState", {"token": token}, default=None)
            report.harvested[token] = Harvested(candidate=candidate, visible=bool(read_visibility(state)))

    async def _scroll(self, token: str, top: float, *, smooth: bool = False) -> None:
        await self._host.call("scrollTo", {"token": token, "top": top, "smooth": smooth}, default=None)

    async def _pause(self, ms: int, deadline: Deadline) -> None:
        remaining = deadline.remaining_ms()
        if remaining > 0:
            await self._host.pause(min(int(ms), remaining))
