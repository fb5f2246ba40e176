"""Bounded mutation observation and wall-clock deadlines for reveal passes."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable

from calgroups.journal import Journal
from calgroups.models import Candidate
from calgroups.scanner import parse_candidates


Clock = Callable[[], float]


@dataclass
class Deadline:
    expires_at: float
    clock: Clock = time.monotonic

    @classmethod
    def after(cls, seconds: float, *, clock: Clock = time.monotonic) -> "Deadline":
        return cls(expires_at=clock() + max(0.0, float(seconds)), clock=clock)

    def remaining_ms(self) -> int:
        return int(max(0.0, self.expires_at - self.clock()) * 1000)

    def expired(self) -> bool:
        # Sub-millisecond remainders count as expired.
        return self.remaining_ms() <= 0

    def earliest(self, other: "Deadline | None") -> "Deadline":
        if other is None or self.expires_at <= other.expires_at:
            return self
        return other


@dataclass
class WatchConfig:
    interval_ms: int
    quiet_intervals: int
    timeout_seconds: float


@dataclass
class WatchState:
    intervals: int = 0
    batches: int = 0
    quiet_streak: int = 0
    stop_reason: str = ""
    found: dict[str, Candidate] = field(default_factory=dict)


def poll_quiet(state: WatchState, *, new_count: int, quiet_limit: int) -> bool:
    """Advance the quiet streak; True once the watch has been quiet long enough."""
    state.intervals += 1
    if new_count > 0:
        state.quiet_streak = 0
        return False
    state.quiet_streak += 1
    return state.quiet_streak >= max(1, quiet_limit)


class MutationWatch:
    """Cancellable subscription to host tree mutations.

    Entering starts the in-page observer and leaving always disconnects it, so
    a cancelled request cannot leave an observer attached to the host.
    """

    def __init__(
        self,
        host: Any,
        *,
        accept: Callable[[Candidate], bool],
        config: WatchConfig,
        journal: Journal,
        clock: Clock = time.monotonic,
    ) -> None:
        self._host = host
        self._accept = accept
        self._config = config
        self._journal = journal
        self._clock = clock
        self.state = WatchState()

    async def __aenter__(self) -> "MutationWatch":
        await self._host.call("observeStart", {}, default=None)
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self._host.call("observeStop", {}, default=None)

    async def run(self, outer: Deadline | None = None) -> dict[str, Candidate]:
        deadline = Deadline.after(self._config.timeout_seconds, clock=self._clock).earliest(outer)
        state = self.state
        while True:
            if deadline.expired():
                state.stop_reason = "timeout"
                break
            await self._host.pause(min(self._config.interval_ms, max(1, deadline.remaining_ms())))
            drained = await self._host.call("observeDrain", {}, default={})
            if not isinstance(drained, dict):
                drained = {}
            state.batches += int(drained.get("batches", 0) or 0)
            fresh = {
                token: candidate
                for token, candidate in parse_candidates(drained.get("candidates")).items()
                if token not in state.found and self._accept(candidate)
            }
            state.found.update(fresh)
            if poll_quiet(state, new_count=len(fresh), quiet_limit=self._config.quiet_intervals):
                state.stop_reason = "quiet"
                break
        self._journal.info(
            "mutation_watch",
            f"{len(state.found)} new candidates",
            stop_reason=state.stop_reason,
            intervals=state.intervals,
            batches=state.batches,
        )
        return dict(state.found)

    async def watch(self, outer: Deadline | None = None) -> dict[str, Candidate]:
        async with self:
            return await self.run(outer)
