"""Group activation state machine over the discovered entities."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Iterable

from calgroups.config import EngineConfig
from calgroups.journal import Journal
from calgroups.models import EngineState, Entity, Harvested, ScanResult, ToggleOutcome
from calgroups.mutation_watch import Clock
from calgroups.revealer import RevealReport, VirtualizationRevealer
from calgroups.scanner import EntityScanner
from calgroups.visibility import VisibilityController


@dataclass
class TransitionReport:
    group_id: str | None
    toggled: list[ToggleOutcome] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)

    @property
    def failures(self) -> list[ToggleOutcome]:
        return [outcome for outcome in self.toggled if not outcome.converged]


class GroupEngine:
    """One engine per page load.

    Holds the active group and the pre-session snapshot; ``reset`` drops both
    when the host document is replaced.
    """

    def __init__(
        self,
        host: Any,
        *,
        config: EngineConfig | None = None,
        journal: Journal | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.host = host
        self.config = config or EngineConfig()
        self.journal = journal or Journal(self.config.journal_size, self.config.log_path)
        self.clock = clock
        self.visibility = VisibilityController(
            host,
            journal=self.journal,
            settle_ms=self.config.settle_ms,
        )
        self.scanner = EntityScanner(host, self.visibility, journal=self.journal)
        self.revealer = VirtualizationRevealer(host, journal=self.journal, config=self.config, clock=clock)
        self._state = EngineState()
        self._snapshot: dict[str, bool] = {}
        self._revealed: dict[str, Harvested] = {}
        self.last_reveal: RevealReport | None = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def snapshot(self) -> dict[str, bool]:
        return dict(self._snapshot)

    def reset(self) -> None:
        self._state = EngineState()
        self._snapshot.clear()
        self._revealed.clear()
        self.last_reveal = None
        self.journal.info("engine_reset", "state cleared")

    async def discover(self, *, force_reveal: bool = False) -> ScanResult:
        if force_reveal:
            self.last_reveal = await self.revealer.reveal()
            self._revealed.update(self.last_reveal.harvested)
        result = await self.scanner.scan(revealed=self._revealed)
        current = {entity.token: entity.visible for entity in result.entities}
        self._revealed = {
            token: Harvested(candidate=item.candidate, visible=current[token])
            for token, item in self._revealed.items()
            if token in current
        }
        return result

    async def activate(self, group_id: str, selection: Iterable[str]) -> TransitionReport:
        if self._state.active_group == group_id:
            self.journal.info("group_toggle_off", group_id)
            return await self.restore()

        wanted = {str(item) for item in selection}
        entities = (await self.discover()).entities
        if self._state.idle:
            self._snapshot = {entity.id: entity.visible for entity in entities}
        else:
            # Entities first seen mid-session join the snapshot; existing entries stay.
            for entity in entities:
                self._snapshot.setdefault(entity.id, entity.visible)

        report = TransitionReport(group_id=group_id)
        for entity in entities:
            if entity.visible:
                report.toggled.append(await self.visibility.set(entity, False))
        known = {entity.id for entity in entities}
        for entity in entities:
            if entity.id in wanted:
                report.toggled.append(await self.visibility.set(entity, True))
        report.skipped_ids = sorted(wanted - known)

        previous = self._state.active_group
        self._state = EngineState(active_group=group_id)
        self._journal_transition("group_activated", report, previous=previous or "")
        return report

    async def restore(self) -> TransitionReport:
        report = TransitionReport(group_id=None)
        if self._state.idle:
            return report
        entities = (await self.discover()).entities
        seen: set[str] = set()
        for entity in entities:
            seen.add(entity.id)
            target = self._snapshot.get(entity.id)
            if target is None or entity.visible == target:
                continue
            report.toggled.append(await self.visibility.set(entity, target))
        report.skipped_ids = sorted(set(self._snapshot) - seen)

        previous = self._state.active_group
        self._snapshot.clear()
        self._state = EngineState()
        self._journal_transition("restored", report, previous=previous or "")
        return report

    def describe(self, entities: Iterable[Entity]) -> list[dict[str, Any]]:
        return [entity.to_dict() for entity in entities]

    def _journal_transition(self, event_type: str, report: TransitionReport, *, previous: str) -> None:
        failures = report.failures
        self.journal.record(
            event_type,
            report.group_id or previous,
            severity="warn" if failures else "info",
            toggled=len(report.toggled),
            failures=len(failures),
            skipped=len(report.skipped_ids),
            previous=previous,
        )
