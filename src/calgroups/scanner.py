"""Multi-strategy entity discovery over the live host tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from calgroups.common import collapse_ws, contains_word
from calgroups.constants import (
    MARKUP_PATTERNS,
    MAX_DESCRIPTIVE_TEXT,
    SECTION_LABEL_TEXTS,
    SECTION_SELECTORS,
    SIDEBAR_SELECTORS,
    SYSTEM_ITEM_DENYLIST,
)
from calgroups.errors import NoEntitiesFound
from calgroups.identity import assign_identities, resolve_name
from calgroups.journal import Journal
from calgroups.models import Candidate, Entity, Harvested, ScanResult
from calgroups.visibility import VisibilityController


@dataclass(frozen=True)
class Strategy:
    """One independent discovery pass, backed by a probe collection op."""

    name: str
    op: str
    args: dict[str, Any] = field(default_factory=dict)

    async def run(self, host: Any) -> dict[str, Candidate]:
        raw = await host.call(self.op, dict(self.args), default=[])
        return parse_candidates(raw)


DEFAULT_STRATEGIES = (
    Strategy("sections", "collectRoots", {"selectors": list(SECTION_SELECTORS)}),
    Strategy("toggles", "collectToggles"),
    Strategy("sidebar", "collectRoots", {"selectors": list(SIDEBAR_SELECTORS)}),
    Strategy("markup", "collectPatterns", {"selectors": list(MARKUP_PATTERNS)}),
    Strategy("section_labels", "collectNearText", {"labels": list(SECTION_LABEL_TEXTS)}),
)


def parse_candidates(raw: Any) -> dict[str, Candidate]:
    out: dict[str, Candidate] = {}
    if not isinstance(raw, list):
        return out
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            candidate = Candidate.from_dict(item)
        except ValueError:
            continue
        out.setdefault(candidate.token, candidate)
    return out


def is_system_item(candidate: Candidate) -> bool:
    fields = (candidate.text, candidate.aria_label, candidate.title, resolve_name(candidate))
    return any(contains_word(value, item) for item in SYSTEM_ITEM_DENYLIST for value in fields)


def rejection_reason(candidate: Candidate) -> str:
    if candidate.toggle_count != 1:
        return "toggle_count"
    text = candidate.text.strip()
    descriptive = text or collapse_ws(candidate.aria_label) or collapse_ws(candidate.title)
    if not descriptive:
        return "no_text"
    if len(descriptive) >= MAX_DESCRIPTIVE_TEXT or "\n\n" in text:
        return "text_block"
    if is_system_item(candidate):
        return "system_item"
    return ""


def accept_candidate(candidate: Candidate) -> bool:
    return not rejection_reason(candidate)


class EntityScanner:
    def __init__(
        self,
        host: Any,
        visibility: VisibilityController,
        *,
        journal: Journal,
        strategies: Iterable[Strategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self._host = host
        self._visibility = visibility
        self._journal = journal
        self._strategies = tuple(strategies)

    async def collect(self) -> tuple[dict[str, Candidate], dict[str, int]]:
        union: dict[str, Candidate] = {}
        counts: dict[str, int] = {}
        # Strategies run in series; a later one may see what an earlier one expanded.
        for strategy in self._strategies:
            try:
                found = await strategy.run(self._host)
            except Exception as exc:
                self._journal.warn("strategy_failed", str(exc)[:300], strategy=strategy.name)
                found = {}
            counts[strategy.name] = len(found)
            for token, candidate in found.items():
                union.setdefault(token, candidate)
        return union, counts

    async def describe(self, tokens: Iterable[str]) -> dict[str, Candidate]:
        wanted = sorted(set(tokens))
        if not wanted:
            return {}
        raw = await self._host.call("describe", {"tokens": wanted}, default=[])
        return parse_candidates(raw)

    async def scan(self, *, revealed: Mapping[str, Harvested] | None = None) -> ScanResult:
        """Collect, filter and identify entities.

        ``revealed`` carries candidates harvested by a reveal pass. A live
        description wins when the node still resolves; otherwise the harvested
        features and visibility stand in for it.
        """
        candidates, counts = await self.collect()
        revealed = revealed or {}
        live = await self.describe(token for token in revealed if token not in candidates)
        detached = {
            token: item
            for token, item in revealed.items()
            if token not in candidates and token not in live
        }
        if live or detached:
            counts["revealed"] = len(live) + len(detached)
            candidates.update(live)
            candidates.update({token: item.candidate for token, item in detached.items()})

        accepted: list[Candidate] = []
        rejected = 0
        for candidate in candidates.values():
            if accept_candidate(candidate):
                accepted.append(candidate)
            else:
                rejected += 1

        entities: list[Entity] = []
        for candidate, entity_id, name in assign_identities(accepted):
            if candidate.token in detached:
                visible = detached[candidate.token].visible
            else:
                visible = await self._visibility.get(candidate.token)
            entities.append(Entity(id=entity_id, name=name, visible=visible, token=candidate.token))

        self._journal.info(
            "scan",
            f"{len(entities)} entities from {len(candidates)} candidates",
            strategies=counts,
            rejected=rejected,
        )
        if not entities:
            self._journal.warn(NoEntitiesFound.code, "scan returned no entities")
        return ScanResult(entities=entities, strategy_counts=counts, rejected=rejected)
