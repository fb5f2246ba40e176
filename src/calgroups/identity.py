"""Stable (id, name) derivation for accepted candidates.

Everything here is a pure function of the candidate's serialized subtree, so
an unchanged host tree always yields the same identity across scans.
"""

from __future__ import annotations

import hashlib

from calgroups.common import alnum_only, collapse_ws
from calgroups.constants import (
    GENERATED_ID_PREFIX,
    GENERATED_TEXT_CHARS,
    MAX_NAME_LENGTH,
    POSITIONAL_NAME_PREFIX,
)
from calgroups.models import Candidate


def resolve_name(candidate: Candidate) -> str:
    for label in (
        candidate.aria_label,
        candidate.descendant_label,
        candidate.title,
        candidate.descendant_title,
    ):
        clean = collapse_ws(label)
        if clean:
            return clean
    for text in candidate.short_texts:
        clean = collapse_ws(text)
        if 0 < len(clean) < MAX_NAME_LENGTH:
            return clean
    lines = [line.strip() for line in candidate.text.splitlines() if line.strip()]
    if lines and len(lines[0]) < MAX_NAME_LENGTH:
        return collapse_ws(lines[0])
    return f"{POSITIONAL_NAME_PREFIX} {candidate.sibling_index + 1}"


def native_id(candidate: Candidate) -> str:
    for _attr, value in candidate.native_ids:
        if value:
            return value
    return ""


def generated_id(candidate: Candidate, name: str) -> str:
    base = alnum_only(name, replacement="_")
    text_part = alnum_only(candidate.text)[:GENERATED_TEXT_CHARS]
    return f"{GENERATED_ID_PREFIX}_{base}_{text_part}_{candidate.sibling_index}"


def resolve_identity(candidate: Candidate) -> tuple[str, str]:
    name = resolve_name(candidate)
    return native_id(candidate) or generated_id(candidate, name), name


def path_digest(structural_path: str) -> str:
    return hashlib.sha1(structural_path.encode("utf-8")).hexdigest()[:6]


def assign_identities(candidates: list[Candidate]) -> list[tuple[Candidate, str, str]]:
    """Resolve every candidate and split generated-id collisions.

    Candidates are ordered by structural path so the first holder of a
    generated id keeps it unchanged; later holders get a path digest suffix.
    Duplicate native ids collapse to the first holder.
    """
    ordered = sorted(candidates, key=lambda item: (item.structural_path, item.token))
    taken: set[str] = set()
    out: list[tuple[Candidate, str, str]] = []
    for candidate in ordered:
        entity_id, name = resolve_identity(candidate)
        if entity_id in taken:
            if native_id(candidate):
                continue
            entity_id = f"{entity_id}_{path_digest(candidate.structural_path)}"
            if entity_id in taken:
                continue
        taken.add(entity_id)
        out.append((candidate, entity_id, name))
    return out
