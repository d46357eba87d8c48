"""Fuzzy duplicate detection over glossary term names."""

from __future__ import annotations

import logging
import re
from typing import List, Sequence, Set

from models import DuplicateGroup, DuplicateResolution, Entry

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 85.0
MIN_CONTAINED_LENGTH = 3
MIN_CONTAINMENT_RATIO = 0.5


def normalize(name: str) -> str:
    lowered = (name or "").lower()
    lowered = re.sub(r"[^a-z0-9\s]", " ", lowered)
    lowered = re.sub(r"\s+", " ", lowered)
    return lowered.strip()


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + cost,  # substitution
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Edit-distance similarity on a 0-100 scale."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 100.0
    return 100.0 * (max_len - levenshtein(a, b)) / max_len


def _is_acronym_expansion(short: str, long: str) -> bool:
    # "cpl" vs "cpl cost per lead": the longer name is the acronym followed by
    # words whose initials spell it.
    if " " in short or len(short) < 2:
        return False
    words = long.split(" ")
    if len(words) < 2 or words[0] != short:
        return False
    return "".join(word[0] for word in words[1:]) == short


def are_similar(term1: str, term2: str) -> bool:
    norm1 = normalize(term1)
    norm2 = normalize(term2)

    if norm1 == norm2:
        return True

    shorter, longer = sorted((norm1, norm2), key=len)
    if shorter and shorter in longer:
        if len(shorter) >= MIN_CONTAINED_LENGTH and len(shorter) / len(longer) > MIN_CONTAINMENT_RATIO:
            return True
        if _is_acronym_expansion(shorter, longer):
            return True

    return similarity(norm1, norm2) >= SIMILARITY_THRESHOLD


def find_duplicate_groups(entries: Sequence[Entry]) -> List[DuplicateGroup]:
    """Group entries with similar names in one forward pass.

    Each unassigned entry seeds a group; every later unassigned entry joins if it
    matches any current member. Groups are never merged afterwards, so the result
    depends on input order. Entry ids must be unique.
    """
    assigned: Set[str] = set()
    groups: List[DuplicateGroup] = []

    for i, seed in enumerate(entries):
        if seed.id in assigned:
            continue
        members = [seed]
        assigned.add(seed.id)

        for candidate in entries[i + 1 :]:
            if candidate.id in assigned:
                continue
            if any(are_similar(candidate.term, member.term) for member in members):
                members.append(candidate)
                assigned.add(candidate.id)

        if len(members) >= 2:
            groups.append(DuplicateGroup(entries=members))

    return groups


def plan_duplicate_removal(entries: Sequence[Entry]) -> DuplicateResolution:
    """Keep the most recently updated member of each group; mark the rest for deletion."""
    resolution = DuplicateResolution(groups=find_duplicate_groups(entries))
    for group in resolution.groups:
        ranked = sorted(group.entries, key=lambda entry: entry.updated_at, reverse=True)
        resolution.keep_ids.append(ranked[0].id)
        resolution.delete_ids.extend(entry.id for entry in ranked[1:])
    return resolution
