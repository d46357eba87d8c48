"""Service layer coordinating the glossary store, CSV codec and duplicate detection."""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

from csv_codec import export_to_csv, import_from_csv
from duplicates import find_duplicate_groups, plan_duplicate_removal
from models import (
    DuplicateGroup,
    DuplicateResolution,
    Entry,
    ExtractedTerm,
    ImportResult,
    effective_tags,
    is_kpi,
    new_entry_id,
)
from storage import GlossaryStore, InMemoryGlossaryStore, StoreWriteResult

logger = logging.getLogger(__name__)


def _matches_query(entry: Entry, query: str) -> bool:
    haystacks = [entry.term, entry.definition, entry.acronym or ""]
    haystacks.extend(effective_tags(entry))
    return any(query in value.lower() for value in haystacks)


class GlossaryService:
    """Glossary operations over an injected store."""

    def __init__(self, store: GlossaryStore | None = None):
        self.store = store or InMemoryGlossaryStore()

    # ------------------------------------------------------------------
    # Browsing
    # ------------------------------------------------------------------
    def list_terms(
        self,
        query: Optional[str] = None,
        tag: Optional[str] = None,
        kpi_only: bool = False,
    ) -> List[Entry]:
        entries = self.store.list()

        if query and query.strip():
            needle = query.strip().lower()
            entries = [entry for entry in entries if _matches_query(entry, needle)]

        if tag and tag.strip():
            wanted = tag.strip().lower()
            entries = [
                entry
                for entry in entries
                if any(label.lower() == wanted for label in effective_tags(entry))
            ]

        if kpi_only:
            entries = [entry for entry in entries if is_kpi(entry)]

        return sorted(entries, key=lambda entry: entry.term.lower())

    def tags(self) -> List[str]:
        seen = {}
        for entry in self.store.list():
            for label in effective_tags(entry):
                seen.setdefault(label.lower(), label)
        return sorted(seen.values(), key=str.lower)

    def get_term(self, entry_id: str) -> Entry:
        entry = self.store.get(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        return entry

    def find_existing(self, name: str) -> Optional[Entry]:
        wanted = (name or "").strip().lower()
        if not wanted:
            return None
        for entry in self.store.list():
            if entry.term.lower() == wanted or (entry.acronym or "").lower() == wanted:
                return entry
        return None

    def already_defined(self, names: Iterable[str]) -> List[bool]:
        """For each name, whether an entry already uses it as its term or acronym."""
        known = set()
        for entry in self.store.list():
            known.add(entry.term.lower())
            if entry.acronym:
                known.add(entry.acronym.lower())
        return [bool(name and name.strip()) and name.strip().lower() in known for name in names]

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def save_term(self, entry: Entry) -> Entry:
        """Create or update an entry, refreshing ``updated_at``."""
        if not entry.term.strip():
            raise ValueError("Term must not be empty")
        if not entry.definition.strip():
            raise ValueError("Definition must not be empty")

        existing = self.store.get(entry.id)
        now = time.time()
        saved = replace(
            entry,
            term=entry.term.strip(),
            definition=entry.definition.strip(),
            created_at=existing.created_at if existing else entry.created_at,
            updated_at=now,
        )
        if saved.created_at > saved.updated_at:
            saved.created_at = now

        result = self.store.upsert_many([saved])
        if result.error:
            raise RuntimeError(result.error)
        return saved

    def update_term(self, entry_id: str, **changes) -> Entry:
        current = self.get_term(entry_id)
        fields = {key: value for key, value in changes.items() if value is not None}
        for key in ("acronym", "calculation"):
            if key in fields and not fields[key].strip():
                fields[key] = None
        if "tags" in fields:
            # Writing tags retires the legacy category.
            fields["category"] = None
        return self.save_term(replace(current, **fields))

    def delete_term(self, entry_id: str) -> bool:
        return self.store.delete_one(entry_id)

    def clear_all(self) -> bool:
        return self.store.clear()

    # ------------------------------------------------------------------
    # CSV
    # ------------------------------------------------------------------
    def import_csv(self, content: str) -> ImportResult:
        return import_from_csv(content, self.store)

    def export_csv(self) -> str:
        return export_to_csv(self.list_terms())

    # ------------------------------------------------------------------
    # Duplicates
    # ------------------------------------------------------------------
    def find_duplicates(self) -> List[DuplicateGroup]:
        return find_duplicate_groups(self.store.list())

    def plan_duplicate_removal(self) -> DuplicateResolution:
        return plan_duplicate_removal(self.store.list())

    def remove_duplicates(self) -> Tuple[DuplicateResolution, List[str]]:
        """Delete every non-surviving group member. Returns the plan and the ids actually deleted."""
        resolution = self.plan_duplicate_removal()
        deleted: List[str] = []
        for entry_id in resolution.delete_ids:
            if self.store.delete_one(entry_id):
                deleted.append(entry_id)
            else:
                logger.warning("Duplicate %s could not be deleted", entry_id)
        logger.info(
            "Removed %d of %d duplicates across %d groups",
            len(deleted),
            resolution.duplicate_count,
            len(resolution.groups),
        )
        return resolution, deleted

    # ------------------------------------------------------------------
    # Extraction candidates
    # ------------------------------------------------------------------
    def promote(self, candidates: Iterable[ExtractedTerm]) -> Tuple[StoreWriteResult, int]:
        """Save selected candidates as new entries. Returns the store result and the skip count."""
        now = time.time()
        entries: List[Entry] = []
        skipped = 0
        for candidate in candidates:
            if not candidate.selected:
                continue
            if not candidate.term.strip() or not candidate.definition.strip():
                skipped += 1
                continue
            entries.append(
                Entry(
                    id=new_entry_id(),
                    term=candidate.term.strip(),
                    definition=candidate.definition.strip(),
                    acronym=candidate.acronym,
                    tags=list(candidate.tags),
                    related_terms=list(candidate.related_terms),
                    calculation=candidate.calculation,
                    confidence=candidate.confidence,
                    source_context=candidate.source_context,
                    created_at=now,
                    updated_at=now,
                )
            )

        if not entries:
            return StoreWriteResult(), skipped
        return self.store.upsert_many(entries), skipped
