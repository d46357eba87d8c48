"""Shared backend models for Termbook."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _timestamp() -> float:
    return time.time()


def new_entry_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Entry:
    """A single glossary term."""

    id: str
    term: str
    definition: str
    acronym: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    # Legacy single-value label; read through effective_tags().
    category: Optional[str] = None
    related_terms: List[str] = field(default_factory=list)
    calculation: Optional[str] = None
    confidence: Optional[float] = None
    source_context: Optional[str] = None
    created_at: float = field(default_factory=_timestamp)
    updated_at: float = field(default_factory=_timestamp)


def effective_tags(entry: Entry) -> List[str]:
    if entry.tags:
        return list(entry.tags)
    if entry.category and entry.category.strip():
        return [entry.category.strip()]
    return []


def is_kpi(entry) -> bool:
    calculation = getattr(entry, "calculation", None)
    return bool(calculation and calculation.strip())


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _str_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    return [str(item).strip() for item in value if str(item).strip()]


def _first(raw: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def parse_timestamp(value: Any) -> float:
    """Epoch seconds from a number or an ISO-8601 string (``Z`` suffix allowed).

    Naive ISO strings are read as UTC.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.timestamp()
    return float(value)


def format_timestamp(value: float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


def entry_from_dict(raw: Dict[str, Any]) -> Entry:
    """Build an Entry from a stored record.

    Accepts camelCase and snake_case keys, and timestamps as epoch seconds or
    ISO-8601 strings.
    """
    now = _timestamp()
    created_at = parse_timestamp(_first(raw, "createdAt", "created_at", default=now))
    updated_at = parse_timestamp(_first(raw, "updatedAt", "updated_at", default=created_at))
    confidence = _first(raw, "confidence")
    return Entry(
        id=str(raw["id"]),
        term=str(raw.get("term") or "").strip(),
        definition=str(raw.get("definition") or "").strip(),
        acronym=_optional_str(raw.get("acronym")),
        tags=_str_list(raw.get("tags")),
        category=_optional_str(raw.get("category")),
        related_terms=_str_list(_first(raw, "relatedTerms", "related_terms")),
        calculation=_optional_str(raw.get("calculation")),
        confidence=float(confidence) if confidence is not None else None,
        source_context=_optional_str(_first(raw, "sourceContext", "source_context")),
        created_at=created_at,
        updated_at=max(updated_at, created_at),
    )


def entry_to_dict(entry: Entry) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": entry.id,
        "term": entry.term,
        "acronym": entry.acronym,
        "definition": entry.definition,
        "tags": list(entry.tags),
        "relatedTerms": list(entry.related_terms),
        "calculation": entry.calculation,
        "confidence": entry.confidence,
        "sourceContext": entry.source_context,
        "createdAt": entry.created_at,
        "updatedAt": entry.updated_at,
    }
    if entry.category is not None:
        payload["category"] = entry.category
    return payload


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class DuplicateGroup:
    """Two or more entries judged to name the same concept."""

    entries: List[Entry]

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def ids(self) -> List[str]:
        return [entry.id for entry in self.entries]


@dataclass
class DuplicateResolution:
    groups: List[DuplicateGroup] = field(default_factory=list)
    keep_ids: List[str] = field(default_factory=list)
    delete_ids: List[str] = field(default_factory=list)

    @property
    def duplicate_count(self) -> int:
        return sum(len(group) - 1 for group in self.groups)


@dataclass
class ExtractedTerm:
    """A candidate term produced by the language model, not yet in the glossary."""

    id: str
    term: str
    definition: str
    acronym: Optional[str] = None
    confidence: float = 0.0
    source_context: Optional[str] = None
    selected: bool = True
    calculation: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    related_terms: List[str] = field(default_factory=list)
    is_kpi: bool = False
    is_enhanced: bool = False


# API payloads


class EntryPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    term: str
    acronym: Optional[str] = None
    definition: str
    tags: List[str] = Field(default_factory=list)
    related_terms: List[str] = Field(default_factory=list, alias="relatedTerms")
    calculation: Optional[str] = None
    confidence: Optional[float] = None
    source_context: Optional[str] = Field(default=None, alias="sourceContext")
    is_kpi: bool = Field(default=False, alias="isKPI")
    created_at: float = Field(alias="createdAt")
    updated_at: float = Field(alias="updatedAt")

    @classmethod
    def from_entry(cls, entry: Entry) -> "EntryPayload":
        return cls(
            id=entry.id,
            term=entry.term,
            acronym=entry.acronym,
            definition=entry.definition,
            tags=effective_tags(entry),
            related_terms=list(entry.related_terms),
            calculation=entry.calculation,
            confidence=entry.confidence,
            source_context=entry.source_context,
            is_kpi=is_kpi(entry),
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )


class TermsResponsePayload(BaseModel):
    terms: List[EntryPayload] = Field(default_factory=list)
    total: int = 0


class TagsResponsePayload(BaseModel):
    tags: List[str] = Field(default_factory=list)


class TermWriteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    term: Optional[str] = None
    acronym: Optional[str] = None
    definition: Optional[str] = None
    tags: Optional[List[str]] = None
    related_terms: Optional[List[str]] = Field(default=None, alias="relatedTerms")
    calculation: Optional[str] = None


class ImportRequest(BaseModel):
    content: str


class ImportResponsePayload(BaseModel):
    imported: int
    skipped: int
    errors: List[str] = Field(default_factory=list)


class DuplicateGroupPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    keep_id: str = Field(alias="keepId")
    terms: List[EntryPayload] = Field(default_factory=list)


class DuplicatesResponsePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    groups: List[DuplicateGroupPayload] = Field(default_factory=list)
    duplicate_count: int = Field(default=0, alias="duplicateCount")


class RemoveDuplicatesResponsePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    removed: int = 0
    deleted_ids: List[str] = Field(default_factory=list, alias="deletedIds")


class ExtractedTermPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    term: str
    acronym: Optional[str] = None
    definition: str
    confidence: float = 0.0
    source_context: Optional[str] = Field(default=None, alias="sourceContext")
    selected: bool = True
    calculation: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    related_terms: List[str] = Field(default_factory=list, alias="relatedTerms")
    is_kpi: bool = Field(default=False, alias="isKPI")
    is_enhanced: bool = Field(default=False, alias="isEnhanced")
    is_duplicate: bool = Field(default=False, alias="isDuplicate")

    def to_term(self) -> ExtractedTerm:
        return ExtractedTerm(
            id=self.id,
            term=self.term,
            acronym=self.acronym,
            definition=self.definition,
            confidence=self.confidence,
            source_context=self.source_context,
            selected=self.selected,
            calculation=self.calculation,
            tags=list(self.tags),
            related_terms=list(self.related_terms),
            is_kpi=self.is_kpi,
            is_enhanced=self.is_enhanced,
        )

    @classmethod
    def from_term(cls, term: ExtractedTerm, is_duplicate: bool = False) -> "ExtractedTermPayload":
        return cls(
            id=term.id,
            term=term.term,
            acronym=term.acronym,
            definition=term.definition,
            confidence=term.confidence,
            source_context=term.source_context,
            selected=term.selected,
            calculation=term.calculation,
            tags=list(term.tags),
            related_terms=list(term.related_terms),
            is_kpi=term.is_kpi,
            is_enhanced=term.is_enhanced,
            is_duplicate=is_duplicate,
        )


class ExtractRequest(BaseModel):
    transcript: str


class ExtractResponsePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    terms: List[ExtractedTermPayload] = Field(default_factory=list)
    total_found: int = Field(default=0, alias="totalFound")
    processing_time: float = Field(default=0.0, alias="processingTime")


class EnhanceRequest(BaseModel):
    terms: List[ExtractedTermPayload] = Field(default_factory=list)


class EnhanceResponsePayload(BaseModel):
    terms: List[ExtractedTermPayload] = Field(default_factory=list)
    enhanced: int = 0


class PromoteRequest(BaseModel):
    terms: List[ExtractedTermPayload] = Field(default_factory=list)


class PromoteResponsePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    saved: int = 0
    skipped: int = 0
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Workspace payloads
# ---------------------------------------------------------------------------


class WorkspaceInfoPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    path: str
    store: str = "json"
    remote_table: Optional[str] = Field(default=None, alias="remoteTable")
    is_active: bool = False


class WorkspacesResponsePayload(BaseModel):
    workspaces: List[WorkspaceInfoPayload] = Field(default_factory=list)


class WorkspaceResponsePayload(BaseModel):
    workspace: WorkspaceInfoPayload


class CreateWorkspaceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    store: Optional[str] = None
    remote_table: Optional[str] = Field(default=None, alias="remoteTable")


class OpenWorkspaceRequest(BaseModel):
    name: Optional[str] = None
    path: Optional[str] = None
