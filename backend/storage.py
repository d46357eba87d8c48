"""Glossary stores: an abstract record store plus in-memory, JSON-file and remote adapters."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import requests

from models import Entry, entry_from_dict, entry_to_dict, format_timestamp

logger = logging.getLogger(__name__)


@dataclass
class StoreWriteResult:
    accepted_count: int = 0
    error: Optional[str] = None


class GlossaryStore(ABC):
    """Record store keyed by entry id.

    Failures are reported as data (an ``error`` string or ``False``) rather than raised.
    Stores never modify timestamps; callers own ``updated_at``.
    """

    @abstractmethod
    def list(self) -> List[Entry]:
        ...

    @abstractmethod
    def upsert_many(self, entries: Iterable[Entry]) -> StoreWriteResult:
        ...

    @abstractmethod
    def delete_one(self, entry_id: str) -> bool:
        ...

    @abstractmethod
    def clear(self) -> bool:
        ...

    def get(self, entry_id: str) -> Optional[Entry]:
        for entry in self.list():
            if entry.id == entry_id:
                return entry
        return None


class InMemoryGlossaryStore(GlossaryStore):
    def __init__(self, entries: Optional[Iterable[Entry]] = None):
        self._entries: Dict[str, Entry] = {}
        for entry in entries or []:
            self._entries[entry.id] = replace(entry)

    def list(self) -> List[Entry]:
        return [replace(entry) for entry in self._entries.values()]

    def get(self, entry_id: str) -> Optional[Entry]:
        entry = self._entries.get(entry_id)
        return replace(entry) if entry else None

    def upsert_many(self, entries: Iterable[Entry]) -> StoreWriteResult:
        count = 0
        for entry in entries:
            self._entries[entry.id] = replace(entry)
            count += 1
        return StoreWriteResult(accepted_count=count)

    def delete_one(self, entry_id: str) -> bool:
        return self._entries.pop(entry_id, None) is not None

    def clear(self) -> bool:
        self._entries.clear()
        return True


@dataclass
class _Snapshot:
    records: Dict[str, Entry] = field(default_factory=dict)
    # Stored items that could not be read as entries; written back untouched.
    unparsed: List[Any] = field(default_factory=list)
    writable: bool = True


class JsonGlossaryStore(GlossaryStore):
    """Local JSON storage: the whole glossary lives in one document.

    Records this version cannot read are kept on disk as-is. A file that is not
    a readable term list is never overwritten; writes to it fail as store errors.
    """

    FILENAME = "glossary.json"

    def __init__(self, root: Optional[Path] = None, path: Optional[Path] = None):
        if path is None:
            base_dir = Path(root) if root else Path(__file__).resolve().parent / "storage"
            path = base_dir / self.FILENAME
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def list(self) -> List[Entry]:
        return list(self._load().records.values())

    def upsert_many(self, entries: Iterable[Entry]) -> StoreWriteResult:
        snapshot = self._load()
        if not snapshot.writable:
            return StoreWriteResult(
                accepted_count=0,
                error=f"Failed to save terms: {self.path} is unreadable and was left untouched",
            )
        incoming = list(entries)
        for entry in incoming:
            snapshot.records[entry.id] = entry
        try:
            self._persist(snapshot)
        except OSError as exc:
            logger.error("Failed to write glossary %s: %s", self.path, exc)
            return StoreWriteResult(accepted_count=0, error=f"Failed to save terms: {exc}")
        return StoreWriteResult(accepted_count=len(incoming))

    def delete_one(self, entry_id: str) -> bool:
        snapshot = self._load()
        if not snapshot.writable or snapshot.records.pop(entry_id, None) is None:
            return False
        try:
            self._persist(snapshot)
        except OSError as exc:
            logger.error("Failed to delete %s from %s: %s", entry_id, self.path, exc)
            return False
        return True

    def clear(self) -> bool:
        try:
            if self.path.exists():
                self.path.unlink()
        except OSError as exc:
            logger.error("Failed to clear glossary %s: %s", self.path, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _load(self) -> _Snapshot:
        snapshot = _Snapshot()
        if not self.path.exists():
            return snapshot
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Unreadable glossary file %s: %s", self.path, exc)
            snapshot.writable = False
            return snapshot

        # Legacy files are a bare array of records.
        items = raw.get("terms", []) if isinstance(raw, dict) else raw
        if not isinstance(items, list):
            logger.warning("Glossary file %s holds no term list; reading it as empty", self.path)
            snapshot.writable = False
            return snapshot

        for item in items:
            try:
                entry = entry_from_dict(item)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Keeping unreadable record in %s as-is: %s", self.path, exc)
                snapshot.unparsed.append(item)
                continue
            snapshot.records[entry.id] = entry
        return snapshot

    def _persist(self, snapshot: _Snapshot) -> None:
        terms = [entry_to_dict(entry) for entry in snapshot.records.values()]
        payload = {"terms": terms + snapshot.unparsed}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, ensure_ascii=False)
        tmp_path.replace(self.path)


class RemoteGlossaryStore(GlossaryStore):
    """Hosted record store reached over a PostgREST-style REST API."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        table: str = "terms",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("Remote store requires a base URL")
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["apikey"] = api_key
            self.headers["Authorization"] = f"Bearer {api_key}"

    def list(self) -> List[Entry]:
        try:
            response = self.session.get(
                self.endpoint,
                params={"select": "*", "order": "createdAt.asc"},
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            rows = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Failed to list remote terms: %s", exc)
            return []

        entries: List[Entry] = []
        for row in rows:
            try:
                entries.append(entry_from_dict(row))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed remote row: %s", exc)
        return entries

    def get(self, entry_id: str) -> Optional[Entry]:
        try:
            response = self.session.get(
                self.endpoint,
                params={"select": "*", "id": f"eq.{entry_id}"},
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            rows = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Failed to fetch remote term %s: %s", entry_id, exc)
            return None
        if not rows:
            return None
        try:
            return entry_from_dict(rows[0])
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Unreadable remote row for %s: %s", entry_id, exc)
            return None

    def upsert_many(self, entries: Iterable[Entry]) -> StoreWriteResult:
        rows = [self._to_row(entry) for entry in entries]
        if not rows:
            return StoreWriteResult()
        headers = dict(self.headers)
        headers["Prefer"] = "resolution=merge-duplicates,return=representation"
        try:
            response = self.session.post(
                self.endpoint,
                params={"on_conflict": "id"},
                json=rows,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            saved = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Failed to upsert %d remote terms: %s", len(rows), exc)
            return StoreWriteResult(accepted_count=0, error=f"Failed to save terms: {exc}")
        return StoreWriteResult(accepted_count=len(saved) if isinstance(saved, list) else len(rows))

    @staticmethod
    def _to_row(entry: Entry) -> Dict[str, Any]:
        # Timestamp columns take ISO-8601 strings.
        row = entry_to_dict(entry)
        row["createdAt"] = format_timestamp(entry.created_at)
        row["updatedAt"] = format_timestamp(entry.updated_at)
        return row

    def delete_one(self, entry_id: str) -> bool:
        return self._delete({"id": f"eq.{entry_id}"})

    def clear(self) -> bool:
        # PostgREST refuses unfiltered deletes.
        return self._delete({"id": "not.is.null"})

    def _delete(self, params: Dict[str, str]) -> bool:
        try:
            response = self.session.delete(
                self.endpoint, params=params, headers=self.headers, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Remote delete %s failed: %s", params, exc)
            return False
        return True


STORE_BACKENDS = ("json", "memory", "remote")


def create_store(settings, workspace=None) -> GlossaryStore:
    """Build the store for ``workspace``, or for the data directory when none is given.

    A workspace may pin its own backend and remote table; anything it leaves
    unset comes from ``settings``.
    """
    backend = (getattr(workspace, "store_backend", None) or settings.store_backend or "json").lower()
    if backend == "memory":
        return InMemoryGlossaryStore()
    if backend == "remote":
        return RemoteGlossaryStore(
            base_url=settings.remote_url,
            api_key=settings.remote_key,
            table=getattr(workspace, "remote_table", None) or settings.remote_table,
            timeout=settings.remote_timeout,
        )
    if backend == "json":
        if workspace is not None:
            return JsonGlossaryStore(path=workspace.glossary_path)
        return JsonGlossaryStore(root=settings.data_dir)
    raise ValueError(f"Unknown store backend: {backend}")
