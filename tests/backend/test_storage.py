"""
Unit tests for the glossary store adapters.
"""

import json
import os
import shutil
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../backend"))

from models import Entry, entry_from_dict, parse_timestamp
from storage import (
    InMemoryGlossaryStore,
    JsonGlossaryStore,
    RemoteGlossaryStore,
    create_store,
)


def make_entry(entry_id, term="Churn", **kwargs):
    return Entry(id=entry_id, term=term, definition=f"{term} definition", **kwargs)


ISO_CHURN = {
    "id": "legacy-1",
    "term": "Churn",
    "definition": "Customers lost in a period",
    "category": "Retention",
    "createdAt": "2024-05-01T10:00:00.000Z",
    "updatedAt": "2024-05-02T10:00:00.000Z",
}


def write_glossary(path, payload):
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle)


def read_glossary(path):
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


@pytest.mark.unit
class TestTimestamps:
    def test_iso_with_z_suffix(self):
        assert parse_timestamp("2024-05-01T10:00:00.000Z") == 1714557600.0

    def test_iso_with_offset_and_naive(self):
        assert parse_timestamp("2024-05-01T12:00:00+02:00") == 1714557600.0
        assert parse_timestamp("2024-05-01T10:00:00") == 1714557600.0

    def test_numbers_pass_through(self):
        assert parse_timestamp(5) == 5.0
        assert parse_timestamp(1714557600.5) == 1714557600.5

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            parse_timestamp("last tuesday")

    def test_record_with_iso_timestamps(self):
        entry = entry_from_dict(ISO_CHURN)
        assert entry.created_at == 1714557600.0
        assert entry.updated_at == 1714557600.0 + 86400
        assert entry.tags == []
        assert entry.category == "Retention"


class TestInMemoryGlossaryStore:
    def setup_method(self):
        self.store = InMemoryGlossaryStore()

    def test_upsert_and_list_keeps_insertion_order(self):
        result = self.store.upsert_many([make_entry("1", "B"), make_entry("2", "A")])
        assert result.accepted_count == 2
        assert result.error is None
        assert [entry.id for entry in self.store.list()] == ["1", "2"]

    def test_upsert_replaces_by_id(self):
        self.store.upsert_many([make_entry("1", "Old")])
        self.store.upsert_many([make_entry("1", "New")])
        entries = self.store.list()
        assert len(entries) == 1
        assert entries[0].term == "New"

    def test_returned_entries_are_copies(self):
        self.store.upsert_many([make_entry("1", "Churn")])
        self.store.list()[0].term = "Mutated"
        assert self.store.get("1").term == "Churn"

    def test_delete_one(self):
        self.store.upsert_many([make_entry("1")])
        assert self.store.delete_one("1") is True
        assert self.store.delete_one("1") is False
        assert self.store.get("1") is None

    def test_clear(self):
        self.store.upsert_many([make_entry("1"), make_entry("2")])
        assert self.store.clear() is True
        assert self.store.list() == []


class TestJsonGlossaryStore:
    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.store = JsonGlossaryStore(root=Path(self.temp_dir))

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_persists_across_instances(self):
        entry = make_entry(
            "1",
            "Cost Per Lead",
            acronym="CPL",
            tags=["Marketing"],
            related_terms=["CPA"],
            calculation="Spend / Leads",
            confidence=92.0,
            source_context="we track CPL weekly",
            created_at=10.0,
            updated_at=20.0,
        )
        self.store.upsert_many([entry])

        reopened = JsonGlossaryStore(root=Path(self.temp_dir))
        assert reopened.get("1") == entry

    def test_file_uses_camel_case_keys(self):
        self.store.upsert_many([make_entry("1", related_terms=["A"])])
        with open(self.store.path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
        record = payload["terms"][0]
        assert record["relatedTerms"] == ["A"]
        assert "createdAt" in record and "updatedAt" in record

    def test_reads_legacy_array_with_category(self):
        legacy = [
            {
                "id": "old-1",
                "term": "Churn",
                "definition": "Customers lost",
                "category": "Retention",
                "createdAt": 5,
                "updatedAt": 6,
            }
        ]
        with open(self.store.path, "w", encoding="utf-8") as handle:
            json.dump(legacy, handle)

        entry = self.store.get("old-1")
        assert entry.tags == []
        assert entry.category == "Retention"
        assert entry.updated_at == 6

    def test_corrupt_file_reads_as_empty(self):
        self.store.path.write_text("{not json", encoding="utf-8")
        assert self.store.list() == []

    def test_malformed_records_skipped(self):
        with open(self.store.path, "w", encoding="utf-8") as handle:
            json.dump({"terms": [{"term": "no id"}, {"id": "ok", "term": "T", "definition": "D"}]}, handle)
        assert [entry.id for entry in self.store.list()] == ["ok"]

    def test_iso_stamped_records_survive_later_writes(self):
        write_glossary(self.store.path, [ISO_CHURN])

        assert [entry.term for entry in self.store.list()] == ["Churn"]
        self.store.upsert_many([make_entry("new", "ROI")])

        assert sorted(entry.term for entry in self.store.list()) == ["Churn", "ROI"]
        legacy = self.store.get("legacy-1")
        assert legacy.category == "Retention"
        assert legacy.created_at == 1714557600.0

    def test_unreadable_records_written_back_untouched(self):
        odd = {"id": "odd", "term": "Odd", "definition": "D", "createdAt": "someday"}
        write_glossary(self.store.path, {"terms": [odd, {"term": "no id"}, ISO_CHURN]})

        assert [entry.id for entry in self.store.list()] == ["legacy-1"]
        assert self.store.upsert_many([make_entry("new", "ROI")]).accepted_count == 1
        assert self.store.delete_one("legacy-1") is True

        stored = read_glossary(self.store.path)["terms"]
        assert odd in stored
        assert {"term": "no id"} in stored
        assert [entry.id for entry in self.store.list()] == ["new"]

    @pytest.mark.parametrize("payload", [{"terms": None}, 42, {"terms": {"id": "1"}}])
    def test_wrong_shape_reads_empty_and_is_never_overwritten(self, payload):
        write_glossary(self.store.path, payload)

        assert self.store.list() == []
        result = self.store.upsert_many([make_entry("1")])
        assert result.accepted_count == 0
        assert "unreadable" in result.error
        assert self.store.delete_one("1") is False
        assert read_glossary(self.store.path) == payload

    def test_corrupt_file_is_never_overwritten(self):
        self.store.path.write_text("{not json", encoding="utf-8")
        result = self.store.upsert_many([make_entry("1")])
        assert result.error is not None
        assert self.store.path.read_text(encoding="utf-8") == "{not json"

    def test_explicit_path(self):
        path = Path(self.temp_dir) / "team" / "glossary.json"
        store = JsonGlossaryStore(path=path)
        store.upsert_many([make_entry("1")])
        assert path.exists()

    def test_delete_and_clear(self):
        self.store.upsert_many([make_entry("1"), make_entry("2")])
        assert self.store.delete_one("1") is True
        assert self.store.delete_one("missing") is False
        assert [entry.id for entry in self.store.list()] == ["2"]

        assert self.store.clear() is True
        assert self.store.list() == []

    def test_write_failure_reported(self):
        with patch.object(JsonGlossaryStore, "_persist", side_effect=OSError("disk full")):
            result = self.store.upsert_many([make_entry("1")])
        assert result.accepted_count == 0
        assert "disk full" in result.error


class TestRemoteGlossaryStore:
    def setup_method(self):
        self.session = Mock()
        self.store = RemoteGlossaryStore(
            base_url="https://db.example.com/",
            api_key="secret",
            table="terms",
            session=self.session,
        )

    def _response(self, payload):
        response = Mock()
        response.json.return_value = payload
        response.raise_for_status.return_value = None
        return response

    def test_requires_url(self):
        with pytest.raises(ValueError):
            RemoteGlossaryStore(base_url="")

    def test_list_parses_rows(self):
        self.session.get.return_value = self._response(
            [{"id": "1", "term": "Churn", "definition": "Lost customers", "relatedTerms": ["NRR"]}]
        )
        entries = self.store.list()

        assert [entry.id for entry in entries] == ["1"]
        assert entries[0].related_terms == ["NRR"]
        args, kwargs = self.session.get.call_args
        assert args[0] == "https://db.example.com/rest/v1/terms"
        assert kwargs["headers"]["apikey"] == "secret"

    def test_list_reads_iso_timestamp_columns(self):
        self.session.get.return_value = self._response([ISO_CHURN])
        entries = self.store.list()
        assert [entry.id for entry in entries] == ["legacy-1"]
        assert entries[0].created_at == 1714557600.0

    def test_upsert_sends_iso_timestamps(self):
        self.session.post.return_value = self._response([{"id": "1"}])
        self.store.upsert_many([make_entry("1", created_at=1714557600.0, updated_at=1714557600.0)])

        _, kwargs = self.session.post.call_args
        row = kwargs["json"][0]
        assert row["createdAt"] == "2024-05-01T10:00:00+00:00"
        assert entry_from_dict(row).created_at == 1714557600.0

    def test_list_failure_returns_empty(self):
        self.session.get.side_effect = requests.ConnectionError("down")
        assert self.store.list() == []

    def test_upsert_counts_returned_rows(self):
        self.session.post.return_value = self._response([{"id": "1"}, {"id": "2"}])
        result = self.store.upsert_many([make_entry("1"), make_entry("2")])

        assert result.accepted_count == 2
        assert result.error is None
        _, kwargs = self.session.post.call_args
        assert "merge-duplicates" in kwargs["headers"]["Prefer"]
        assert [row["id"] for row in kwargs["json"]] == ["1", "2"]

    def test_upsert_failure_reported(self):
        self.session.post.side_effect = requests.ConnectionError("down")
        result = self.store.upsert_many([make_entry("1")])
        assert result.accepted_count == 0
        assert "down" in result.error

    def test_upsert_nothing_skips_request(self):
        result = self.store.upsert_many([])
        assert result.accepted_count == 0
        self.session.post.assert_not_called()

    def test_delete_one(self):
        self.session.delete.return_value = self._response(None)
        assert self.store.delete_one("abc") is True
        _, kwargs = self.session.delete.call_args
        assert kwargs["params"] == {"id": "eq.abc"}

    def test_delete_failure(self):
        response = Mock()
        response.raise_for_status.side_effect = requests.HTTPError("500")
        self.session.delete.return_value = response
        assert self.store.delete_one("abc") is False


class TestCreateStore:
    def test_backends(self):
        temp_dir = tempfile.mkdtemp()
        try:
            settings = SimpleNamespace(
                store_backend="json",
                data_dir=Path(temp_dir),
                remote_url="https://db.example.com",
                remote_key="",
                remote_table="terms",
                remote_timeout=5.0,
            )
            assert isinstance(create_store(settings), JsonGlossaryStore)

            settings.store_backend = "memory"
            assert isinstance(create_store(settings), InMemoryGlossaryStore)

            settings.store_backend = "remote"
            assert isinstance(create_store(settings), RemoteGlossaryStore)

            settings.store_backend = "bogus"
            with pytest.raises(ValueError):
                create_store(settings)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    def test_workspace_choices_override_settings(self):
        temp_dir = tempfile.mkdtemp()
        try:
            settings = SimpleNamespace(
                store_backend="memory",
                data_dir=Path(temp_dir),
                remote_url="https://db.example.com",
                remote_key="",
                remote_table="terms",
                remote_timeout=5.0,
            )
            glossary_path = Path(temp_dir) / "Sales.termbook" / "glossary.json"
            workspace = SimpleNamespace(store_backend="json", remote_table=None, glossary_path=glossary_path)
            store = create_store(settings, workspace)
            assert isinstance(store, JsonGlossaryStore)
            assert store.path == glossary_path

            workspace = SimpleNamespace(store_backend="remote", remote_table="sales_terms", glossary_path=glossary_path)
            store = create_store(settings, workspace)
            assert store.endpoint == "https://db.example.com/rest/v1/sales_terms"

            workspace = SimpleNamespace(store_backend=None, remote_table=None, glossary_path=glossary_path)
            assert isinstance(create_store(settings, workspace), InMemoryGlossaryStore)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)
