"""
Unit tests for name normalization, similarity and duplicate grouping.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../backend"))

from duplicates import (
    are_similar,
    find_duplicate_groups,
    levenshtein,
    normalize,
    plan_duplicate_removal,
    similarity,
)
from models import Entry


def make_entry(entry_id, term, updated_at=1000.0):
    return Entry(
        id=entry_id,
        term=term,
        definition=f"Definition of {term}",
        created_at=0.0,
        updated_at=updated_at,
    )


@pytest.mark.unit
class TestNormalize:
    def test_lowercases_and_strips_punctuation(self):
        assert normalize("CPL (Cost Per Lead)") == "cpl cost per lead"

    def test_collapses_whitespace(self):
        assert normalize("  Hello,   World!!  ") == "hello world"
        assert normalize("a\t\nb") == "a b"

    def test_empty_and_symbol_only(self):
        assert normalize("") == ""
        assert normalize("***") == ""

    @pytest.mark.parametrize(
        "value",
        ["Cost-Per-Lead", "  ROI %  ", "Smørrebrød Index", "CRMx-99-unrelated-part-number", ""],
    )
    def test_idempotent(self, value):
        once = normalize(value)
        assert normalize(once) == once


@pytest.mark.unit
class TestSimilarity:
    def test_levenshtein_classic_cases(self):
        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3
        assert levenshtein("abc", "") == 3
        assert levenshtein("flaw", "lawn") == 2
        assert levenshtein("same", "same") == 0

    def test_identity_is_100(self):
        assert similarity("close rate", "close rate") == 100
        assert similarity("", "") == 100

    def test_symmetric(self):
        assert similarity("kitten", "sitting") == similarity("sitting", "kitten")
        assert similarity("cpl", "cost per lead") == similarity("cost per lead", "cpl")

    def test_scale(self):
        assert similarity("kitten", "sitting") == pytest.approx(100 * 4 / 7)
        assert similarity("abc", "") == 0


@pytest.mark.unit
class TestAreSimilar:
    def test_case_and_punctuation_differences_match(self):
        assert are_similar("Cost Per Lead", "cost per lead")
        assert are_similar("Cost-Per-Lead", "cost per lead")

    def test_unrelated_terms_do_not_match(self):
        assert not are_similar("Close Rate", "Cost Per Lead")

    def test_acronym_with_expansion_matches(self):
        assert are_similar("CPL", "CPL (Cost Per Lead)")
        assert are_similar("CPL (Cost Per Lead)", "CPL")

    def test_short_acronym_inside_long_phrase_does_not_match(self):
        assert not are_similar("CRM", "CRMx-99-unrelated-part-number")

    def test_containment_needs_more_than_half_the_length(self):
        assert are_similar("Net Revenue", "Net Revenue Retention")
        # Exactly half is not enough.
        assert not are_similar("abc", "abcdef")

    def test_containment_needs_three_characters(self):
        assert not are_similar("ab", "abc")

    def test_similarity_threshold(self):
        assert are_similar("Customer Lifetime Value", "Customer Lifetme Value")
        assert not are_similar("color", "colour")


@pytest.mark.unit
class TestFindDuplicateGroups:
    # a~b and b~c (85% each), but a and c are only 70% alike.
    A = "abcdefghijklmnopqrst"
    B = "xyzdefghijklmnopqrst"
    C = "xyzdefghijklmnopquvw"

    def test_exact_duplicates_grouped(self):
        entries = [
            make_entry("1", "Cost Per Lead"),
            make_entry("2", "Close Rate"),
            make_entry("3", "cost per lead"),
        ]
        groups = find_duplicate_groups(entries)

        assert len(groups) == 1
        assert groups[0].ids == ["1", "3"]

    def test_acronym_group(self):
        entries = [make_entry("1", "CPL"), make_entry("2", "CPL (Cost Per Lead)")]
        groups = find_duplicate_groups(entries)
        assert [group.ids for group in groups] == [["1", "2"]]

    def test_no_singletons(self):
        entries = [make_entry("1", "Close Rate"), make_entry("2", "Churn")]
        assert find_duplicate_groups(entries) == []

    def test_empty_input(self):
        assert find_duplicate_groups([]) == []

    def test_membership_checked_against_every_member(self):
        entries = [make_entry("a", self.A), make_entry("b", self.B), make_entry("c", self.C)]
        groups = find_duplicate_groups(entries)
        assert [group.ids for group in groups] == [["a", "b", "c"]]

    def test_single_pass_is_order_dependent(self):
        # c is scanned before b joins, and nothing revisits it.
        entries = [make_entry("a", self.A), make_entry("c", self.C), make_entry("b", self.B)]
        groups = find_duplicate_groups(entries)
        assert [group.ids for group in groups] == [["a", "b"]]

    def test_seed_order_changes_grouping(self):
        entries = [make_entry("c", self.C), make_entry("a", self.A), make_entry("b", self.B)]
        groups = find_duplicate_groups(entries)
        assert [group.ids for group in groups] == [["c", "b"]]

    def test_entry_joins_only_one_group(self):
        entries = [
            make_entry("1", "Lead Score"),
            make_entry("2", "lead score"),
            make_entry("3", "Close Rate"),
            make_entry("4", "close-rate"),
            make_entry("5", "LEAD SCORE"),
        ]
        groups = find_duplicate_groups(entries)
        assert [group.ids for group in groups] == [["1", "2", "5"], ["3", "4"]]


@pytest.mark.unit
class TestPlanDuplicateRemoval:
    def test_most_recently_updated_survives(self):
        entries = [
            make_entry("old", "Cost Per Lead", updated_at=100.0),
            make_entry("newest", "cost per lead", updated_at=300.0),
            make_entry("middle", "COST PER LEAD", updated_at=200.0),
        ]
        resolution = plan_duplicate_removal(entries)

        assert resolution.keep_ids == ["newest"]
        assert sorted(resolution.delete_ids) == ["middle", "old"]
        assert resolution.duplicate_count == 2

    def test_duplicate_count_sums_over_groups(self):
        entries = [
            make_entry("1", "Lead Score", updated_at=1.0),
            make_entry("2", "lead score", updated_at=2.0),
            make_entry("3", "Lead-Score", updated_at=3.0),
            make_entry("4", "Close Rate", updated_at=5.0),
            make_entry("5", "close rate", updated_at=4.0),
            make_entry("6", "Churn"),
        ]
        resolution = plan_duplicate_removal(entries)

        assert resolution.duplicate_count == 3
        assert resolution.keep_ids == ["3", "4"]
        assert sorted(resolution.delete_ids) == ["1", "2", "5"]

    def test_nothing_to_remove(self):
        resolution = plan_duplicate_removal([make_entry("1", "Churn")])
        assert resolution.groups == []
        assert resolution.delete_ids == []
        assert resolution.duplicate_count == 0
