"""Tests for optimization.change_detector."""

import copy

import pytest

from funding_ingestion.models import Opportunity
from funding_ingestion.optimization.change_detector import (
    ChangeDetector,
    describe_changes,
    get_field,
    is_material_change,
    normalize_date,
)


@pytest.fixture
def existing():
    return {
        "id": "row-1",
        "title": "Clean Energy Infrastructure Grant",
        "status": "open",
        "minimum_award": 50000,
        "maximum_award": 1000000,
        "total_funding_available": 10000000,
        "open_date": "2024-01-15T00:00:00+00:00",
        "close_date": "2024-06-30T23:59:59+00:00",
        "description": "Funding for municipal clean energy and building efficiency upgrades.",
    }


class TestAmounts:
    def test_exactly_five_percent_is_not_material(self, existing):
        incoming = dict(existing, maximum_award=1050000)
        assert not is_material_change(existing, incoming)

    def test_just_over_five_percent_is_material(self, existing):
        incoming = dict(existing, maximum_award=1050001)
        assert is_material_change(existing, incoming)

    def test_decrease_uses_relative_difference(self, existing):
        assert not is_material_change(existing, dict(existing, minimum_award=47500))
        assert is_material_change(existing, dict(existing, minimum_award=47000))

    def test_null_to_value_is_material(self, existing):
        before = dict(existing, total_funding_available=None)
        assert is_material_change(before, existing)

    def test_value_to_null_is_material(self, existing):
        assert is_material_change(existing, dict(existing, total_funding_available=None))

    def test_zero_to_value_is_material(self, existing):
        detector = ChangeDetector()
        assert detector.has_amount_changed(0, 100)
        assert not detector.has_amount_changed(0, 0)
        assert not detector.has_amount_changed(None, None)

    def test_formatted_strings_compare_numerically(self):
        assert not ChangeDetector().has_amount_changed("$1,000,000", 1000000)


class TestDatesAndStatus:
    def test_same_day_different_time_is_not_material(self, existing):
        incoming = dict(existing, close_date="2024-06-30")
        assert not is_material_change(existing, incoming)

    def test_different_day_is_material(self, existing):
        incoming = dict(existing, close_date="2024-07-01")
        assert is_material_change(existing, incoming)

    def test_status_case_and_whitespace_ignored(self, existing):
        assert not is_material_change(existing, dict(existing, status="  OPEN "))
        assert is_material_change(existing, dict(existing, status="closed"))

    def test_normalize_date(self):
        assert normalize_date("2024-06-30T23:59:59Z") == "2024-06-30"
        assert normalize_date("") is None
        assert normalize_date("not a date") == "not a date"


class TestDescriptions:
    def test_punctuation_and_case_only_is_not_material(self, existing):
        incoming = dict(existing, description="FUNDING for municipal clean-energy, and building efficiency upgrades!")
        assert not is_material_change(existing, incoming)

    def test_rewritten_description_is_material(self, existing):
        incoming = dict(existing, description="Loans for rural broadband deployment to tribal communities.")
        assert is_material_change(existing, incoming)

    def test_one_side_missing_is_material(self, existing):
        assert is_material_change(existing, dict(existing, description=None))

    def test_both_missing_is_not_material(self, existing):
        before = dict(existing, description=None)
        assert not is_material_change(before, dict(before, description=""))

    def test_small_word_addition_stays_similar(self):
        detector = ChangeDetector()
        old = "Grants support municipal solar projects across participating communities statewide"
        new = "Grants support municipal solar projects across participating communities statewide today"
        assert not detector.has_description_changed(old, new)


class TestInputs:
    def test_reads_models_and_camel_case_mappings(self, existing):
        model = Opportunity(maximum_award=1000000)
        assert get_field(model, "maximum_award") == 1000000
        assert get_field({"maximumAward": 5}, "maximum_award") == 5
        assert get_field(None, "maximum_award") is None

    def test_model_against_row(self, existing):
        incoming = Opportunity(
            status="Open",
            minimum_award=50000,
            maximum_award=1000000,
            total_funding_available=10000000,
            open_date="2024-01-15",
            close_date="2024-06-30",
            description=existing["description"],
        )
        assert not is_material_change(existing, incoming)

    def test_inputs_not_mutated(self, existing):
        incoming = dict(existing, maximum_award=2000000, description="Entirely different text here now")
        before = (copy.deepcopy(existing), copy.deepcopy(incoming))

        is_material_change(existing, incoming)
        describe_changes(existing, incoming)

        assert (existing, incoming) == before


class TestDescribeChanges:
    def test_lists_changed_fields_only(self, existing):
        incoming = dict(existing, maximum_award=2000000, status="closed")

        changes = describe_changes(existing, incoming)

        assert set(changes) == {"maximum_award", "status"}
        assert changes["maximum_award"] == {"from": 1000000, "to": 2000000}

    def test_description_preview_truncated(self, existing):
        long_text = "completely unrelated words " * 10
        changes = describe_changes(existing, dict(existing, description=long_text))

        assert changes["description"]["to"] == long_text[:100] + "..."
        assert changes["description"]["from"] == existing["description"]
