"""
Tests for activity classification.

These tests verify:
- Catalog category strings are normalized case- and whitespace-insensitively
- Billable requires IN_GRANT plus an explicit allowable flag
- Unknown codes degrade to UNCLASSIFIED, reserved codes to OUT_OF_GRANT
- An unavailable catalog classifies everything UNCLASSIFIED
"""

from datetime import date

import pytest

from worklog_kernel.domain.classification import (
    ActivityCatalog,
    classify,
    normalize_funding_category,
)
from worklog_kernel.domain.types import ActivityDefinition, FundingCategory, WorklogEntry


def _entry(code, minutes=30):
    return WorklogEntry(
        entry_id="e-1",
        actor_id="T100",
        entry_date=date(2024, 3, 6),
        minutes=minutes,
        activity_code=code,
    )


@pytest.fixture
def catalog():
    return ActivityCatalog.from_definitions([
        ActivityDefinition("DIRECT_INSTRUCTION", "Direct instruction", True, "IN_GRANT"),
        ActivityDefinition("PLANNING", "Planning", None, "In Grant"),
        ActivityDefinition("COACHING", "Coaching", False, "in-grant"),
        ActivityDefinition("NON_GRANT", "Non-grant", True, None),
        ActivityDefinition("RECESS", "Recess", True, "out of grant"),
        ActivityDefinition("MYSTERY", "Mystery", True, "Something Else"),
    ])


class TestNormalizeFundingCategory:

    @pytest.mark.parametrize("raw", ["IN_GRANT", " in_grant ", "In-Grant", "in grant", "GRANT"])
    def test_in_grant_spellings(self, raw):
        assert normalize_funding_category(raw) is FundingCategory.IN_GRANT

    @pytest.mark.parametrize("raw", ["OUT_OF_GRANT", "out of grant", "Out-Of-Grant", "non_grant"])
    def test_out_of_grant_spellings(self, raw):
        assert normalize_funding_category(raw) is FundingCategory.OUT_OF_GRANT

    @pytest.mark.parametrize("raw", [None, "", "Something Else", "maybe"])
    def test_unmapped_is_unclassified(self, raw):
        assert normalize_funding_category(raw) is FundingCategory.UNCLASSIFIED


class TestClassify:

    def test_allowable_in_grant_is_billable(self, catalog):
        result = classify(_entry("DIRECT_INSTRUCTION", 45), catalog)
        assert result.category is FundingCategory.IN_GRANT
        assert result.billable is True
        assert result.minutes == 45
        assert result.activity_label == "Direct instruction"

    def test_silent_allowable_is_not_billable(self, catalog):
        result = classify(_entry("PLANNING"), catalog)
        assert result.category is FundingCategory.IN_GRANT
        assert result.billable is False

    def test_not_allowable_is_not_billable(self, catalog):
        result = classify(_entry("COACHING"), catalog)
        assert result.category is FundingCategory.IN_GRANT
        assert result.billable is False

    def test_code_lookup_is_case_insensitive(self, catalog):
        result = classify(_entry("  direct_instruction "), catalog)
        assert result.category is FundingCategory.IN_GRANT
        assert result.activity_code == "DIRECT_INSTRUCTION"

    def test_out_of_grant_never_billable(self, catalog):
        result = classify(_entry("RECESS"), catalog)
        assert result.category is FundingCategory.OUT_OF_GRANT
        assert result.billable is False

    def test_unmapped_category_is_unclassified(self, catalog):
        result = classify(_entry("MYSTERY"), catalog)
        assert result.category is FundingCategory.UNCLASSIFIED
        assert result.billable is False

    def test_unknown_code_is_unclassified(self, catalog):
        result = classify(_entry("ZZZ"), catalog)
        assert result.category is FundingCategory.UNCLASSIFIED
        assert result.billable is False
        assert result.activity_label == "ZZZ"

    def test_reserved_code_missing_from_catalog_is_out_of_grant(self, catalog):
        result = classify(_entry("other"), catalog)
        assert result.category is FundingCategory.OUT_OF_GRANT

    def test_reserved_code_with_unmapped_category_is_out_of_grant(self, catalog):
        result = classify(_entry("NON_GRANT"), catalog)
        assert result.category is FundingCategory.OUT_OF_GRANT

    def test_custom_reserved_codes(self):
        catalog = ActivityCatalog.from_definitions([], reserved_out_of_grant_codes=["personal"])
        assert classify(_entry("PERSONAL"), catalog).category is FundingCategory.OUT_OF_GRANT
        assert classify(_entry("OTHER"), catalog).category is FundingCategory.UNCLASSIFIED

    def test_unavailable_catalog_degrades_everything(self):
        catalog = ActivityCatalog.unavailable()
        for code in ("DIRECT_INSTRUCTION", "OTHER", "ZZZ"):
            result = classify(_entry(code), catalog)
            assert result.category is FundingCategory.UNCLASSIFIED
            assert result.billable is False

    def test_classification_is_deterministic(self, catalog):
        entry = _entry("DIRECT_INSTRUCTION")
        assert classify(entry, catalog) == classify(entry, catalog)
