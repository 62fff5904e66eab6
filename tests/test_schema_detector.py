"""
Tests for record type detection.

Run with: pytest tests/test_schema_detector.py -v
"""

import pytest

from muni_ingest.logic.schema_detector import detect
from muni_ingest.models.records import ImportContext, TargetRecordType


class TestContextWins:
    """The screen the upload came from forces the record type."""

    @pytest.mark.parametrize("context, expected", [
        (ImportContext.TABARIM, TargetRecordType.TABARIM),
        (ImportContext.REGULAR_BUDGET, TargetRecordType.REGULAR_BUDGET),
        (ImportContext.COLLECTION, TargetRecordType.COLLECTION_DATA),
        (ImportContext.SALARY, TargetRecordType.SALARY_DATA),
        (ImportContext.GRANTS, TargetRecordType.GRANTS),
        (ImportContext.BUDGET_AUTHORIZATIONS, TargetRecordType.BUDGET_AUTHORIZATIONS),
        (ImportContext.BUSINESS, TargetRecordType.LICENSES),
        (ImportContext.EDUCATION, TargetRecordType.INSTITUTIONS),
    ])
    def test_context_mapping(self, context, expected):
        result = detect(context, ["anything"])
        assert result.record_type == expected
        assert result.source == "context"

    def test_context_overrides_headers(self):
        """Grant-looking headers uploaded from the tabarim screen stay tabarim."""
        result = detect("tabarim", ["משרד", "קול קורא"])
        assert result.record_type == TargetRecordType.TABARIM


class TestHeaderRules:
    """Global uploads are classified from the header row."""

    @pytest.mark.parametrize("headers, expected", [
        (["סוג נכס", "גביה בפועל"], TargetRecordType.COLLECTION_DATA),
        (["property_type", "annual_budget"], TargetRecordType.COLLECTION_DATA),
        (["עובד", "משכורת"], TargetRecordType.SALARY_DATA),
        (["authorization_number", "ministry"], TargetRecordType.BUDGET_AUTHORIZATIONS),
        (['שם תב"ר', "תקציב מאושר"], TargetRecordType.TABARIM),
        (["tabar_number", "tabar_name"], TargetRecordType.TABARIM),
        (["category_name", "budget_amount"], TargetRecordType.REGULAR_BUDGET),
        (["grant_name", "ministry"], TargetRecordType.GRANTS),
        (["institution_name", "address"], TargetRecordType.INSTITUTIONS),
        (["business_name", "license_number"], TargetRecordType.BUSINESS_LICENSES),
    ])
    def test_detects_from_headers(self, headers, expected):
        result = detect(ImportContext.GLOBAL, headers)
        assert result.record_type == expected
        assert result.source == "headers"
        assert "matched" in result.reason

    def test_rule_order_authorization_before_grants(self):
        """An authorization sheet mentioning a ministry is still an authorization."""
        result = detect("global", ["ministry", "authorization_number"])
        assert result.record_type == TargetRecordType.BUDGET_AUTHORIZATIONS

    def test_undetected(self):
        """Unknown headers yield undetected with a reason, never an exception."""
        result = detect("global", ["foo", "bar"])
        assert result.record_type == TargetRecordType.UNDETECTED
        assert not result.detected
        assert result.reason

    def test_unknown_context_treated_as_global(self):
        result = detect("no-such-screen", ["tabar_name"])
        assert result.record_type == TargetRecordType.TABARIM

    def test_pure(self):
        """Same input, same answer."""
        headers = ["category_name", "budget_amount"]
        assert detect("global", headers) == detect("global", headers)
