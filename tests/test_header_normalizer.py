"""
Tests for header normalization (Hebrew labels -> canonical field names).

Run with: pytest tests/test_header_normalizer.py -v
"""

import pytest

from muni_ingest.logic.header_normalizer import (
    build_header_mappings,
    get_canonical_fields,
    locate_financial_columns,
    normalize,
    normalize_record,
)


class TestNormalize:
    """Exact, fuzzy and pass-through resolution."""

    @pytest.mark.parametrize("label, expected", [
        ('שם תב"ר', "tabar_name"),
        ("שם תב״ר", "tabar_name"),
        ('מספר תב"ר', "tabar_number"),
        ("  שם   המוסד ", "institution_name"),
        ("תקציב שנתי מאושר", "budget_amount"),
        ("גביה בפועל", "actual_collection"),
        ("מספר הרשאה", "authorization_number"),
        ("תאריך פקיעה", "expiry_date"),
        ("Tabar Name", "tabar_name"),
        ("budget_amount", "budget_amount"),
    ])
    def test_known_labels(self, label, expected):
        """Synonyms, gershayim variants and canonical names all resolve."""
        assert normalize(label) == expected

    def test_fuzzy_typo(self):
        """A one-letter typo still resolves through rapidfuzz."""
        assert normalize("הכנסות בפועלל") == "income_actual"

    def test_unknown_label_passes_through(self):
        """Unknown labels keep their lowercased, trimmed text."""
        assert normalize("  Some Custom Column ") == "some custom column"

    def test_positional_labels_are_not_fuzzy_matched(self):
        assert normalize("__empty_4") == "__empty_4"

    def test_threshold_disables_fuzzy(self):
        """With a threshold of 100 only exact matches count."""
        assert normalize("הכנסות בפועלל", threshold=100) == "הכנסות בפועלל"


class TestNormalizeRecord:

    def test_keys_renamed_values_kept(self):
        raw = {'שם תב"ר': "כביש", "הכנסות בפועל": 1000}
        assert normalize_record(raw) == {"tabar_name": "כביש", "income_actual": 1000}

    def test_collision_keeps_both_values(self):
        """Two labels for the same field never overwrite each other."""
        raw = {"שם המוסד": "אורט", "מוסד": "עמל"}
        normalized = normalize_record(raw)
        assert normalized["institution_name"] == "אורט"
        assert "עמל" in normalized.values()
        assert len(normalized) == 2

    def test_column_order_preserved(self):
        raw = {"x": 1, "כתובת": 2, "y": 3}
        assert list(normalize_record(raw).keys()) == ["x", "address", "y"]


class TestHeaderMappings:
    """Preview metadata for each header."""

    def test_match_types(self):
        mappings = build_header_mappings(['שם תב"ר', "הכנסות בפועלל", "__empty_2", "zzz"])
        kinds = [m.match_type for m in mappings]
        assert kinds == ["exact", "fuzzy", "positional", "none"]
        assert mappings[0].recognized
        assert not mappings[3].recognized
        assert mappings[1].score >= 85

    def test_canonical_fields_listed(self):
        fields = get_canonical_fields()
        assert "tabar_name" in fields
        assert "authorization_number" in fields


class TestFinancialColumns:
    """Income / expense / surplus columns in irregular tabarim reports."""

    def test_locates_execution_columns(self):
        headers = ["מס", "שם", "ביצוע מצטבר הכנסות 6/2025", "ביצוע מצטבר הוצאות 6/2025", "עודף (גירעון)"]
        located = locate_financial_columns(headers)
        assert located["income"] == headers[2]
        assert located["expense"] == headers[3]
        assert located["surplus"] == headers[4]

    def test_missing_columns_absent(self):
        assert locate_financial_columns(["a", "b"]) == {}
