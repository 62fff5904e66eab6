"""
Unit Tests for cell parsing helpers.

Run with: pytest tests/test_parse_utils.py -v
"""

from datetime import date, datetime

import pytest

from muni_ingest.logic.parse_utils import (
    clean_text,
    is_blank,
    parse_date,
    parse_number,
    parse_optional_number,
    strip_leading_code,
)


class TestParseNumber:
    """Numbers as they appear in municipal ledgers."""

    @pytest.mark.parametrize("raw, expected", [
        ("1,234.56", 1234.56),
        ("₪1,234", 1234.0),
        ("(1,234.56)", -1234.56),
        ("1,234-", -1234.0),
        ("-500", -500.0),
        ("12.5%", 12.5),
        (42, 42.0),
        (3.5, 3.5),
    ])
    def test_parses_common_formats(self, raw, expected):
        """Should understand commas, currency, accounting negatives and percents."""
        assert parse_number(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["abc", "", None, "null", float("nan"), float("inf"), True])
    def test_unparseable_returns_zero(self, raw):
        """Unparseable cells fall back to 0.0, never raise."""
        assert parse_number(raw) == 0.0

    def test_custom_default(self):
        """Caller-supplied default is returned on failure."""
        assert parse_number("n/a", default=-1.0) == -1.0

    def test_optional_number_keeps_none(self):
        """parse_optional_number distinguishes empty from zero."""
        assert parse_optional_number("") is None
        assert parse_optional_number("0") == 0.0


class TestParseDate:
    """Dates from Excel cells and Hebrew-locale strings."""

    def test_datetime_cell(self):
        """datetime cells become ISO dates."""
        assert parse_date(datetime(2024, 5, 1, 13, 45)) == "2024-05-01"
        assert parse_date(date(2023, 12, 31)) == "2023-12-31"

    def test_excel_serial(self):
        """Excel serial numbers in the plausible range are converted."""
        assert parse_date(45000) == "2023-03-15"
        assert parse_date("45000") == "2023-03-15"

    def test_small_numbers_are_not_dates(self):
        """Amounts like 1500 must not turn into 1904 dates."""
        assert parse_date(1500) is None

    @pytest.mark.parametrize("raw, expected", [
        ("14/03/2023", "2023-03-14"),
        ("14.3.23", "2023-03-14"),
        ("01-12-2024", "2024-12-01"),
        ("2024-06-30", "2024-06-30"),
        ("2024-06-30T10:00:00", "2024-06-30"),
        ("1/1/99", "1999-01-01"),
    ])
    def test_string_formats(self, raw, expected):
        """Day-first and ISO strings are supported."""
        assert parse_date(raw) == expected

    @pytest.mark.parametrize("raw", ["31/02/2024", "not a date", "", None, "01/01/1900"])
    def test_invalid_dates(self, raw):
        """Impossible or implausible dates yield None."""
        assert parse_date(raw) is None


class TestText:

    def test_whole_float_loses_decimal(self):
        """Numeric identifiers read as floats come back without '.0'."""
        assert clean_text(101.0) == "101"
        assert clean_text(101.5) == "101.5"

    def test_blank_placeholders(self):
        assert is_blank("  null ")
        assert is_blank(float("nan"))
        assert not is_blank(0)
        assert clean_text(None, default="x") == "x"

    def test_strip_leading_code(self):
        """Leading category codes are removed from licensing labels."""
        assert strip_leading_code("12מזון ומשקאות") == "מזון ומשקאות"
        assert strip_leading_code("חידוש") == "חידוש"
