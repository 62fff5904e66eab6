# muni_ingest/logic/parse_utils.py
"""
Parsing Utilities Module

Handles safe parsing of numbers, dates, and text from spreadsheet cells.
Nothing in here raises: a cell that cannot be parsed yields the caller's
default so one bad cell never blocks a whole import.
"""

import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

import pandas as pd

from .constants import (
    EARLIEST_REASONABLE_YEAR,
    EXCEL_SERIAL_DATE_BASE,
    MAX_EXCEL_SERIAL_DATE,
    MIN_EXCEL_SERIAL_DATE,
    TWO_DIGIT_YEAR_PIVOT,
)

logger = logging.getLogger(__name__)

# Placeholder strings that spreadsheet exports write into empty cells
_NULL_STRINGS = {"", "null", "none", "nan", "nat", "undefined", "-"}

_CURRENCY_PATTERN = re.compile(r"[$€£¥₪,\s\u00a0\u200e\u200f]")
_DAY_FIRST_PATTERN = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2}|\d{4})$")
_ISO_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_LEADING_CODE_PATTERN = re.compile(r"^\d+")


def is_blank(v: Any) -> bool:
    """True for None, NaN/NaT and placeholder strings such as 'null'."""
    if v is None:
        return True
    if isinstance(v, str):
        return v.strip().lower() in _NULL_STRINGS
    try:
        return bool(pd.isna(v))
    except (TypeError, ValueError):
        return False


# ==============================================================================
# NUMBER PARSING
# ==============================================================================

def parse_number(v: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """
    Parse a numeric value from various formats.

    Handles:
    - String numbers with commas: "1,234.56" -> 1234.56
    - Currency symbols: "₪1,234" -> 1234.0
    - Accounting format negatives: "(1,234.56)" -> -1234.56
    - Trailing minus used by Hebrew ledgers: "1,234-" -> -1234.0
    - Percent suffix: "12.5%" -> 12.5
    - Already numeric values

    Args:
        v: Value to parse
        default: Returned when parsing fails (0.0 unless overridden)

    Returns:
        Parsed float or default value
    """
    if isinstance(v, bool) or is_blank(v):
        return default

    try:
        if isinstance(v, (int, float)):
            result = float(v)
        else:
            s = _CURRENCY_PATTERN.sub("", str(v).strip())

            is_negative = False
            if s.startswith("(") and s.endswith(")"):
                is_negative = True
                s = s[1:-1]
            if s.endswith("%"):
                s = s[:-1]
            if s.startswith("-"):
                is_negative = not is_negative
                s = s[1:]
            elif s.endswith("-"):
                is_negative = not is_negative
                s = s[:-1]

            result = float(s)
            if is_negative:
                result = -result

        if math.isnan(result) or math.isinf(result):
            return default
        return result

    except (ValueError, TypeError, AttributeError) as e:
        logger.debug(f"Failed to parse number from '{v}': {e}")
        return default


def parse_optional_number(v: Any) -> Optional[float]:
    """Like parse_number but returns None for empty or unparseable cells."""
    return parse_number(v, default=None)


# ==============================================================================
# DATE PARSING
# ==============================================================================

def _build_date(year: int, month: int, day: int) -> Optional[date]:
    if year < 100:
        year += 1900 if year > TWO_DIGIT_YEAR_PIVOT else 2000
    try:
        result = date(year, month, day)
    except ValueError:
        return None
    if result.year <= EARLIEST_REASONABLE_YEAR:
        return None
    return result


def _from_excel_serial(serial: float) -> Optional[date]:
    if not MIN_EXCEL_SERIAL_DATE <= serial <= MAX_EXCEL_SERIAL_DATE:
        return None
    return EXCEL_SERIAL_DATE_BASE + timedelta(days=int(serial))


def parse_date(v: Any) -> Optional[str]:
    """
    Parse a cell into an ISO date string (YYYY-MM-DD).

    Handles:
    - datetime / date / pandas Timestamp cells
    - Excel serial dates (e.g., 45000 -> 2023-03-15)
    - Day-first formats: "14/03/2023", "14.3.23", "14-03-2023"
    - ISO format: "2023-03-14" (a time part is ignored)

    Returns:
        ISO date string, or None when the value is empty or not a date
    """
    if isinstance(v, bool) or is_blank(v):
        return None

    if isinstance(v, (datetime, pd.Timestamp)):
        parsed = v.date()
        return parsed.isoformat() if parsed.year > EARLIEST_REASONABLE_YEAR else None
    if isinstance(v, date):
        return v.isoformat() if v.year > EARLIEST_REASONABLE_YEAR else None

    if isinstance(v, (int, float)):
        parsed = _from_excel_serial(float(v))
        return parsed.isoformat() if parsed else None

    s = str(v).strip()

    match = _DAY_FIRST_PATTERN.match(s)
    if match:
        day, month, year = (int(part) for part in match.groups())
        parsed = _build_date(year, month, day)
        return parsed.isoformat() if parsed else None

    match = _ISO_PATTERN.match(s)
    if match:
        year, month, day = (int(part) for part in match.groups())
        parsed = _build_date(year, month, day)
        return parsed.isoformat() if parsed else None

    serial = parse_optional_number(s)
    if serial is not None:
        parsed = _from_excel_serial(serial)
        return parsed.isoformat() if parsed else None

    logger.debug(f"Could not parse date format: '{s}'")
    return None


# ==============================================================================
# TEXT CLEANING
# ==============================================================================

def clean_text(v: Any, default: str = "") -> str:
    """
    Convert a cell to trimmed text.

    Whole floats lose their ".0" so numeric identifiers read from Excel
    ("101.0") come back as "101".
    """
    if isinstance(v, bool):
        return str(v)
    if is_blank(v):
        return default
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    if isinstance(v, (datetime, pd.Timestamp)):
        return v.date().isoformat()
    return str(v).strip()


def optional_text(v: Any) -> Optional[str]:
    """clean_text that keeps None for empty cells."""
    text = clean_text(v)
    return text or None


def strip_leading_code(v: Any) -> str:
    """Remove a leading numeric code: "12מזון ומשקאות" -> "מזון ומשקאות"."""
    return _LEADING_CODE_PATTERN.sub("", clean_text(v)).strip()
