# muni_ingest/logic/header_normalizer.py
"""
Header Normalizer

Maps raw spreadsheet column labels (mostly Hebrew municipal vocabulary) to
canonical field names used by the row mapper and the collection store.

Matching order:
1. Exact lookup in the static synonym table (case-insensitive, trimmed,
   whitespace collapsed, Hebrew geresh/gershayim unified)
2. Fuzzy match with rapidfuzz for near-miss labels (typos, extra words)
3. Pass-through: unknown labels keep their lowercased/trimmed text so the
   mapper can still find them by original wording

Normalization never fails and never drops a column.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz, process

from .constants import EMPTY_HEADER_PREFIX, FUZZY_MATCH_THRESHOLD


# ====================================================================================
# SYNONYM TABLE
# ====================================================================================
# Canonical field -> known source labels. Order matters: when a label is listed
# under several canonical fields (e.g. "תקציב"), the FIRST field wins.

HEADER_SYNONYMS: Dict[str, List[str]] = {
    # Institutions
    "institution_name": ["שם המוסד", "שם מוסד", "מוסד"],
    "address": ["כתובת", "מען", "כתובת המוסד"],
    "phone": ["טלפון", "טל", "מספר טלפון", "מס טלפון"],
    "institution_type": ["סוג המוסד", "סוג מוסד", "קטגוריה"],

    # Business licenses
    "business_name": ["שם העסק", "שם עסק", "עסק"],
    "license_holder": ["בעל הרישיון", "בעל רישיון", "בעלים"],
    "license_number": ["מספר רישיון", "מס רישיון", "מס' רישיון", "רישיון"],
    "license_type": ["סוג הרישיון", "סוג רישיון", "קטגוריית רישיון"],
    "issue_date": ["תאריך הנפקה", "תאריך נפקה", "הונפק ב"],
    "expiry_date": [
        "תאריך תפוגה", "תפוגה", "פוגה ב", "תאריך פקיעה", "פוקע ב", "פקיעה",
        "תאריך עדכון תוקף", "תא.עדכון ק.תוקף",
    ],
    "status": ["סטטוס", "מצב", "סטאטוס"],

    # Licensing file export (רישוי עסקים)
    "owner": ["שם בעל העסק", "בעל העסק", "בעל"],
    "street": ["רחוב"],
    "house_number": ["בית", "מספר בית"],
    "mobile": ["מס פלאפון", "נייד", "טלפון נייד"],
    "email": ["כתובת מייל עסק", "כתובת מייל", "אימייל", 'דוא"ל'],
    "business_nature": ["מהות עסק", "טיב עסק"],
    "request_type": ["סוג בקשה", "סוג פנייה"],
    "group_category": ["קבוצה"],
    "reported_area": ["שטח מדווח", "שטח"],
    "validity": ["תוקף עד", "תוקף"],
    "request_date": ["תאריך בקשה", "תאריך פנייה"],
    "delivery_date": ["תאריך מסירה"],
    "follow_up_date": ["תאריך מעקב"],
    "judgment_date": ["ת. פסק דין", "תאריך פסק דין"],
    "closure_date": ["תאריך סגירה"],
    "inspection_date": ["תאריך ביקורת"],
    "inspector": ["מפקח"],
    "area": ["אזור"],
    "block_parcel_sub": ["גוש חלקה תת"],
    "location_description": ["תאור מקום", "תיאור מקום"],
    "fire_department_number": ["מספר כיבוי אש"],
    "risk_level": ["דרגת סיכון"],
    "file_holder": ["מחזיק בתיק"],
    "reason_no_license": ["סיבה ללא רישוי"],

    # Regular budget
    "category_name": ["שם קטגוריה", "שם הקטגוריה", "סעיף", "שם סעיף"],
    "category_type": ["סוג", "סוג קטגוריה", "טיפוס"],
    "budget_amount": ["תקציב", "סכום תקציב", "תקציב שנתי מאושר"],
    "actual_amount": ["ביצוע", "בפועל", "ביצוע בפועל", "תקציב יחסי לתקופה"],
    "cumulative_execution": ["ביצוע מצטבר"],

    # Collection
    "property_type": ["סוג נכס", "סוג הנכס", "נכס"],
    "annual_budget": ["תקציב שנתי", "תקציב לשנה"],
    "relative_budget": ["תקציב יחסי", "תקציב יחסי %", "אחוז תקציב"],
    "actual_collection": ["גביה בפועל", "גביה", "גבייה בפועל", "גבייה"],

    # Tabarim (extraordinary budget projects)
    "tabar_name": [
        'שם תב"ר', 'שם התב"ר', 'תב"ר', "שם פרויקט",
        "ריכוז התקבולים והתשלומים של התקציב הבלתי רגיל לפי פרקי התקציב",
    ],
    "tabar_number": ['מספר תב"ר', 'מס תב"ר', "מס' תב\"ר"],
    "domain": ["תחום", "תחום פעילות", "תחום עיסוק"],
    "funding_source1": ["מקור מימון", "מקור מימון 1", "מימון"],
    "funding_source2": ["מקור מימון 2"],
    "funding_source3": ["מקור מימון 3"],
    "approved_budget": ["תקציב מאושר", "אושר", 'תקציב תב"ר'],
    "income_actual": ["הכנסות בפועל", "הכנסות", "הכנסה בפועל", "ביצוע מצטבר הכנסות"],
    "expense_actual": ["הוצאות בפועל", "הוצאות", "הוצאה בפועל", "ביצוע מצטבר הוצאות"],
    "surplus_deficit": ["עודף/גירעון", "עודף גירעון", "עודף (גירעון)", "עודף", "גירעון"],

    # Grants
    "grant_name": ["שם הקול קורא", "שם", "קול קורא", "שם גרנט"],
    "ministry": ["משרד", "משרד ממשלתי", "גוף מממן", "משרד מממן"],
    "grant_amount": ["סכום", "תקציב גרנט", "סכום גרנט", "סך תקציב הקול קורא"],
    "grant_status": ["סטטוס גרנט", "מצב גרנט"],
    "submitted_at": ["תאריך הגשה", "הוגש ב", "תאריך הגשת הבקשה"],
    "decision_at": ["תאריך החלטה", "החלטה ב", "תאריך תשובה"],
    "project_description": ["נושא/פרוייקט", "נושא/פרויקט", "נושא", "פרוייקט"],
    "responsible_person": ["אחראי", "איש קשר"],
    "submission_amount": ["סכום הגשה", "סכום ההגשה"],
    "support_amount": ["סכום תמיכה", "סכות תמיכה"],
    "approved_amount": ["סכום אושר", "סכום שאושר"],
    "municipality_participation": ["סכום השתתפות רשות", "השתתפות רשות", "השתתפות הרשות"],

    # Budget authorizations
    "authorization_number": ["מספר הרשאה", "מס הרשאה", "מס' הרשאה", "מס' ההרשאה"],
    "program": ["תוכנית", "תכנית", "פרוגרמה", "תיאור ההרשאה"],
    "purpose": ["מטרה"],
    "amount": ["סכום ההרשאה", "סכום מאושר"],
    "valid_until": ["תוקף ההרשאה", "בתוקף עד"],
    "department": ["מחלקה מטפלת", "מחלקה", "יחידה מטפלת"],
    "approved_at": ["תאריך אישור מליאה", "אושר ב", "תאריך אישור"],
    "notes": ["הערות", "הערה", "הארות"],
}

# Income / expense / surplus columns in irregular tabarim reports. Each rule is
# a tuple of substrings that must ALL appear in the header; first rule wins.
FINANCIAL_COLUMN_RULES: Dict[str, List[Tuple[str, ...]]] = {
    "income": [
        ("ביצוע", "הכנסות"), ("ביצוע", "הכנסה"), ("מצטבר", "הכנסות"),
        ("הכנסות בפועל",), ("income",),
    ],
    "expense": [
        ("ביצוע", "הוצאות"), ("ביצוע", "הוצאה"), ("מצטבר", "הוצאות"),
        ("הוצאות בפועל",), ("expense",),
    ],
    "surplus": [
        ("עודף",), ("גירעון",), ("surplus",), ("deficit",),
    ],
}


# ====================================================================================
# DATA CLASSES
# ====================================================================================

@dataclass
class HeaderMapping:
    """How one raw header was resolved, for the upload preview."""
    original: str
    canonical: Optional[str]
    match_type: str  # "exact", "fuzzy", "positional", "none"
    score: float = 0.0

    @property
    def recognized(self) -> bool:
        return self.canonical is not None


# ====================================================================================
# LOOKUP
# ====================================================================================

def _lookup_key(label: Any) -> str:
    """Normalize label text for table lookup."""
    if label is None:
        return ""
    key = str(label).strip().lower()
    key = key.replace("״", '"').replace("׳", "'").replace("`", "'")
    key = re.sub(r"\s+", " ", key)
    return key


def _passthrough(label: Any) -> str:
    return "" if label is None else str(label).strip().lower()


def _build_lookup() -> Dict[str, str]:
    lookup: Dict[str, str] = {}
    for canonical, labels in HEADER_SYNONYMS.items():
        # Canonical names are accepted as headers too ("tabar_name", "Tabar Name")
        for label in [canonical, canonical.replace("_", " "), *labels]:
            lookup.setdefault(_lookup_key(label), canonical)
    return lookup


_LOOKUP = _build_lookup()
_FUZZY_CHOICES = list(_LOOKUP.keys())


@lru_cache(maxsize=2048)
def _resolve(key: str, threshold: float) -> Tuple[Optional[str], str, float]:
    if not key:
        return None, "none", 0.0
    if key.startswith(EMPTY_HEADER_PREFIX):
        return None, "positional", 0.0
    if key in _LOOKUP:
        return _LOOKUP[key], "exact", 100.0
    if len(key) < 3:
        return None, "none", 0.0

    match = process.extractOne(key, _FUZZY_CHOICES, scorer=fuzz.ratio, score_cutoff=threshold)
    if match:
        choice, score, _ = match
        return _LOOKUP[choice], "fuzzy", float(score)
    return None, "none", 0.0


def normalize(label: Any, threshold: float = FUZZY_MATCH_THRESHOLD) -> str:
    """
    Map a raw column label to its canonical field name.

    Args:
        label: Raw header text as it appeared in the sheet
        threshold: Minimum rapidfuzz ratio for a fuzzy match

    Returns:
        Canonical field name, or the lowercased/trimmed label when unknown
    """
    canonical, _, _ = _resolve(_lookup_key(label), float(threshold))
    return canonical or _passthrough(label)


def normalize_record(raw: Dict[str, Any], threshold: float = FUZZY_MATCH_THRESHOLD) -> Dict[str, Any]:
    """
    Apply `normalize` to every key of a raw record, keeping column order.

    When two labels resolve to the same canonical name the later one keeps its
    own lowercased label, so no cell value is ever overwritten.
    """
    normalized: Dict[str, Any] = {}
    for label, value in raw.items():
        key = normalize(label, threshold)
        if key in normalized:
            key = _passthrough(label)
            suffix = 1
            base = key
            while key in normalized:
                key = f"{base}_{suffix}"
                suffix += 1
        normalized[key] = value
    return normalized


def build_header_mappings(
    headers: Sequence[str],
    threshold: float = FUZZY_MATCH_THRESHOLD
) -> List[HeaderMapping]:
    """Resolve every header for display; unknown headers have canonical=None."""
    mappings = []
    for header in headers:
        canonical, match_type, score = _resolve(_lookup_key(header), float(threshold))
        mappings.append(HeaderMapping(
            original=header,
            canonical=canonical,
            match_type=match_type,
            score=score,
        ))
    return mappings


def get_canonical_fields() -> List[str]:
    """All canonical field names, for manual mapping choices."""
    return list(HEADER_SYNONYMS.keys())


def locate_financial_columns(headers: Sequence[str]) -> Dict[str, str]:
    """
    Find income / expense / surplus columns by substring rules.

    Args:
        headers: Header labels (raw or normalized)

    Returns:
        Dict with any of the keys "income", "expense", "surplus" mapped to the
        header that matched first
    """
    located: Dict[str, str] = {}
    for role, rules in FINANCIAL_COLUMN_RULES.items():
        for rule in rules:
            for header in headers:
                text = _lookup_key(header)
                if all(part in text for part in rule):
                    located[role] = header
                    break
            if role in located:
                break
    return located
