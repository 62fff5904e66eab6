# muni_ingest/logic/schema_detector.py
"""
Schema Detection Module

Decides which collection an uploaded sheet belongs to.

Priority:
1. The screen the upload came from (import context) always wins
2. Ordered keyword rules over the header row, first match wins
3. Otherwise "undetected", with a reason the UI can show

Only headers are inspected, never row content, so the same headers always
give the same answer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple, Union

from ..models.records import ImportContext, TargetRecordType


@dataclass(frozen=True)
class DetectionResult:
    record_type: TargetRecordType
    reason: str
    source: str = "headers"  # "context", "headers", "none"

    @property
    def detected(self) -> bool:
        return self.record_type != TargetRecordType.UNDETECTED


# ====================================================================================
# RULE TABLES
# ====================================================================================

CONTEXT_RULES: Dict[ImportContext, Tuple[TargetRecordType, str]] = {
    ImportContext.REGULAR_BUDGET: (TargetRecordType.REGULAR_BUDGET, "Import context: regular budget screen"),
    ImportContext.COLLECTION: (TargetRecordType.COLLECTION_DATA, "Import context: collection screen"),
    ImportContext.SALARY: (TargetRecordType.SALARY_DATA, "Import context: salary screen"),
    ImportContext.TABARIM: (TargetRecordType.TABARIM, "Import context: tabarim screen"),
    ImportContext.GRANTS: (TargetRecordType.GRANTS, "Import context: grants screen"),
    ImportContext.BUDGET_AUTHORIZATIONS: (
        TargetRecordType.BUDGET_AUTHORIZATIONS, "Import context: budget authorizations screen"
    ),
    ImportContext.BUSINESS: (TargetRecordType.LICENSES, "Import context: business licensing screen"),
    ImportContext.EDUCATION: (TargetRecordType.INSTITUTIONS, "Import context: education screen"),
}

# (keywords, record type, reason). Checked in order against the lowercased,
# space-joined header row. Keywords cover the Hebrew labels and the canonical
# English field names produced by the header normalizer.
HEADER_RULES: List[Tuple[Tuple[str, ...], TargetRecordType, str]] = [
    (
        ("property_type", "actual_collection", "סוג נכס", "גביה", "גבייה"),
        TargetRecordType.COLLECTION_DATA,
        "Collection headers (property type / collection)",
    ),
    (
        ("salary", "quarter", "משכורת", "רבעון"),
        TargetRecordType.SALARY_DATA,
        "Salary headers (salary / quarter)",
    ),
    (
        ("authorization", "הרשאה", "הרשאות"),
        TargetRecordType.BUDGET_AUTHORIZATIONS,
        "Budget authorization headers",
    ),
    (
        ("tabar", 'תב"ר', "תב״ר", "תקציב בלתי רגיל", "התקציב הבלתי רגיל", "התקבולים והתשלומים"),
        TargetRecordType.TABARIM,
        "Tabarim headers (extraordinary budget)",
    ),
    (
        ("category", "budget_amount", "cumulative_execution", "תקציב רגיל", "תקציב שנתי מאושר", "תקציב יחסי"),
        TargetRecordType.REGULAR_BUDGET,
        "Regular budget headers",
    ),
    (
        ("grant", "ministry", "קול קורא", "קולות קוראים", "גרנט", "משרד"),
        TargetRecordType.GRANTS,
        "Grant headers (call for proposals / ministry)",
    ),
    (
        ("institution", "מוסד"),
        TargetRecordType.INSTITUTIONS,
        "Education institution headers",
    ),
    (
        ("license", "רישיון", "רשיון"),
        TargetRecordType.BUSINESS_LICENSES,
        "Business license headers",
    ),
]


# ====================================================================================
# DETECTION
# ====================================================================================

def _coerce_context(import_context: Union[ImportContext, str, None]) -> ImportContext:
    if isinstance(import_context, ImportContext):
        return import_context
    try:
        return ImportContext(str(import_context or ImportContext.GLOBAL.value).strip().lower())
    except ValueError:
        return ImportContext.GLOBAL


def detect(import_context: Union[ImportContext, str, None], headers: Sequence[str]) -> DetectionResult:
    """
    Determine the target record type for a sheet.

    Args:
        import_context: Screen the upload started from; unknown values are
            treated as the global screen
        headers: Header labels, raw or normalized

    Returns:
        DetectionResult; record_type is UNDETECTED when nothing matched
    """
    context = _coerce_context(import_context)
    if context in CONTEXT_RULES:
        record_type, reason = CONTEXT_RULES[context]
        return DetectionResult(record_type, reason, source="context")

    header_text = " ".join(str(h) for h in headers if h is not None).lower()
    header_text = header_text.replace("״", '"')

    for keywords, record_type, reason in HEADER_RULES:
        for keyword in keywords:
            if keyword in header_text:
                return DetectionResult(record_type, f"{reason}: matched '{keyword}'", source="headers")

    return DetectionResult(
        TargetRecordType.UNDETECTED,
        "No known data type matches these headers; upload from the matching screen instead",
        source="none",
    )
