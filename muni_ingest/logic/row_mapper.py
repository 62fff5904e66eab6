# muni_ingest/logic/row_mapper.py
"""
Row Mapper

Turns one normalized record (canonical field name -> cell value) into the
insert payload of a target collection.

Mapping is total: numbers that cannot be parsed become 0.0, enumerated fields
that match no rule take the type's fallback, missing text becomes "" (or None
for optional dates). A bad cell never blocks the rest of the file.

Field lookup per target field:
1. Named keys, in order (canonical names first, then raw Hebrew labels that
   the normalizer passes through)
2. Fixed column positions, only for irregular exports (blank or title-only
   header rows) and only when none of the named keys exist in the record
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type, Union

from pydantic import ValidationError

from ..models.records import (
    BudgetAuthorizationRecord,
    BusinessLicenseRecord,
    CategoryType,
    CollectionRecord,
    DepartmentSlug,
    Domain,
    FundingSource,
    GrantRecord,
    InstitutionRecord,
    LicenseRecord,
    MappedRecord,
    RegularBudgetRecord,
    TabarRecord,
    TargetRecordType,
)
from .header_normalizer import locate_financial_columns, normalize
from .parse_utils import (
    clean_text,
    is_blank,
    parse_date,
    parse_number,
    parse_optional_number,
    strip_leading_code,
)

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


# ==============================================================================
# CLASSIFICATION RULES
# ==============================================================================
# Ordered (substring, value) pairs; first match wins. More specific phrases
# come before the generic words they contain ("רשות מקרקעי" before "רשות").

FUNDING_SOURCE_RULES: List[Tuple[str, FundingSource]] = [
    ('רמ"י', FundingSource.RMI),
    ("רמי", FundingSource.RMI),
    ("רשות מקרקעי", FundingSource.RMI),
    ("מנהל תכנון", FundingSource.PLANNING_ADMINISTRATION),
    ("מינהל התכנון", FundingSource.PLANNING_ADMINISTRATION),
    ("מנהל התכנון", FundingSource.PLANNING_ADMINISTRATION),
    ("עירייה", FundingSource.SELF),
    ("עיריה", FundingSource.SELF),
    ("עירית", FundingSource.SELF),
    ("רשות", FundingSource.SELF),
    ("עצמי", FundingSource.SELF),
    ("municipality", FundingSource.SELF),
    ("פיס", FundingSource.LOTTERY),
    ("הלוואה", FundingSource.LOAN),
    ("הלואה", FundingSource.LOAN),
    ("חינוך", FundingSource.EDUCATION_MINISTRY),
    ("בינוי", FundingSource.CONSTRUCTION_HOUSING_MINISTRY),
    ("שיכון", FundingSource.CONSTRUCTION_HOUSING_MINISTRY),
    ("פנים", FundingSource.INTERIOR_MINISTRY),
    ("כלכלה", FundingSource.ECONOMY_MINISTRY),
    ("נגב", FundingSource.NEGEV_GALILEE_RESILIENCE_MINISTRY),
    ("גליל", FundingSource.NEGEV_GALILEE_RESILIENCE_MINISTRY),
    ("חוסן", FundingSource.NEGEV_GALILEE_RESILIENCE_MINISTRY),
    ("דיגיטל", FundingSource.NATIONAL_DIGITAL_MINISTRY),
    ("הגנת", FundingSource.ENVIRONMENTAL_PROTECTION_MINISTRY),
    ("סביבה", FundingSource.ENVIRONMENTAL_PROTECTION_MINISTRY),
    ("תרבות", FundingSource.CULTURE_MINISTRY),
    ("מדע", FundingSource.SCIENCE_TECHNOLOGY_MINISTRY),
    ("טכנולוגיה", FundingSource.SCIENCE_TECHNOLOGY_MINISTRY),
    ("תכנון", FundingSource.PLANNING_ADMINISTRATION),
    ("תחבורה", FundingSource.TRANSPORTATION_MINISTRY),
    ("בריאות", FundingSource.HEALTH_MINISTRY),
    ("אנרגיה", FundingSource.ENERGY_MINISTRY),
    ("חקלאות", FundingSource.AGRICULTURE_MINISTRY),
]

DOMAIN_RULES: List[Tuple[str, Domain]] = [
    ("אנרגיה", Domain.ENERGY),
    ("ארגוני", Domain.ORGANIZATIONAL),
    ("דיגיטל", Domain.DIGITAL),
    ("וטרינר", Domain.VETERINARY),
    ("ווטרינר", Domain.VETERINARY),
    ("מוסדות חינוך", Domain.EDUCATION_BUILDINGS),
    ("מבני חינוך", Domain.EDUCATION_BUILDINGS),
    ("חינוך", Domain.EDUCATION_BUILDINGS),
    ("מוסדות ציבור", Domain.PUBLIC_BUILDINGS),
    ("מבני ציבור", Domain.PUBLIC_BUILDINGS),
    ("שטחים ציבוריים", Domain.PUBLIC_SPACES),
    ('שצ"פ', Domain.PUBLIC_SPACES),
    ("סביבה", Domain.ENVIRONMENT),
    ("פעילות", Domain.ACTIVITIES),
    ("פעילויות", Domain.ACTIVITIES),
    ("רווחה", Domain.WELFARE),
    ("תכנון", Domain.PLANNING),
    ("תשתיות", Domain.INFRASTRUCTURE_ROADS),
    ("כבישים", Domain.INFRASTRUCTURE_ROADS),
]

DEPARTMENT_RULES: List[Tuple[str, DepartmentSlug]] = [
    ("הנדסה", DepartmentSlug.ENGINEERING),
    ('שפ"ע', DepartmentSlug.EDUCATION),
    ("חינוך", DepartmentSlug.EDUCATION),
    ("ספרייה", DepartmentSlug.NON_FORMAL),
    ("ספריה", DepartmentSlug.NON_FORMAL),
    ("תרבות", DepartmentSlug.NON_FORMAL),
    ("ספורט", DepartmentSlug.WELFARE),
    ("צעירים", DepartmentSlug.WELFARE),
    ("רווחה", DepartmentSlug.WELFARE),
]

EXPENSE_CATEGORY_KEYWORDS: Tuple[str, ...] = (
    "משכורות", "שכר", "הוצאות", "הוצאה", "רכישות", "תחזוקה", "שירותים",
    "פעילויות", "מימון", "expense",
)

# Totals rows: an identifying field opening with סה"כ, or holding only "total"
_TOTALS_ROW_PATTERN = re.compile(r'^(?:סה"כ|(?:grand\s+)?totals?\s*:?\s*$)', re.IGNORECASE)

# Report titles and header repeats, recognized on one field of the mapped row:
# (field, substrings anywhere in the text, words the text may start with)
HEADER_ROW_MARKERS: Dict[TargetRecordType, Tuple[str, Tuple[str, ...], Tuple[str, ...]]] = {
    TargetRecordType.REGULAR_BUDGET: ("category_name", ("תקציב", "עיריית"), ()),
    TargetRecordType.TABARIM: ("tabar_name", ('דו"ח תקופתי', 'שם תב"ר', "כולל קליטה"), ()),
    TargetRecordType.GRANTS: ("name", (), ("שם", "מס'")),
    TargetRecordType.BUDGET_AUTHORIZATIONS: ("authorization_number", ("הרשאה", "הרשאות"), ("מספר", "מס'")),
}

_TEST_ROW_PATTERN = re.compile(r"\btest\b|בדיקת|בדיקה", re.IGNORECASE)
_LEADING_NUMBER_PATTERN = re.compile(r"^\d+")
TEST_TABAR_NUMBER = 999


def _unify_quotes(text: str) -> str:
    return text.replace("״", '"').replace("׳", "'")


def _classify(value: Any, rules: Sequence[Tuple[str, Any]], fallback: Any, enum_type: Optional[type] = None) -> Any:
    """Return the value of the first rule whose substring occurs in `value`."""
    text = _unify_quotes(clean_text(value)).lower()
    if not text:
        return fallback
    if enum_type is not None:
        # Already an enum value ("lottery", "education_ministry")
        try:
            return enum_type(text)
        except ValueError:
            pass
    for substring, result in rules:
        if substring in text:
            return result
    return fallback


def classify_funding_source(value: Any) -> FundingSource:
    return _classify(value, FUNDING_SOURCE_RULES, FundingSource.OTHER, FundingSource)


def classify_domain(value: Any) -> Domain:
    return _classify(value, DOMAIN_RULES, Domain.OTHER, Domain)


def classify_department(value: Any) -> DepartmentSlug:
    return _classify(value, DEPARTMENT_RULES, DepartmentSlug.FINANCE, DepartmentSlug)


def classify_category_type(category_name: Any, declared: Any = None) -> CategoryType:
    """Expense when the declared type or the category name says so, else income."""
    declared_text = clean_text(declared).lower()
    if declared_text in ("income", "expense"):
        return CategoryType(declared_text)
    if declared_text.startswith("הכנס"):
        return CategoryType.INCOME
    if declared_text.startswith("הוצא"):
        return CategoryType.EXPENSE

    name = clean_text(category_name).lower()
    if any(keyword in name for keyword in EXPENSE_CATEGORY_KEYWORDS):
        return CategoryType.EXPENSE
    return CategoryType.INCOME


# ==============================================================================
# FIELD LOOKUP
# ==============================================================================

def _lookup(record: Record, names: Sequence[Optional[str]], positions: Sequence[int] = ()) -> Any:
    """
    First non-blank value among `names`; column positions are consulted only
    when none of the names is present in the record.
    """
    present = False
    for name in names:
        if name and name in record:
            present = True
            value = record[name]
            if not is_blank(value):
                return value
    if present or not positions:
        return None

    values = list(record.values())
    for position in positions:
        if 0 <= position < len(values) and not is_blank(values[position]):
            return values[position]
    return None


def _position_picker(record: Record, expected: Sequence[str], minimum: int = 2) -> Callable[..., Tuple[int, ...]]:
    """
    Column positions are honoured only for irregular exports, where fewer
    than `minimum` of the expected fields have a recognized header.
    """
    irregular = sum(1 for name in expected if name in record) < minimum

    def at(*positions: int) -> Tuple[int, ...]:
        return positions if irregular else ()
    return at


def _text(record: Record, *names: str, positions: Sequence[int] = (), default: str = "") -> str:
    return clean_text(_lookup(record, names, positions), default)


def _number(record: Record, *names: Optional[str], positions: Sequence[int] = ()) -> float:
    return parse_number(_lookup(record, names, positions))


def _date(record: Record, *names: str, positions: Sequence[int] = ()) -> Optional[str]:
    return parse_date(_lookup(record, names, positions))


def _combine_address(street: Any, house_number: Any) -> str:
    parts = [clean_text(street), clean_text(house_number)]
    return " ".join(p for p in parts if p and p != "0")


# ==============================================================================
# PER-TYPE MAPPERS
# ==============================================================================
# Each returns keyword arguments for the record model of its type.

def _map_institution(record: Record, headers: Sequence[str]) -> Record:
    return {
        "institution_name": _text(record, "institution_name"),
        "address": _text(record, "address"),
        "phone": _text(record, "phone"),
        "institution_type": _text(record, "institution_type", default="אחר"),
    }


def _map_license(record: Record, headers: Sequence[str]) -> Record:
    address = _combine_address(record.get("street"), record.get("house_number"))
    return {
        "license_number": _text(record, "license_number"),
        "business_name": _text(record, "business_name"),
        "owner": _text(record, "owner", "license_holder"),
        "address": address or _text(record, "address"),
        "phone": _text(record, "phone"),
        "mobile": _text(record, "mobile"),
        "email": _text(record, "email"),
        "business_nature": strip_leading_code(_lookup(record, ["business_nature"])),
        "request_type": strip_leading_code(_lookup(record, ["request_type"])),
        # "קטגוריה" is an institution_type synonym
        "group_category": strip_leading_code(_lookup(record, ["group_category", "institution_type"])),
        "validity": _text(record, "validity"),
        "reported_area": parse_optional_number(_lookup(record, ["reported_area"])),
        "request_date": _date(record, "request_date"),
        "delivery_date": _date(record, "delivery_date"),
        "follow_up_date": _date(record, "follow_up_date"),
        "inspection_date": _date(record, "inspection_date"),
        "closure_date": _date(record, "closure_date"),
        "judgment_date": _date(record, "judgment_date"),
        "expires_at": _date(record, "expiry_date", "expires_at") or parse_date(record.get("validity")),
        "inspector": _text(record, "inspector"),
        "area": _text(record, "area"),
        # "נכס" is a property_type synonym
        "property": _text(record, "property", "property_type"),
        "block_parcel_sub": _text(record, "block_parcel_sub"),
        "location_description": _text(record, "location_description"),
        "fire_department_number": _text(record, "fire_department_number"),
        "risk_level": _text(record, "risk_level"),
        "file_holder": _text(record, "file_holder"),
        "reason_no_license": _text(record, "reason_no_license"),
        "type": _text(record, "license_type", "type", default="כללי"),
        "status": _text(record, "status", default="פעיל"),
        "department_slug": DepartmentSlug.BUSINESS,
    }


def _map_business_license(record: Record, headers: Sequence[str]) -> Record:
    return {
        "business_name": _text(record, "business_name"),
        "license_holder": _text(record, "license_holder", "owner"),
        "license_number": _text(record, "license_number"),
        "license_type": _text(record, "license_type", default="כללי"),
        "issue_date": _date(record, "issue_date"),
        "expires_at": _date(record, "expiry_date", "expires_at"),
        "status": _text(record, "status", default="פעיל"),
    }


def _map_regular_budget(record: Record, headers: Sequence[str]) -> Record:
    at = _position_picker(record, ("category_name", "budget_amount", "actual_amount", "cumulative_execution"))
    category_name = _text(record, "category_name", positions=at(0))
    return {
        "category_name": category_name,
        "category_type": classify_category_type(category_name, record.get("category_type")),
        "budget_amount": _number(record, "budget_amount", positions=at(1)),
        "actual_amount": _number(record, "actual_amount", "relative_budget", positions=at(3)),
        "cumulative_execution": _number(record, "cumulative_execution", positions=at(2, 4, 5)),
    }


def _map_collection(record: Record, headers: Sequence[str]) -> Record:
    return {
        "property_type": _text(record, "property_type"),
        "annual_budget": _number(record, "annual_budget"),
        "relative_budget": _number(record, "relative_budget"),
        "actual_collection": _number(record, "actual_collection"),
    }


def _map_tabar(record: Record, headers: Sequence[str]) -> Record:
    located = locate_financial_columns(headers)
    at = _position_picker(
        record, ("tabar_number", "tabar_name", "approved_budget", "income_actual", "expense_actual")
    )

    income = _number(record, "income_actual", located.get("income"), positions=at(12))
    expense = _number(record, "expense_actual", located.get("expense"), positions=at(13))
    reported_surplus = parse_optional_number(
        _lookup(record, ["surplus_deficit", located.get("surplus")], positions=at(16))
    )
    surplus = reported_surplus if reported_surplus is not None else income - expense

    domain_label = _text(record, "domain", positions=at(3))
    funding = [_lookup(record, [f"funding_source{i}"], positions=at(3 + i)) for i in (1, 2, 3)]

    return {
        "tabar_number": _text(record, "tabar_number", positions=at(0)),
        "tabar_name": _text(record, "tabar_name", positions=at(1)),
        "domain": domain_label or "אחר",
        "domain_category": classify_domain(domain_label),
        "funding_source1": classify_funding_source(funding[0]),
        "funding_source2": None if is_blank(funding[1]) else classify_funding_source(funding[1]),
        "funding_source3": None if is_blank(funding[2]) else classify_funding_source(funding[2]),
        "approved_budget": _number(record, "approved_budget", positions=at(7)),
        "income_actual": income,
        "expense_actual": expense,
        "surplus_deficit": surplus,
    }


def _map_grant(record: Record, headers: Sequence[str]) -> Record:
    at = _position_picker(record, ("grant_name", "ministry", "grant_amount", "approved_amount", "submission_amount"))
    return {
        "name": _text(record, "grant_name", "name", positions=at(1)),
        "ministry": _text(record, "ministry", positions=at(2)),
        "project_description": _text(record, "project_description", positions=at(3)),
        "department_slug": classify_department(_lookup(record, ["department"], positions=at(4))),
        "responsible_person": _text(record, "responsible_person", positions=at(5)),
        "status": _text(record, "grant_status", "status", positions=at(6), default="draft"),
        "amount": _number(record, "grant_amount", "amount", positions=at(7)),
        "submission_amount": _number(record, "submission_amount", positions=at(8)),
        "support_amount": _number(record, "support_amount", positions=at(9)),
        "approved_amount": _number(record, "approved_amount", positions=at(10)),
        "municipality_participation": _number(record, "municipality_participation", positions=at(11)),
        "notes": _text(record, "notes", positions=at(12)),
        "submitted_at": _date(record, "submitted_at"),
        "decision_at": _date(record, "decision_at"),
    }


def _map_budget_authorization(record: Record, headers: Sequence[str]) -> Record:
    at = _position_picker(record, ("authorization_number", "ministry", "program", "amount", "valid_until"))
    return {
        "authorization_number": _text(record, "authorization_number", positions=at(0)),
        "ministry": _text(record, "ministry", positions=at(1)),
        "program": _text(record, "program", positions=at(2)),
        # The purpose column is usually headed "מס' תב"ר"
        "purpose": _text(record, "purpose", "tabar_number", positions=at(3)),
        "amount": _number(record, "amount", positions=at(4)),
        "valid_until": _date(record, "valid_until", positions=at(5)),
        "department_slug": classify_department(_lookup(record, ["department"], positions=at(6))),
        "approved_at": _date(record, "approved_at", positions=at(7)),
        "notes": _text(record, "notes", positions=at(8)),
        "status": "pending",
    }


MapperFn = Callable[[Record, Sequence[str]], Record]

SCHEMAS: Dict[TargetRecordType, Type[MappedRecord]] = {
    TargetRecordType.INSTITUTIONS: InstitutionRecord,
    TargetRecordType.LICENSES: LicenseRecord,
    TargetRecordType.BUSINESS_LICENSES: BusinessLicenseRecord,
    TargetRecordType.REGULAR_BUDGET: RegularBudgetRecord,
    TargetRecordType.COLLECTION_DATA: CollectionRecord,
    TargetRecordType.TABARIM: TabarRecord,
    TargetRecordType.GRANTS: GrantRecord,
    TargetRecordType.BUDGET_AUTHORIZATIONS: BudgetAuthorizationRecord,
}

_MAPPERS: Dict[TargetRecordType, MapperFn] = {
    TargetRecordType.INSTITUTIONS: _map_institution,
    TargetRecordType.LICENSES: _map_license,
    TargetRecordType.BUSINESS_LICENSES: _map_business_license,
    TargetRecordType.REGULAR_BUDGET: _map_regular_budget,
    TargetRecordType.COLLECTION_DATA: _map_collection,
    TargetRecordType.TABARIM: _map_tabar,
    TargetRecordType.GRANTS: _map_grant,
    TargetRecordType.BUDGET_AUTHORIZATIONS: _map_budget_authorization,
}


# ==============================================================================
# PUBLIC API
# ==============================================================================

def _coerce_type(record_type: Union[TargetRecordType, str]) -> Optional[TargetRecordType]:
    if isinstance(record_type, TargetRecordType):
        return record_type
    try:
        return TargetRecordType(str(record_type))
    except ValueError:
        return None


def get_schema(record_type: Union[TargetRecordType, str]) -> Optional[Type[MappedRecord]]:
    """Record model for a type, or None for pass-through types (salary_data)."""
    target = _coerce_type(record_type)
    return SCHEMAS.get(target) if target else None


def map_row(
    record_type: Union[TargetRecordType, str],
    normalized: Record,
    headers: Optional[Sequence[str]] = None
) -> Record:
    """
    Map one normalized record to the insert payload of `record_type`.

    Args:
        record_type: Target collection
        normalized: Output of header_normalizer.normalize_record
        headers: Normalized header list of the sheet; defaults to the
            record's own keys

    Returns:
        Dict with every field declared by the type's model. Types without a
        model get a copy of the normalized record.
    """
    target = _coerce_type(record_type)
    mapper = _MAPPERS.get(target) if target else None
    if mapper is None:
        return dict(normalized)

    schema = SCHEMAS[target]
    header_list = list(headers) if headers is not None else list(normalized.keys())

    try:
        values = mapper(normalized, header_list)
    except Exception as e:
        # One malformed row yields an all-default record instead of failing
        logger.warning(f"Row mapping failed for {target.value}, using defaults: {e}")
        values = {}

    try:
        return schema.model_validate(values).model_dump()
    except ValidationError as e:
        logger.warning(f"Mapped {target.value} row failed validation, keeping valid fields: {e}")
        defaults = schema().model_dump()
        for name in defaults:
            if name in values:
                try:
                    defaults[name] = schema.model_validate({name: values[name]}).model_dump()[name]
                except ValidationError:
                    continue
        return defaults


def _identifying_text(target: TargetRecordType, mapped: Record) -> str:
    schema = SCHEMAS.get(target)
    fields = schema.identifying_fields if schema else ()
    return " ".join(clean_text(mapped.get(f)) for f in fields).strip()


def _is_repeated_header(normalized: Record) -> bool:
    """True when most filled cells hold the label of their own column."""
    filled = [(key, value) for key, value in normalized.items() if not is_blank(value)]
    if not filled:
        return False
    echoes = sum(1 for key, value in filled if isinstance(value, str) and normalize(value) == key)
    return echoes * 2 >= len(filled)


def is_skippable(
    record_type: Union[TargetRecordType, str],
    normalized: Record,
    mapped: Record
) -> Optional[str]:
    """
    Decide whether a row should be left out of the insert.

    Skipped rows are counted separately from errors.

    Returns:
        Reason string when the row should be skipped, else None
    """
    if all(is_blank(v) for v in normalized.values()):
        return "empty row"
    if _is_repeated_header(normalized):
        return "repeated header row"

    target = _coerce_type(record_type)
    if target is None or target not in SCHEMAS:
        return None

    schema = SCHEMAS[target]
    identifying = _unify_quotes(_identifying_text(target, mapped))

    if not identifying:
        return f"missing {' / '.join(schema.identifying_fields)}"
    if any(
        _TOTALS_ROW_PATTERN.match(_unify_quotes(clean_text(mapped.get(f))))
        for f in schema.identifying_fields
    ):
        return "totals row"

    if target in HEADER_ROW_MARKERS:
        field_name, substrings, prefixes = HEADER_ROW_MARKERS[target]
        text = _unify_quotes(clean_text(mapped.get(field_name))).lower()
        if any(s in text for s in substrings):
            return "report header row"
        if any(text == p or text.startswith(p + " ") for p in prefixes):
            return "report header row"

    if target == TargetRecordType.TABARIM:
        number = _LEADING_NUMBER_PATTERN.match(clean_text(mapped.get("tabar_number")))
        if number is None:
            return "missing tabar number"
        if int(number.group()) == TEST_TABAR_NUMBER or _TEST_ROW_PATTERN.search(clean_text(mapped.get("tabar_name"))):
            return "test row"
        if len(clean_text(mapped.get("tabar_name"))) < 3:
            return "missing tabar name"

    if target == TargetRecordType.REGULAR_BUDGET and len(clean_text(mapped.get("category_name"))) < 2:
        return "missing category name"

    if target == TargetRecordType.GRANTS and len(clean_text(mapped.get("name"))) < 2:
        return "missing grant name"

    return None
