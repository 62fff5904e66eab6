from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


# ==============================================================================
# ENUMERATIONS
# ==============================================================================

class TargetRecordType(str, Enum):
    """Destination collection of an import."""
    INSTITUTIONS = "institutions"
    LICENSES = "licenses"
    BUSINESS_LICENSES = "business_licenses"
    REGULAR_BUDGET = "regular_budget"
    COLLECTION_DATA = "collection_data"
    SALARY_DATA = "salary_data"
    TABARIM = "tabarim"
    GRANTS = "grants"
    BUDGET_AUTHORIZATIONS = "budget_authorizations"
    UNDETECTED = "undetected"


class ImportContext(str, Enum):
    """Screen the upload was started from."""
    GLOBAL = "global"
    REGULAR_BUDGET = "regular_budget"
    COLLECTION = "collection"
    SALARY = "salary"
    TABARIM = "tabarim"
    GRANTS = "grants"
    BUDGET_AUTHORIZATIONS = "budget_authorizations"
    BUSINESS = "business"
    EDUCATION = "education"


class ImportMode(str, Enum):
    REPLACE = "replace"
    APPEND = "append"


class IngestionStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"


class ImportState(str, Enum):
    """States visited by one import run, in order."""
    IDLE = "idle"
    FILE_STORED = "file_stored"
    LOGGED = "logged"
    CLEARED = "cleared"
    INSERTING = "inserting"
    FINALIZED = "finalized"


class FundingSource(str, Enum):
    SELF = "self"
    LOTTERY = "lottery"
    LOAN = "loan"
    EDUCATION_MINISTRY = "education_ministry"
    CONSTRUCTION_HOUSING_MINISTRY = "construction_housing_ministry"
    INTERIOR_MINISTRY = "interior_ministry"
    ECONOMY_MINISTRY = "economy_ministry"
    RMI = "rmi"
    NEGEV_GALILEE_RESILIENCE_MINISTRY = "negev_galilee_resilience_ministry"
    NATIONAL_DIGITAL_MINISTRY = "national_digital_ministry"
    ENVIRONMENTAL_PROTECTION_MINISTRY = "environmental_protection_ministry"
    CULTURE_MINISTRY = "culture_ministry"
    SCIENCE_TECHNOLOGY_MINISTRY = "science_technology_ministry"
    PLANNING_ADMINISTRATION = "planning_administration"
    TRANSPORTATION_MINISTRY = "transportation_ministry"
    HEALTH_MINISTRY = "health_ministry"
    ENERGY_MINISTRY = "energy_ministry"
    AGRICULTURE_MINISTRY = "agriculture_ministry"
    OTHER = "other"


class Domain(str, Enum):
    ENERGY = "energy"
    ORGANIZATIONAL = "organizational"
    DIGITAL = "digital"
    VETERINARY = "veterinary"
    EDUCATION_BUILDINGS = "education_buildings"
    PUBLIC_BUILDINGS = "public_buildings"
    ENVIRONMENT = "environment"
    ACTIVITIES = "activities"
    WELFARE = "welfare"
    PUBLIC_SPACES = "public_spaces"
    PLANNING = "planning"
    INFRASTRUCTURE_ROADS = "infrastructure_roads"
    OTHER = "other"


class DepartmentSlug(str, Enum):
    FINANCE = "finance"
    ENGINEERING = "engineering"
    EDUCATION = "education"
    NON_FORMAL = "non-formal"
    WELFARE = "welfare"
    BUSINESS = "business"


class CategoryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


# ==============================================================================
# MAPPED RECORDS
# ==============================================================================

class MappedRecord(BaseModel):
    """
    Base for one spreadsheet row after mapping.

    Every field has a default so a sparse row still produces a complete
    record. `identifying_fields` lists the fields of which at least one must be
    non-empty for the row to be worth inserting.
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True, extra="ignore")

    identifying_fields: ClassVar[Tuple[str, ...]] = ()


class InstitutionRecord(MappedRecord):
    """Education institution."""
    identifying_fields: ClassVar[Tuple[str, ...]] = ("institution_name",)

    institution_name: str = ""
    institution_type: str = Field("אחר", description="Institution type label, 'other' when missing")
    address: str = ""
    phone: str = ""


class LicenseRecord(MappedRecord):
    """
    Business licensing file (רישוי עסקים screen).

    Dates are ISO strings or None; category fields have their leading numeric
    codes stripped.
    """
    identifying_fields: ClassVar[Tuple[str, ...]] = (
        "business_name", "owner", "license_number", "address",
    )

    license_number: str = ""
    business_name: str = ""
    owner: str = ""
    address: str = Field("", description="Street and house number combined")
    phone: str = ""
    mobile: str = ""
    email: str = ""

    business_nature: str = ""
    request_type: str = ""
    group_category: str = ""
    validity: str = ""
    reported_area: Optional[float] = None

    request_date: Optional[str] = None
    delivery_date: Optional[str] = None
    follow_up_date: Optional[str] = None
    inspection_date: Optional[str] = None
    closure_date: Optional[str] = None
    judgment_date: Optional[str] = None
    expires_at: Optional[str] = None

    inspector: str = ""
    area: str = ""
    property: str = ""
    block_parcel_sub: str = ""
    location_description: str = ""
    fire_department_number: str = ""
    risk_level: str = ""
    file_holder: str = ""
    reason_no_license: str = ""

    type: str = "כללי"
    status: str = "פעיל"
    department_slug: DepartmentSlug = DepartmentSlug.BUSINESS


class BusinessLicenseRecord(MappedRecord):
    identifying_fields: ClassVar[Tuple[str, ...]] = ("business_name", "license_number")

    business_name: str = ""
    license_holder: str = ""
    license_number: str = ""
    license_type: str = "כללי"
    issue_date: Optional[str] = None
    expires_at: Optional[str] = None
    status: str = "פעיל"


class RegularBudgetRecord(MappedRecord):
    """Regular (operating) budget line."""
    identifying_fields: ClassVar[Tuple[str, ...]] = ("category_name",)

    category_name: str = ""
    category_type: CategoryType = CategoryType.INCOME
    budget_amount: float = 0.0
    actual_amount: float = Field(0.0, description="Relative budget for the reported period")
    cumulative_execution: float = 0.0


class CollectionRecord(MappedRecord):
    """Property tax collection figures per property type."""
    identifying_fields: ClassVar[Tuple[str, ...]] = ("property_type",)

    property_type: str = ""
    annual_budget: float = 0.0
    relative_budget: float = 0.0
    actual_collection: float = 0.0


class TabarRecord(MappedRecord):
    """
    Extraordinary budget project (תב"ר).

    `domain` keeps the label as written in the sheet; `domain_category` is the
    classified enum value.
    """
    identifying_fields: ClassVar[Tuple[str, ...]] = ("tabar_number", "tabar_name")

    tabar_number: str = ""
    tabar_name: str = ""
    domain: str = "אחר"
    domain_category: Domain = Domain.OTHER

    funding_source1: FundingSource = FundingSource.OTHER
    funding_source2: Optional[FundingSource] = None
    funding_source3: Optional[FundingSource] = None

    approved_budget: float = 0.0
    income_actual: float = 0.0
    expense_actual: float = 0.0
    surplus_deficit: float = Field(0.0, description="Income minus expense unless reported")


class GrantRecord(MappedRecord):
    """Grant / call for proposals (קול קורא)."""
    identifying_fields: ClassVar[Tuple[str, ...]] = ("name",)

    name: str = ""
    ministry: str = ""
    status: str = "draft"
    amount: float = 0.0
    project_description: str = ""
    responsible_person: str = ""
    submission_amount: float = 0.0
    support_amount: float = 0.0
    approved_amount: float = 0.0
    municipality_participation: float = 0.0
    notes: str = ""
    department_slug: DepartmentSlug = DepartmentSlug.FINANCE
    submitted_at: Optional[str] = None
    decision_at: Optional[str] = None


class BudgetAuthorizationRecord(MappedRecord):
    """Ministry budget authorization (הרשאה תקציבית)."""
    identifying_fields: ClassVar[Tuple[str, ...]] = ("authorization_number",)

    authorization_number: str = ""
    ministry: str = ""
    program: str = ""
    purpose: str = ""
    amount: float = 0.0
    valid_until: Optional[str] = None
    department_slug: DepartmentSlug = DepartmentSlug.FINANCE
    approved_at: Optional[str] = None
    notes: str = ""
    status: str = "pending"


# ==============================================================================
# INGESTION RESULTS
# ==============================================================================

class BatchResult(BaseModel):
    """Outcome of one bulk insert."""
    index: int
    row_count: int = Field(0, description="Raw rows in the batch")
    inserted: int = 0
    errors: int = 0
    skipped: int = 0
    error: Optional[str] = None


class IngestionLogEntry(BaseModel):
    """Audit record of one import, stored in the ingestion log collection."""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: Optional[str] = None
    file_name: str
    file_path: str
    context: str
    detected_table: str
    row_count: int = 0
    inserted_rows: int = 0
    error_rows: int = 0
    skipped_rows: int = 0
    batches: List[BatchResult] = Field(default_factory=list)
    status: IngestionStatus = IngestionStatus.PROCESSING
    user_id: Optional[str] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ImportSummary(BaseModel):
    """Result of `ImporterService.run_import`, returned to API and CLI callers."""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    file_name: str
    context: ImportContext
    record_type: TargetRecordType
    detection_reason: str = ""
    mode: ImportMode
    row_count: int = 0
    inserted_rows: int = 0
    error_rows: int = 0
    skipped_rows: int = 0
    batches: List[BatchResult] = Field(default_factory=list)
    status: IngestionStatus = IngestionStatus.PROCESSING
    stored_path: Optional[str] = None
    log_id: Optional[str] = None
    cleared_rows: Optional[int] = None
    states: List[ImportState] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    message: str = ""


class HeaderMappingInfo(BaseModel):
    original: str
    canonical: Optional[str] = None
    match_type: str = "none"
    score: float = 0.0


class PreviewResult(BaseModel):
    """What the upload dialog shows before the user picks replace/append."""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    file_name: str
    sheet_name: str
    context: ImportContext
    headers: List[str] = Field(default_factory=list)
    mappings: List[HeaderMappingInfo] = Field(default_factory=list)
    detected_type: TargetRecordType = TargetRecordType.UNDETECTED
    detection_reason: str = ""
    row_count: int = 0
    sample_rows: List[Dict[str, Any]] = Field(default_factory=list)
    existing_records: int = 0
    requires_mode_confirmation: bool = False
