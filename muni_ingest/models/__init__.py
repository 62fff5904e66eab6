# muni_ingest/models/__init__.py
"""
Data Models for the municipal ingestion service

Contains Pydantic models for mapped records, ingestion logs and import results.
"""

from .records import (
    BatchResult,
    BudgetAuthorizationRecord,
    BusinessLicenseRecord,
    CategoryType,
    CollectionRecord,
    DepartmentSlug,
    Domain,
    FundingSource,
    GrantRecord,
    HeaderMappingInfo,
    ImportContext,
    ImportMode,
    ImportState,
    ImportSummary,
    IngestionLogEntry,
    IngestionStatus,
    InstitutionRecord,
    LicenseRecord,
    MappedRecord,
    PreviewResult,
    RegularBudgetRecord,
    TabarRecord,
    TargetRecordType,
)

__all__ = [
    "BatchResult",
    "BudgetAuthorizationRecord",
    "BusinessLicenseRecord",
    "CategoryType",
    "CollectionRecord",
    "DepartmentSlug",
    "Domain",
    "FundingSource",
    "GrantRecord",
    "HeaderMappingInfo",
    "ImportContext",
    "ImportMode",
    "ImportState",
    "ImportSummary",
    "IngestionLogEntry",
    "IngestionStatus",
    "InstitutionRecord",
    "LicenseRecord",
    "MappedRecord",
    "PreviewResult",
    "RegularBudgetRecord",
    "TabarRecord",
    "TargetRecordType",
]
