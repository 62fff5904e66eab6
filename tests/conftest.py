"""
Shared fixtures for the municipal ingestion tests.

Every test gets its own SQLite file, blob directory and audit-log directory
under pytest's tmp_path, so nothing is written to the working tree.
"""

import io

import pandas as pd
import pytest

from muni_ingest import logging_utils
from muni_ingest.database_manager import SQLiteCollectionStore
from muni_ingest.logic.blob_store import LocalBlobStore
from muni_ingest.services.importer import ImporterService


@pytest.fixture(autouse=True)
def audit_log_dir(tmp_path, monkeypatch):
    """Redirect the CSV audit trail into the test's temp directory."""
    log_dir = tmp_path / "logs"
    monkeypatch.setattr(logging_utils, "LOG_DIR", log_dir)
    return log_dir


@pytest.fixture
def make_workbook():
    """
    Factory building .xlsx bytes from a header row and data rows.

    Usage:
        data = make_workbook(["שם תב\"ר", "תקציב מאושר"], [["כביש", 1000]])
    """
    def _make(headers, rows):
        table = [list(headers)]
        table.extend(list(row) for row in rows)
        buffer = io.BytesIO()
        pd.DataFrame(table).to_excel(buffer, index=False, header=False, engine="openpyxl")
        return buffer.getvalue()
    return _make


@pytest.fixture
def make_csv():
    """Factory building UTF-8 CSV bytes from a header row and data rows."""
    def _make(headers, rows):
        buffer = io.StringIO()
        pd.DataFrame(list(rows), columns=list(headers)).to_csv(buffer, index=False)
        return buffer.getvalue().encode("utf-8")
    return _make


@pytest.fixture
def store(tmp_path):
    return SQLiteCollectionStore(tmp_path / "test.db")


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def importer(store, blob_store):
    return ImporterService(collection_store=store, blob_store=blob_store, batch_size=100)


@pytest.fixture
def tabarim_headers():
    return ['מספר תב"ר', 'שם תב"ר', "תחום", "מקור מימון", "תקציב מאושר", "הכנסות בפועל", "הוצאות בפועל"]


@pytest.fixture
def tabarim_rows():
    return [
        [101, "שיפוץ בית ספר", "מוסדות חינוך", "משרד החינוך", 500000, 1000, 400],
        [102, "סלילת כביש גישה", "תשתיות", "עירייה", 250000, 2000, 2500],
        [103, "מרכז קהילתי", "מבני ציבור", "מפעל הפיס", 800000, 0, 0],
    ]
