"""
Tests for local upload storage and stored-name generation.

Run with: pytest tests/test_blob_store.py -v
"""

import re

import pytest

from muni_ingest.logic.blob_store import LocalBlobStore, generate_stored_name, sanitize_filename
from muni_ingest.logic.errors import StorageError


class TestSanitizeFilename:

    @pytest.mark.parametrize("raw, expected", [
        ("Budget 2025 (final).xlsx", "Budget_2025_final_.xlsx"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\report.csv", "report.csv"),
        ("תקציב.xlsx", ".xlsx"),
        ("a__b--c", "a_b-c"),
        ("", ""),
        (None, ""),
    ])
    def test_sanitize(self, raw, expected):
        """Only ASCII letters, digits, dot, dash and underscore survive."""
        assert sanitize_filename(raw) == expected

    def test_truncates(self):
        assert len(sanitize_filename("a" * 200, max_length=20)) == 20


class TestGenerateStoredName:

    def test_format(self):
        """<prefix>_<timestamp>_<token>_<stem><ext>"""
        name = generate_stored_name("Tabarim Q2.xlsx", prefix="tabarim")
        assert re.match(r"^tabarim_\d{8}_\d{6}_[0-9a-f]{12}_Tabarim_Q2\.xlsx$", name)

    def test_hebrew_name_has_no_stem(self):
        name = generate_stored_name("תבר.xlsx", prefix="tabarim")
        assert re.match(r"^tabarim_\d{8}_\d{6}_[0-9a-f]{12}\.xlsx$", name)

    def test_unknown_extension(self):
        assert generate_stored_name("malware.exe").endswith(".bin")

    def test_unique(self):
        """Two uploads of the same file in the same second never collide."""
        assert generate_stored_name("a.xlsx") != generate_stored_name("a.xlsx")


class TestLocalBlobStore:

    def test_store_and_read(self, tmp_path):
        store = LocalBlobStore(tmp_path)
        path = store.store(b"PK\x03\x04data", "budget.xlsx", prefix="regular_budget")

        assert path.startswith("uploads/regular_budget_")
        assert (tmp_path / path).read_bytes() == b"PK\x03\x04data"
        assert store.read(path) == b"PK\x03\x04data"

    def test_unwritable_directory_raises_storage_error(self, tmp_path):
        """A file where the folder should be makes the write fail."""
        (tmp_path / "uploads").write_text("not a directory")
        store = LocalBlobStore(tmp_path)
        with pytest.raises(StorageError) as exc_info:
            store.store(b"x", "a.xlsx")
        assert exc_info.value.stage == "store"

    def test_read_missing(self, tmp_path):
        with pytest.raises(StorageError):
            LocalBlobStore(tmp_path).read("uploads/nope.xlsx")
