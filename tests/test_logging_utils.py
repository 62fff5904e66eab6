"""
Tests for logging setup and the import audit trail.

Run with: pytest tests/test_logging_utils.py -v
"""

import csv
import logging

import pytest

from muni_ingest import logging_utils
from muni_ingest.logging_utils import configure_from, log_import_event, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:

    def test_level_by_name(self, tmp_path, restore_root_logger):
        setup_logging(level="warning", log_to_file=False, log_dir=tmp_path)
        assert restore_root_logger.level == logging.WARNING

    def test_unknown_level_name_falls_back_to_info(self, tmp_path, restore_root_logger):
        setup_logging(level="chatty", log_to_file=False, log_dir=tmp_path)
        assert restore_root_logger.level == logging.INFO

    def test_file_handler(self, tmp_path, restore_root_logger):
        setup_logging(log_to_file=True, log_dir=tmp_path / "logs")
        logging.getLogger("muni_ingest.test").info("hello")
        for handler in restore_root_logger.handlers:
            handler.flush()
        assert "hello" in (tmp_path / "logs" / "muni_ingest.log").read_text(encoding="utf-8")
        for handler in restore_root_logger.handlers:
            handler.close()

    def test_verbose_forces_debug(self, tmp_path, restore_root_logger):
        configure_from({"log_level": "ERROR", "log_to_file": False, "log_dir": str(tmp_path)}, verbose=True)
        assert restore_root_logger.level == logging.DEBUG


class TestAuditTrail:

    def test_header_written_once(self, audit_log_dir):
        log_import_event("IMPORT_COMPLETED", "a.xlsx", {"record_type": "grants", "inserted": 2})
        log_import_event("IMPORT_COMPLETED_WITH_ERRORS", "b.xlsx", {"record_type": "tabarim", "errors": 1})

        with open(audit_log_dir / logging_utils.AUDIT_FILE_NAME, encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert [r["file_name"] for r in rows] == ["a.xlsx", "b.xlsx"]
        assert rows[0]["inserted"] == "2"
        assert rows[1]["event"] == "IMPORT_COMPLETED_WITH_ERRORS"
        assert rows[1]["inserted"] == ""

    def test_unknown_keys_ignored(self, audit_log_dir):
        log_import_event("IMPORT_COMPLETED", "a.xlsx", {"colour": "blue"})
        text = (audit_log_dir / logging_utils.AUDIT_FILE_NAME).read_text(encoding="utf-8")
        assert "blue" not in text
