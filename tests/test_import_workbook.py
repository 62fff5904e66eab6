"""
Tests for the command-line importer.

Run with: pytest tests/test_import_workbook.py -v
"""

import pytest

from muni_ingest.database_manager import SQLiteCollectionStore
from muni_ingest.logic.config_manager import reset_config
from muni_ingest.scripts.import_workbook import EXIT_FAILED, EXIT_OK, main


@pytest.fixture(autouse=True)
def console_only_logging(tmp_path, monkeypatch):
    monkeypatch.setenv("MUNI_INGEST_LOG_TO_FILE", "false")
    monkeypatch.setenv("MUNI_INGEST_LOG_DIR", str(tmp_path / "logs"))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def workbook_path(tmp_path, make_workbook, tabarim_headers, tabarim_rows):
    path = tmp_path / "tabarim.xlsx"
    path.write_bytes(make_workbook(tabarim_headers, tabarim_rows))
    return path


def cli_args(tmp_path, *extra):
    return [*extra, "--db", str(tmp_path / "cli.db"), "--blob-dir", str(tmp_path / "blobs")]


class TestCommandLine:

    def test_import(self, tmp_path, workbook_path, capsys):
        code = main(cli_args(tmp_path, str(workbook_path), "--context", "tabarim", "--mode", "replace"))
        assert code == EXIT_OK
        assert "Imported 3 of 3 rows" in capsys.readouterr().out
        assert SQLiteCollectionStore(tmp_path / "cli.db").count("tabarim") == 3

    def test_preview_writes_nothing(self, tmp_path, workbook_path, capsys):
        code = main(cli_args(tmp_path, str(workbook_path), "--preview"))
        assert code == EXIT_OK
        assert "tabarim" in capsys.readouterr().out
        assert SQLiteCollectionStore(tmp_path / "cli.db").count("ingestion_logs") == 0

    def test_mode_required_without_preview(self, tmp_path, workbook_path):
        with pytest.raises(SystemExit):
            main(cli_args(tmp_path, str(workbook_path)))

    def test_missing_file(self, tmp_path):
        assert main(cli_args(tmp_path, str(tmp_path / "nope.xlsx"), "--mode", "append")) == EXIT_FAILED

    def test_undetected(self, tmp_path, make_workbook):
        path = tmp_path / "mystery.xlsx"
        path.write_bytes(make_workbook(["foo"], [["bar"]]))
        assert main(cli_args(tmp_path, str(path), "--mode", "append")) == EXIT_FAILED
