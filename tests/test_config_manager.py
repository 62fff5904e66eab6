"""
Tests for configuration loading.

Run with: pytest tests/test_config_manager.py -v
"""

import json

import pytest

from muni_ingest.logic import config_manager
from muni_ingest.logic.config_manager import DEFAULT_CONFIG, get_config, load_config, reset_config


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """No MUNI_INGEST_* variables leak in from the developer's shell."""
    for key in DEFAULT_CONFIG:
        monkeypatch.delenv(f"MUNI_INGEST_{key.upper()}", raising=False)
    monkeypatch.setattr(config_manager, "get_config_paths", lambda: [])
    reset_config()
    yield
    reset_config()


class TestLoadConfig:

    def test_defaults(self):
        config = load_config()
        assert config["batch_size"] == 100
        assert config["fuzzy_threshold"] == 85
        assert "_comment" not in config

    def test_file_overrides_defaults(self, tmp_path):
        path = tmp_path / "muni_ingest.json"
        path.write_text(json.dumps({"batch_size": 25, "database_path": "x.db"}), encoding="utf-8")
        config = load_config(path)
        assert config["batch_size"] == 25
        assert config["database_path"] == "x.db"
        assert config["log_level"] == "INFO"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        """Environment values are coerced to the default's type."""
        path = tmp_path / "muni_ingest.json"
        path.write_text(json.dumps({"batch_size": 25}), encoding="utf-8")
        monkeypatch.setenv("MUNI_INGEST_BATCH_SIZE", "50")
        monkeypatch.setenv("MUNI_INGEST_LOG_TO_FILE", "false")
        monkeypatch.setenv("MUNI_INGEST_CORS_ORIGINS", "http://a.example, http://b.example")

        config = load_config(path)
        assert config["batch_size"] == 50
        assert config["log_to_file"] is False
        assert config["cors_origins"] == ["http://a.example", "http://b.example"]

    def test_invalid_environment_value_ignored(self, monkeypatch):
        monkeypatch.setenv("MUNI_INGEST_BATCH_SIZE", "lots")
        assert load_config()["batch_size"] == 100

    def test_broken_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_config(path)["batch_size"] == 100

    def test_get_config_is_cached(self):
        assert get_config() is get_config()
