"""
Tests for the layered config loader (quarry.config).
"""

import json

import pytest

from quarry.config import ConfigLoader, DatabaseConfig, DEFAULTS
from quarry.db import Database
from quarry.faults import ConfigInvalidFault


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    import os

    for key in list(os.environ):
        if key.startswith("QUARRY_"):
            monkeypatch.delenv(key, raising=False)


# ============================================================================
# Sources and precedence
# ============================================================================

class TestConfigLoader:
    """Merge order: defaults < files < .env < environment < overrides."""

    def test_defaults(self):
        loader = ConfigLoader.load()
        assert loader.get("database.url") == DEFAULTS["database"]["url"]
        assert loader.get("database.connect_retries") == 3

    def test_defaults_not_shared(self):
        loader = ConfigLoader.load()
        loader.config_data["database"]["url"] = "sqlite:///changed.db"
        assert DEFAULTS["database"]["url"] == "sqlite:///db.sqlite3"

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "quarry.yaml"
        path.write_text("database:\n  url: sqlite:///from_yaml.db\n  echo: true\n")
        loader = ConfigLoader.load(paths=[str(path)])
        assert loader.get("database.url") == "sqlite:///from_yaml.db"
        assert loader.get("database.echo") is True
        # untouched defaults survive the deep merge
        assert loader.get("database.migrations_dir") == "migrations"

    def test_json_file(self, tmp_path):
        path = tmp_path / "quarry.json"
        path.write_text(json.dumps({"database": {"connect_retries": 5}}))
        loader = ConfigLoader.load(paths=[str(path)])
        assert loader.get("database.connect_retries") == 5

    def test_glob_pattern(self, tmp_path):
        (tmp_path / "a.json").write_text(json.dumps({"database": {"url": "sqlite:///a.db"}}))
        (tmp_path / "b.json").write_text(json.dumps({"database": {"url": "sqlite:///b.db"}}))
        loader = ConfigLoader.load(paths=[str(tmp_path / "*.json")])
        assert loader.get("database.url") == "sqlite:///b.db"

    def test_env_file(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("QUARRY_DATABASE__URL=sqlite:///from_env_file.db\nOTHER=1\n")
        loader = ConfigLoader.load(env_file=str(env))
        assert loader.get("database.url") == "sqlite:///from_env_file.db"
        assert loader.get("other") is None

    def test_missing_env_file_ignored(self, tmp_path):
        loader = ConfigLoader.load(env_file=str(tmp_path / "missing.env"))
        assert loader.get("database.url") == "sqlite:///db.sqlite3"

    def test_environment_beats_files(self, tmp_path, monkeypatch):
        path = tmp_path / "quarry.yaml"
        path.write_text("database:\n  url: sqlite:///file.db\n")
        monkeypatch.setenv("QUARRY_DATABASE__URL", "sqlite:///env.db")
        loader = ConfigLoader.load(paths=[str(path)])
        assert loader.get("database.url") == "sqlite:///env.db"

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("QUARRY_DATABASE__URL", "sqlite:///env.db")
        loader = ConfigLoader.load(overrides={"database": {"url": "sqlite:///override.db"}})
        assert loader.get("database.url") == "sqlite:///override.db"

    def test_value_parsing(self, monkeypatch):
        monkeypatch.setenv("QUARRY_DATABASE__ECHO", "yes")
        monkeypatch.setenv("QUARRY_DATABASE__CONNECT_RETRIES", "7")
        monkeypatch.setenv("QUARRY_DATABASE__CONNECT_RETRY_DELAY", "1.5")
        monkeypatch.setenv("QUARRY_EXTRA", '{"a": 1}')
        loader = ConfigLoader.load()
        assert loader.get("database.echo") is True
        assert loader.get("database.connect_retries") == 7
        assert loader.get("database.connect_retry_delay") == 1.5
        assert loader.get("extra") == {"a": 1}

    def test_get_default(self):
        assert ConfigLoader.load().get("nope.nothing", "fallback") == "fallback"


# ============================================================================
# Typed database section
# ============================================================================

class TestDatabaseConfig:
    """database_config() validates and types the section."""

    def test_typed_defaults(self):
        config = ConfigLoader.load().database_config()
        assert config == DatabaseConfig()

    def test_string_values_coerced(self):
        loader = ConfigLoader.load(overrides={
            "database": {"echo": "on", "connect_retries": "4", "connect_retry_delay": "0"},
        })
        config = loader.database_config()
        assert config.echo is True
        assert config.connect_retries == 4
        assert config.connect_retry_delay == 0.0

    def test_invalid_retries(self):
        loader = ConfigLoader.load(overrides={"database": {"connect_retries": 0}})
        with pytest.raises(ConfigInvalidFault) as exc_info:
            loader.database_config()
        assert exc_info.value.metadata["key"] == "database.connect_retries"

    def test_invalid_url(self):
        loader = ConfigLoader.load(overrides={"database": {"url": ""}})
        with pytest.raises(ConfigInvalidFault):
            loader.database_config()

    def test_non_mapping_section(self):
        loader = ConfigLoader.load(overrides={"database": "sqlite://"})
        with pytest.raises(ConfigInvalidFault):
            loader.database_config()

    def test_database_from_config(self):
        config = DatabaseConfig(url="sqlite:///:memory:", connect_retries=2)
        db = Database.from_config(config)
        assert db.driver == "sqlite"
        assert db.url == "sqlite:///:memory:"
        assert db.is_connected is False
