"""Tests for configuration loading."""

import os
import tempfile

import pytest
import yaml

from cpa_intel.config import ODBUS_URL, AppConfig, load_config, validate_config


@pytest.fixture
def config_file():
    """Create a temporary config file."""
    config_data = {
        "database": {"url": "sqlite:///tmp/test_intel.db"},
        "scraping": {
            "request_delay": 3,
            "max_consecutive_failures": 4,
            "sources": ["cpa_bc", "cpa_alberta"],
        },
        "registry": {"batch_size": 250},
        "enrichment": {"daily_limit": 50},
        "log_dir": "/tmp/intel-logs",
    }

    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(config_data, f)
        path = f.name

    yield path
    os.unlink(path)


class TestLoadConfig:
    def test_loads_valid_config(self, config_file, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        config = load_config(config_file)
        assert config.database.url == "sqlite:///tmp/test_intel.db"
        assert config.scraping.request_delay == 3.0
        assert config.scraping.max_consecutive_failures == 4
        assert config.scraping.sources == ["cpa_bc", "cpa_alberta"]
        assert config.registry.batch_size == 250
        assert config.enrichment.daily_limit == 50
        assert config.log_dir == "/tmp/intel-logs"

    def test_missing_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_config("nonexistent.yaml")

    def test_defaults_applied(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("")
            path = f.name

        try:
            config = load_config(path)
            assert config.database.url == "sqlite:///data/cpa_intel.db"
            assert config.scraping.request_delay == 2.5
            assert config.scraping.timeout == 20.0
            assert config.scraping.max_consecutive_failures == 5
            assert config.registry.bulk_url == ODBUS_URL
            assert config.registry.batch_size == 500
            assert config.enrichment.daily_limit == 200
        finally:
            os.unlink(path)

    def test_env_database_url_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://intel@db/intel")
        config = load_config(config_file)
        assert config.database.url == "postgresql://intel@db/intel"


class TestValidateConfig:
    def test_defaults_only_warn_about_sqlite(self):
        warnings = validate_config(AppConfig())
        assert len(warnings) == 1
        assert "SQLite" in warnings[0]

    def test_low_delay_warns(self):
        config = AppConfig()
        config.scraping.request_delay = 0.5
        assert any("below 2s" in w for w in validate_config(config))

    def test_unknown_source_warns(self):
        config = AppConfig()
        config.scraping.sources = ["cpa_bc", "cpa_yukon"]
        warnings = validate_config(config)
        assert any("cpa_yukon" in w for w in warnings)
        assert not any("cpa_bc" in w for w in warnings)
