"""
Unit tests for the config module.

Tests for Config class path resolution and config loading.
"""

from pathlib import Path

import pytest

from src.configs.config import Config


class TestConfigPaths:
    """Tests for Config path attributes."""

    def test_config_dir_exists(self):
        """CONFIG_DIR should exist."""
        assert isinstance(Config.CONFIG_DIR, Path)
        assert Config.CONFIG_DIR.exists()

    def test_taxonomy_path(self):
        """Taxonomy file should be an existing absolute YAML path."""
        path = Config.get_taxonomy_path()
        assert path.is_absolute()
        assert path.exists()
        assert path.suffix == ".yaml"


class TestLoadIngestionConfig:
    """Tests for load_ingestion_config method."""

    def test_has_column_aliases(self):
        config = Config.load_ingestion_config()
        assert config["column_aliases"]["email_address"] == "email"
        assert config["column_aliases"]["badge_id"] == "source.badgeId"
        assert set(config) == {"column_aliases"}

    def test_config_cached(self):
        """Config should be cached (lru_cache)."""
        assert Config.load_ingestion_config() is Config.load_ingestion_config()


class TestLoadTaxonomy:
    def test_sections(self):
        taxonomy = Config.load_taxonomy()
        assert "role_taxonomy" in taxonomy
        assert "interest_capabilities" in taxonomy


class TestLoadFile:
    """Tests for loading alternative YAML files."""

    def test_loads_file(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("column_aliases:\n  mail: email\n", encoding="utf-8")
        assert Config.load_file(path) == {"column_aliases": {"mail": "email"}}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert Config.load_file(str(path)) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.load_file(tmp_path / "nope.yaml")
