"""Tests for store configuration."""

from pathlib import Path

import pytest

from tagsearch.config import (
    CONFIG_FILENAME,
    SearchConfig,
    StoreConfig,
    get_default_store_path,
    load_config,
    load_or_create_config,
    save_config,
)


class TestConfig:
    """TOML config load/save."""

    def test_create_on_first_use(self, tmp_path):
        """load_or_create_config writes defaults when missing."""
        config = load_or_create_config(tmp_path)
        assert (tmp_path / CONFIG_FILENAME).exists()
        assert config.search.default_sort == "name"
        assert config.search.default_order == "asc"
        assert config.search.history_limit == 50

    def test_round_trip(self, tmp_path):
        config = StoreConfig(
            path=tmp_path,
            search=SearchConfig(default_sort="date", default_order="desc", history_limit=5),
        )
        save_config(config)
        loaded = load_config(tmp_path)
        assert loaded.search == config.search
        assert loaded.created == config.created

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_newer_version_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[store]\nversion = 99\n')
        with pytest.raises(ValueError, match="newer"):
            load_config(tmp_path)

    def test_invalid_sort_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[search]\ndefault_sort = "relevance"\n')
        with pytest.raises(ValueError, match="default_sort"):
            load_config(tmp_path)

    def test_invalid_history_limit_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[search]\nhistory_limit = -1\n')
        with pytest.raises(ValueError, match="history_limit"):
            load_config(tmp_path)

    def test_missing_sections_use_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("")
        config = load_config(tmp_path)
        assert config.search == SearchConfig()


class TestDefaultStorePath:

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TAGSEARCH_STORE_PATH", str(tmp_path))
        assert get_default_store_path() == tmp_path.resolve()

    def test_home_default(self, monkeypatch):
        monkeypatch.delenv("TAGSEARCH_STORE_PATH", raising=False)
        assert get_default_store_path() == Path.home() / ".tagsearch"
