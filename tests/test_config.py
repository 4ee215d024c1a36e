"""
Tests for mediacat.config.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

import mediacat.config as config_module
from mediacat.config import (
    CatalogConfig,
    CompactionPolicy,
    get_catalog_config,
    load_catalog_config,
    reload_catalog_config,
)


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "catalog.toml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadCatalogConfig:
    def test_bundled_defaults(self) -> None:
        """The bundled catalog.toml matches the dataclass defaults."""
        config = load_catalog_config()
        assert config == CatalogConfig()

    def test_custom_file(self, tmp_path: Path) -> None:
        """Test loading every setting from a custom file."""
        path = write_config(
            tmp_path,
            """
[database]
path = "/var/lib/mediacat/catalog.db"
journal_mode = "DELETE"
synchronous = "FULL"

[playlists]
compaction = "lazy"

[listing]
page_size = 50
""",
        )
        config = load_catalog_config(path)

        assert config.database_path == Path("/var/lib/mediacat/catalog.db")
        assert config.journal_mode == "DELETE"
        assert config.synchronous == "FULL"
        assert config.compaction is CompactionPolicy.LAZY
        assert config.page_size == 50

    def test_missing_sections_keep_defaults(self, tmp_path: Path) -> None:
        """Sections left out of the file keep their defaults."""
        path = write_config(tmp_path, '[playlists]\ncompaction = "LAZY"\n')
        config = load_catalog_config(path)
        assert config.compaction is CompactionPolicy.LAZY
        assert config.database_path == Path("mediacat.db")
        assert config.page_size == 500

    def test_unknown_compaction_falls_back_to_eager(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """An unknown policy logs a warning and uses eager."""
        path = write_config(tmp_path, '[playlists]\ncompaction = "sometimes"\n')
        with caplog.at_level(logging.WARNING, logger="mediacat.config"):
            config = load_catalog_config(path)
        assert config.compaction is CompactionPolicy.EAGER
        assert "sometimes" in caplog.text

    @pytest.mark.parametrize("page_size", [0, -5])
    def test_page_size_must_be_positive(self, tmp_path: Path, page_size: int) -> None:
        """A non-positive page size is rejected."""
        path = write_config(tmp_path, f"[listing]\npage_size = {page_size}\n")
        with pytest.raises(ValueError):
            load_catalog_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_catalog_config(tmp_path / "nope.toml")


class TestConfigSingleton:
    @pytest.fixture(autouse=True)
    def reset_singleton(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config_module, "_catalog_config", None)

    def test_get_is_cached(self) -> None:
        """Test the config is loaded once."""
        assert get_catalog_config() is get_catalog_config()

    def test_reload_replaces_cached_instance(self, tmp_path: Path) -> None:
        """Reloading swaps the cached instance."""
        first = get_catalog_config()
        path = write_config(tmp_path, "[listing]\npage_size = 10\n")

        reloaded = reload_catalog_config(path)

        assert reloaded is not first
        assert get_catalog_config() is reloaded
        assert get_catalog_config().page_size == 10
