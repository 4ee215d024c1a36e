"""
Configuration management for the catalog.

This module loads database, playlist and listing settings from a TOML file.
The defaults ship next to this module in `catalog.toml`.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent


class CompactionPolicy(Enum):
    """When playlist positions are renumbered after a cascading stream delete."""

    EAGER = "eager"
    LAZY = "lazy"


@dataclass
class CatalogConfig:
    """Loaded catalog configuration."""

    database_path: Path = Path("mediacat.db")
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    compaction: CompactionPolicy = CompactionPolicy.EAGER
    page_size: int = 500


def _parse_compaction(value: object) -> CompactionPolicy:
    try:
        return CompactionPolicy(str(value).lower())
    except ValueError:
        logger.warning("Unknown compaction policy %r, using eager", value)
        return CompactionPolicy.EAGER


def load_catalog_config(config_path: Path | None = None) -> CatalogConfig:
    """
    Load catalog configuration from a TOML file.

    Args:
        config_path: Path to the TOML file. If None, uses the bundled defaults.

    Returns:
        Loaded CatalogConfig instance. Missing keys keep their defaults.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "catalog.toml"

    logger.debug("Loading catalog config from %s", config_path)

    with config_path.open("rb") as f:
        data = tomllib.load(f)

    defaults = CatalogConfig()
    database = data.get("database", {})
    playlists = data.get("playlists", {})
    listing = data.get("listing", {})

    page_size = int(listing.get("page_size", defaults.page_size))
    if page_size <= 0:
        raise ValueError(f"listing.page_size must be positive, got {page_size}")

    return CatalogConfig(
        database_path=Path(database.get("path", defaults.database_path)),
        journal_mode=str(database.get("journal_mode", defaults.journal_mode)),
        synchronous=str(database.get("synchronous", defaults.synchronous)),
        compaction=_parse_compaction(playlists.get("compaction", defaults.compaction.value)),
        page_size=page_size,
    )


# Global singleton instance (lazy loaded)
_catalog_config: CatalogConfig | None = None


def get_catalog_config() -> CatalogConfig:
    """
    Get the global catalog configuration (lazy loaded singleton).

    Returns:
        The CatalogConfig instance.
    """
    global _catalog_config

    if _catalog_config is None:
        _catalog_config = load_catalog_config()

    return _catalog_config


def reload_catalog_config(config_path: Path | None = None) -> CatalogConfig:
    """
    Force reload of the catalog configuration.

    Returns:
        The newly loaded CatalogConfig instance.
    """
    global _catalog_config
    _catalog_config = load_catalog_config(config_path)
    return _catalog_config
