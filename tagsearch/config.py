"""
Configuration management for tagsearch stores.

The configuration is stored as a TOML file in the store directory.
It holds search defaults: sort key, sort order and how much history
to keep.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import tomli_w

from .evaluator import SortKey, SortOrder


CONFIG_FILENAME = "tagsearch.toml"
CONFIG_VERSION = 1
DEFAULT_HISTORY_LIMIT = 50


def get_default_store_path() -> Path:
    """Store directory from TAGSEARCH_STORE_PATH, else ~/.tagsearch."""
    env_path = os.environ.get("TAGSEARCH_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".tagsearch"


@dataclass
class SearchConfig:
    """Defaults applied when a search does not say otherwise."""
    default_sort: str = SortKey.NAME.value
    default_order: str = SortOrder.ASC.value
    history_limit: int = DEFAULT_HISTORY_LIMIT


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    search: SearchConfig = field(default_factory=SearchConfig)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with default search settings."""
    return StoreConfig(path=store_path)


def _parse_search(section: dict) -> SearchConfig:
    default_sort = section.get("default_sort", SortKey.NAME.value)
    default_order = section.get("default_order", SortOrder.ASC.value)
    history_limit = section.get("history_limit", DEFAULT_HISTORY_LIMIT)

    try:
        SortKey(default_sort)
    except ValueError:
        raise ValueError(f"Invalid default_sort in config: {default_sort!r}") from None
    try:
        SortOrder(default_order)
    except ValueError:
        raise ValueError(f"Invalid default_order in config: {default_order!r}") from None
    if not isinstance(history_limit, int) or history_limit < 0:
        raise ValueError(f"Invalid history_limit in config: {history_limit!r}")

    return SearchConfig(
        default_sort=default_sort,
        default_order=default_order,
        history_limit=history_limit,
    )


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    return StoreConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        search=_parse_search(data.get("search", {})),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "search": {
            "default_sort": config.search.default_sort,
            "default_order": config.search.default_order,
            "history_limit": config.search.history_limit,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
        return config
