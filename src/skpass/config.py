"""
Configuration loading -- config.yaml under the skpass home.

    ~/.skpass/
    ├── config.yaml     # StoreConfig
    ├── keys/           # xc keyring (default)
    └── store/          # root mount (default)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml

from . import SKPASS_HOME
from .models import StoreConfig

logger = logging.getLogger("skpass.config")

CONFIG_FILE = "config.yaml"


def default_home() -> Path:
    return Path(SKPASS_HOME).expanduser()


def default_config(home: Path) -> StoreConfig:
    """A fresh config with paths rooted at ``home``."""
    return StoreConfig(path=home / "store", keyring=home / "keys")


def load_config(home: Optional[Path] = None) -> StoreConfig:
    """Load store configuration from disk.

    Falls back to defaults when the file is missing or unreadable.
    """
    home = (home or default_home()).expanduser()
    config_file = home / CONFIG_FILE
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            config = StoreConfig(**data)
            if config.keyring is None:
                config.keyring = home / "keys"
            return config
        except (yaml.YAMLError, ValueError) as exc:
            logger.warning("Failed to load config %s: %s", config_file, exc)
    return default_config(home)


def save_config(config: StoreConfig, home: Optional[Path] = None) -> Path:
    """Persist store configuration to disk."""
    home = (home or default_home()).expanduser()
    home.mkdir(parents=True, exist_ok=True)
    config_file = home / CONFIG_FILE
    data = config.model_dump(mode="json")
    config_file.write_text(
        yaml.dump(data, default_flow_style=False), encoding="utf-8"
    )
    logger.debug("Saved config to %s", config_file)
    return config_file
