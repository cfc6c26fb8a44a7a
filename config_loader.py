import json
from pathlib import Path
from typing import Optional

from config import (
    Config,
    apply_dict_to_dataclass,
    migrate_config,
)
from logging_utils import log_event


def get_config_dir() -> Path:
    """Directory searched for a user config file."""
    return Path.home() / '.geigermeter'


def get_config_file() -> Path:
    """Get config file path."""
    return get_config_dir() / 'config.json'


def load_config(path: Optional[Path] = None) -> Config:
    """Load config from a JSON file, returns defaults if missing or unreadable.

    The file is read-only input; nothing is ever written back.
    """
    config_file = Path(path) if path is not None else get_config_file()
    if not config_file.exists():
        log_event("INFO", "Config", "No config file found, using defaults", path=config_file)
        return Config()

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        log_event("WARN", "Config", "Failed to load, using defaults", path=config_file, error=e)
        return Config()

    config = Config()
    if not isinstance(data, dict):
        log_event("WARN", "Config", "Config root is not an object, using defaults", path=config_file)
        return config

    apply_dict_to_dataclass(config, data)
    migrate_config(config, data.get('version'))
    log_event("INFO", "Config", "Loaded", path=config_file, version=config.version)
    return config
