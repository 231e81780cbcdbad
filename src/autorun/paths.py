"""Per-user locations for autorun's config file and exported logs."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "autorun"


def _resolve(env_var: str, default: str) -> Path:
    # An empty override counts as unset
    return Path(os.environ.get(env_var) or default)


def get_data_dir() -> Path:
    """Exported debug logs live here; ``AUTORUN_DATA_DIR`` overrides."""
    return _resolve("AUTORUN_DATA_DIR", user_data_dir(APP_NAME))


def get_config_dir() -> Path:
    return _resolve("AUTORUN_CONFIG_DIR", user_config_dir(APP_NAME))


def get_config_path() -> Path:
    return get_config_dir() / "config.toml"


def get_debug_log_path() -> Path:
    return get_data_dir() / "debug.log"


def ensure_directories() -> None:
    for directory in (get_data_dir(), get_config_dir()):
        directory.mkdir(parents=True, exist_ok=True)
