"""Tests for per-user path helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from autorun.paths import (
    ensure_directories,
    get_config_dir,
    get_config_path,
    get_data_dir,
    get_debug_log_path,
)

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.unit


def test_env_overrides_and_derived_files(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AUTORUN_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("AUTORUN_CONFIG_DIR", str(tmp_path / "config"))

    assert get_data_dir() == tmp_path / "data"
    assert get_config_dir() == tmp_path / "config"
    assert get_debug_log_path() == tmp_path / "data" / "debug.log"
    assert get_config_path() == tmp_path / "config" / "config.toml"


def test_empty_override_falls_back_to_platform_dir(monkeypatch) -> None:
    monkeypatch.setenv("AUTORUN_CONFIG_DIR", "")

    assert get_config_dir().name == "autorun"


def test_ensure_directories_creates_both(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AUTORUN_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("AUTORUN_CONFIG_DIR", str(tmp_path / "nested" / "config"))

    ensure_directories()

    assert (tmp_path / "data").is_dir()
    assert (tmp_path / "nested" / "config").is_dir()
