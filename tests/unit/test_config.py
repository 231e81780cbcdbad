"""Tests for TOML configuration loading and saving."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from autorun.config import AgentCommandConfig, AutorunConfig
from autorun.errors import ConfigError
from autorun.limits import DEBOUNCE_WINDOW_MS, MAX_CONSECUTIVE_NO_PROGRESS

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.unit


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    config = AutorunConfig.load(tmp_path / "absent.toml")

    assert config.general.debounce_ms == DEBOUNCE_WINDOW_MS
    assert config.general.max_consecutive_no_progress == MAX_CONSECUTIVE_NO_PROGRESS
    assert config.general.synopsis_enabled
    assert config.worktree.branch_prefix == "autorun/"
    assert config.worktree.pr_target_branch is None


def test_load_reads_sections(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        '[general]\ndebounce_ms = 50\nagent_name = "builder"\n\n'
        '[agent]\ncommand = "my-agent --json"\n\n'
        '[worktree]\ncreate_pr_on_completion = true\npr_target_branch = "develop"\n',
        encoding="utf-8",
    )

    config = AutorunConfig.load(path)

    assert config.general.debounce_ms == 50
    assert config.general.agent_name == "builder"
    assert config.agent.command == "my-agent --json"
    assert config.worktree.create_pr_on_completion
    assert config.worktree.pr_target_branch == "develop"


@pytest.mark.parametrize(
    "content",
    [
        "[general\n",
        "[general]\ndebounce_ms = -1\n",
        '[agent]\nresume_args = "--continue"\n',
    ],
)
def test_invalid_config_raises_config_error(tmp_path: Path, content: str) -> None:
    path = tmp_path / "config.toml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid config file"):
        AutorunConfig.load(path)


def test_resume_args_require_placeholder() -> None:
    with pytest.raises(ValidationError):
        AgentCommandConfig(resume_args="--resume")
    assert AgentCommandConfig(resume_args="").resume_args == ""


async def test_save_round_trips(tmp_path: Path) -> None:
    config = AutorunConfig()
    config.general.default_prompt = "Do the next task"
    config.worktree.draft_pr = True
    path = tmp_path / "out" / "config.toml"

    await config.save(path)

    assert AutorunConfig.load(path) == config
    # Unset optional values are omitted rather than written as empty strings
    assert "pr_target_branch" not in path.read_text(encoding="utf-8")
