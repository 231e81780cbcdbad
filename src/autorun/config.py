"""Configuration loader for autorun."""

from __future__ import annotations

import tomllib
from typing import TYPE_CHECKING

import tomlkit
from pydantic import BaseModel, Field, ValidationError, field_validator

from autorun.atomic import atomic_write_async
from autorun.errors import ConfigError
from autorun.limits import DEBOUNCE_WINDOW_MS, MAX_CONSECUTIVE_NO_PROGRESS
from autorun.paths import ensure_directories, get_config_path

if TYPE_CHECKING:
    from pathlib import Path


class GeneralConfig(BaseModel):
    """General batch-run settings."""

    debounce_ms: int = Field(
        default=DEBOUNCE_WINDOW_MS,
        ge=0,
        description="Quiet window before coalesced progress updates reach the store",
    )
    max_consecutive_no_progress: int = Field(
        default=MAX_CONSECUTIVE_NO_PROGRESS,
        ge=1,
        description="Agent runs without a checked-off task before a document is skipped",
    )
    synopsis_enabled: bool = Field(
        default=True, description="Ask the agent for a synopsis after each task"
    )
    agent_name: str = Field(default="autorun", description="Value of {{AGENT_NAME}}")
    default_prompt: str | None = Field(
        default=None, description="Prompt used when a run has no custom prompt"
    )


class AgentCommandConfig(BaseModel):
    """How the default agent adapter spawns the coding agent."""

    identity: str = Field(default="claude-code", description="Agent identifier for errors")
    command: str = Field(
        default="claude -p --output-format json --dangerously-skip-permissions",
        description="Shell command receiving the prompt on stdin",
    )
    read_only_command: str | None = Field(
        default="claude -p --output-format json --permission-mode plan",
        description="Command for read-only requests such as synopses (None = command)",
    )
    resume_args: str = Field(
        default="--resume {session_id}",
        description="Appended to the command to continue an existing agent session",
    )

    @field_validator("resume_args")
    @classmethod
    def validate_resume_args(cls, value: str) -> str:
        if value and "{session_id}" not in value:
            raise ValueError("resume_args must contain the {session_id} placeholder")
        return value


class WorktreeSettings(BaseModel):
    """Defaults for isolated worktree runs."""

    branch_prefix: str = Field(default="autorun/")
    create_pr_on_completion: bool = Field(default=False)
    pr_target_branch: str | None = Field(
        default=None, description="PR base branch (None = repository default branch)"
    )
    draft_pr: bool = Field(default=False)


class AutorunConfig(BaseModel):
    """Root configuration model."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    agent: AgentCommandConfig = Field(default_factory=AgentCommandConfig)
    worktree: WorktreeSettings = Field(default_factory=WorktreeSettings)

    @classmethod
    def load(cls, config_path: Path | None = None) -> AutorunConfig:
        """Load configuration from TOML file or use defaults."""
        ensure_directories()
        if config_path is None:
            config_path = get_config_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            return cls.model_validate(data)
        except (tomllib.TOMLDecodeError, ValidationError) as exc:
            raise ConfigError(f"Invalid config file {config_path}: {exc}") from exc

    async def save(self, path: Path) -> None:
        """Serialize current config to TOML file.

        Args:
            path: Path to write config file (created if missing)
        """
        doc = tomlkit.document()
        for section_name in ("general", "agent", "worktree"):
            section: BaseModel = getattr(self, section_name)
            table = tomlkit.table()
            for key, value in section.model_dump().items():
                if value is not None:
                    table[key] = value
            doc[section_name] = table

        content = tomlkit.dumps(doc)
        await atomic_write_async(path, content)
