"""Template variable expansion for batch prompts and documents."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

TEMPLATE_VARIABLE_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

DEFAULT_BATCH_PROMPT = """# Context

You are **{{AGENT_NAME}}**, an agent working through a checklist on autopilot.

- **Agent Path:** {{AGENT_PATH}}
- **Git Branch:** {{GIT_BRANCH}}
- **Auto Run Folder:** {{AUTORUN_FOLDER}}
- **Loop Iteration:** {{LOOP_NUMBER}}
- **Working Folder for Temporary Files:** {{AUTORUN_FOLDER}}/Working

## Instructions

1. Read the project's agent notes (CLAUDE.md, AGENTS.md) when present.
2. Pick the FIRST unchecked task (`- [ ]`) in the document below, top to bottom.
   Work on that single task only; related sub-steps count as part of it.
3. Implement it following the project's conventions, with passing tests.
4. Mark it done by changing `- [ ]` to `- [x]` and add short notes under it.
   If you could not finish it, leave it unchecked and explain why.
5. Commit your changes with a message prefixed by "AUTORUN: ".
6. Start your reply with one specific sentence describing what you did, then exit.
   Another run will pick up the next task.

## Tasks

Process tasks from this document:

{{DOCUMENT_PATH}}
"""


@dataclass(frozen=True, slots=True)
class TemplateContext:
    """Values available to ``{{VARIABLE}}`` placeholders."""

    agent_name: str = ""
    agent_path: str = ""
    git_branch: str = ""
    autorun_folder: str = ""
    loop_number: int = 1
    document_name: str = ""
    document_path: str = ""
    session_id: str = ""
    now: datetime = field(default_factory=datetime.now)

    def variables(self) -> dict[str, str]:
        return {
            "AGENT_NAME": self.agent_name,
            "AGENT_PATH": self.agent_path,
            "CWD": self.agent_path,
            "GIT_BRANCH": self.git_branch,
            "AUTORUN_FOLDER": self.autorun_folder,
            "LOOP_NUMBER": str(self.loop_number),
            "DOCUMENT_NAME": self.document_name,
            "DOCUMENT_PATH": self.document_path,
            "SESSION_ID": self.session_id,
            "DATE": self.now.strftime("%Y-%m-%d"),
            "TIME": self.now.strftime("%H:%M:%S"),
            "DATETIME": self.now.strftime("%Y-%m-%d %H:%M:%S"),
            "WEEKDAY": self.now.strftime("%A"),
        }


def substitute_template_variables(text: str, context: TemplateContext) -> str:
    """Replace known ``{{NAME}}`` placeholders (case-insensitive).

    Unknown placeholders are left untouched so documents can carry their own
    mustache-style text.
    """
    values = context.variables()

    def _replace(match: re.Match[str]) -> str:
        value = values.get(match.group(1).upper())
        return match.group(0) if value is None else value

    return TEMPLATE_VARIABLE_RE.sub(_replace, text)


__all__ = [
    "DEFAULT_BATCH_PROMPT",
    "TemplateContext",
    "substitute_template_variables",
]
