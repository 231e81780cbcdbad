from __future__ import annotations

from autorun.adapters.git.worktrees import GitCliAdapter, GitCommandError

__all__ = ["GitCliAdapter", "GitCommandError"]
