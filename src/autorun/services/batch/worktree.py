"""Worktree lifecycle for batch runs: setup at start, pull request at the end."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from autorun.debug_log import log
from autorun.limits import MAX_PR_TITLE_LENGTH
from autorun.services.batch.documents import document_display_name

if TYPE_CHECKING:
    from collections.abc import Sequence

    from autorun.services.batch.types import GitCapability


@dataclass(frozen=True, slots=True)
class WorktreeConfig:
    """How a run should isolate its changes."""

    enabled: bool = False
    path: str = ""
    branch_name: str = ""
    create_pr_on_completion: bool = False
    pr_target_branch: str | None = None
    draft_pr: bool = False


@dataclass(frozen=True, slots=True)
class WorktreeSetupResult:
    success: bool
    effective_cwd: str
    worktree_active: bool = False
    worktree_path: str | None = None
    worktree_branch: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class PRConfig:
    """Inputs for the completion pull request."""

    worktree_path: str
    main_repo_cwd: str
    branch_name: str
    documents: Sequence[str]
    completed_tasks: int
    target_branch: str | None = None
    draft: bool = False
    loop_iterations: int = 0


@dataclass(frozen=True, slots=True)
class PRCreationResult:
    success: bool
    pr_url: str | None = None
    target_branch: str | None = None
    error: str | None = None


async def setup_worktree(
    config: WorktreeConfig, *, cwd: str, git: GitCapability
) -> WorktreeSetupResult:
    """Prepare the worktree for a run and return the effective working directory.

    A disabled config leaves the run in ``cwd``. Git failures are returned,
    never raised.
    """
    if not config.enabled:
        return WorktreeSetupResult(success=True, effective_cwd=cwd, worktree_active=False)

    if not config.path or not config.branch_name:
        return WorktreeSetupResult(
            success=False,
            effective_cwd=cwd,
            error="Worktree path and branch name are required",
        )

    log.info(f"Setting up worktree {config.path} on branch {config.branch_name}")
    info = await git.worktree_setup(cwd, config.path, config.branch_name)
    if not info.success:
        error = info.error or "Failed to set up worktree"
        log.error(f"Worktree setup failed for {config.path}: {error}")
        return WorktreeSetupResult(success=False, effective_cwd=cwd, error=error)

    if info.branch_mismatch:
        log.info(
            f"Worktree {config.path} is on {info.current_branch}, "
            f"checking out {config.branch_name}"
        )
        checkout = await git.worktree_checkout(
            config.path, config.branch_name, create_if_missing=True
        )
        if not checkout.success:
            error = checkout.error or f"Failed to check out {config.branch_name}"
            log.error(f"Worktree checkout failed for {config.path}: {error}")
            return WorktreeSetupResult(success=False, effective_cwd=cwd, error=error)

    return WorktreeSetupResult(
        success=True,
        effective_cwd=config.path,
        worktree_active=True,
        worktree_path=config.path,
        worktree_branch=config.branch_name,
    )


def build_pr_title(documents: Sequence[str]) -> str:
    names = ", ".join(document_display_name(doc) for doc in documents)
    title = f"Auto Run: {names}" if names else "Auto Run"
    if len(title) > MAX_PR_TITLE_LENGTH:
        title = title[: MAX_PR_TITLE_LENGTH - 3].rstrip(", ") + "..."
    return title


def build_pr_body(documents: Sequence[str], completed_tasks: int, loop_iterations: int = 0) -> str:
    """Describe the processed documents and task count for the PR."""
    lines = ["## Auto Run Summary", "", "**Documents processed:**"]
    lines.extend(f"- {document_display_name(doc)}" for doc in documents)
    lines.append("")
    lines.append(f"**Total tasks completed:** {completed_tasks}")
    if loop_iterations:
        lines.append(f"**Loop iterations:** {loop_iterations + 1}")
    lines.extend(["", "---", "*Created automatically by autorun at the end of a batch run.*"])
    return "\n".join(lines)


async def create_pr(config: PRConfig, *, git: GitCapability) -> PRCreationResult:
    """Push the run's branch and open a pull request.

    Failure here never invalidates the completed run; it is only reported.
    """
    target = config.target_branch
    if not target:
        default = await git.get_default_branch(config.main_repo_cwd)
        if not default.success or not default.branch:
            error = default.error or "Could not determine the default branch"
            log.warning(f"PR target resolution failed: {error}")
            return PRCreationResult(success=False, error=error)
        target = default.branch

    push = await git.push_branch(config.worktree_path, config.branch_name)
    if not push.success:
        error = push.error or f"Failed to push {config.branch_name}"
        log.warning(f"Push before PR failed: {error}")
        return PRCreationResult(success=False, target_branch=target, error=error)

    pr = await git.create_pr(
        config.worktree_path,
        head_branch=config.branch_name,
        base_branch=target,
        title=build_pr_title(config.documents),
        body=build_pr_body(config.documents, config.completed_tasks, config.loop_iterations),
        draft=config.draft,
    )
    if not pr.success:
        log.warning(f"PR creation failed for {config.branch_name}: {pr.error}")
        return PRCreationResult(success=False, target_branch=target, error=pr.error)

    log.info(f"Created PR {pr.pr_url} ({config.branch_name} -> {target})")
    return PRCreationResult(success=True, pr_url=pr.pr_url, target_branch=target)


__all__ = [
    "PRConfig",
    "PRCreationResult",
    "WorktreeConfig",
    "WorktreeSetupResult",
    "build_pr_body",
    "build_pr_title",
    "create_pr",
    "setup_worktree",
]
