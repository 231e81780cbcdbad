"""Git worktree and pull-request operations backed by the git and gh CLIs."""

from __future__ import annotations

import asyncio
from pathlib import Path

from autorun.adapters.process import run_exec
from autorun.debug_log import log
from autorun.limits import GIT_TIMEOUT, PR_TIMEOUT
from autorun.services.batch.types import (
    DefaultBranchResult,
    GitResult,
    PullRequestResult,
    WorktreeSetupInfo,
)

_FALLBACK_DEFAULT_BRANCHES = ("main", "master")


class GitCommandError(Exception):
    """Raised when a git or gh command fails."""


class GitCliAdapter:
    """Implements the batch git capability with subprocess calls.

    Every public method returns a result object; command failures never
    escape as exceptions.
    """

    def __init__(self, *, git_timeout: float = GIT_TIMEOUT, pr_timeout: float = PR_TIMEOUT) -> None:
        self._git_timeout = git_timeout
        self._pr_timeout = pr_timeout

    async def _run(
        self, executable: str, *args: str, cwd: str, timeout: float, check: bool = True
    ) -> tuple[str, str]:
        """Run a command and return (stdout, stderr)."""
        try:
            result = await run_exec(executable, *args, cwd=cwd, timeout=timeout)
        except TimeoutError as exc:
            raise GitCommandError(f"{executable} {args[0]} timed out after {timeout}s") from exc
        except OSError as exc:
            raise GitCommandError(f"Failed to run {executable}: {exc}") from exc

        stdout_str = result.stdout_text().strip()
        stderr_str = result.stderr_text().strip()
        if check and not result.ok:
            raise GitCommandError(
                stderr_str or f"{executable} {args[0]} failed with code {result.returncode}"
            )
        return stdout_str, stderr_str

    async def _run_git(self, *args: str, cwd: str, check: bool = True) -> tuple[str, str]:
        return await self._run("git", *args, cwd=cwd, timeout=self._git_timeout, check=check)

    async def _branch_exists(self, branch_name: str, cwd: str) -> bool:
        stdout, _ = await self._run_git(
            "rev-parse", "--verify", "--quiet", f"refs/heads/{branch_name}", cwd=cwd, check=False
        )
        return bool(stdout)

    async def _current_branch(self, cwd: str) -> str:
        stdout, _ = await self._run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd)
        return stdout

    async def _common_dir(self, cwd: str) -> Path:
        stdout, _ = await self._run_git(
            "rev-parse", "--path-format=absolute", "--git-common-dir", cwd=cwd
        )
        return Path(stdout).resolve()

    async def worktree_setup(
        self, main_repo_cwd: str, worktree_path: str, branch_name: str
    ) -> WorktreeSetupInfo:
        """Create the worktree, or validate an existing one and report its branch."""
        try:
            repo_common_dir = await self._common_dir(main_repo_cwd)
        except GitCommandError as exc:
            return WorktreeSetupInfo(
                success=False, error=f"Not a git repository: {main_repo_cwd} ({exc})"
            )

        path = Path(worktree_path)
        try:
            if path.exists():
                try:
                    worktree_common_dir = await self._common_dir(worktree_path)
                except GitCommandError:
                    worktree_common_dir = None
                if worktree_common_dir != repo_common_dir:
                    return WorktreeSetupInfo(
                        success=False,
                        error=f"{worktree_path} exists but is not a worktree of {main_repo_cwd}",
                    )
                current = await self._current_branch(worktree_path)
                mismatch = current != branch_name
                if mismatch:
                    log.info(f"Worktree {worktree_path} is on {current}, expected {branch_name}")
                return WorktreeSetupInfo(
                    success=True,
                    created=False,
                    current_branch=current,
                    requested_branch=branch_name,
                    branch_mismatch=mismatch,
                )

            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            if await self._branch_exists(branch_name, main_repo_cwd):
                await self._run_git(
                    "worktree", "add", worktree_path, branch_name, cwd=main_repo_cwd
                )
            else:
                await self._run_git(
                    "worktree", "add", "-b", branch_name, worktree_path, cwd=main_repo_cwd
                )
        except GitCommandError as exc:
            log.error(f"Worktree setup failed for {worktree_path}: {exc}")
            return WorktreeSetupInfo(success=False, requested_branch=branch_name, error=str(exc))

        log.info(f"Created worktree {worktree_path} on {branch_name}")
        return WorktreeSetupInfo(
            success=True,
            created=True,
            current_branch=branch_name,
            requested_branch=branch_name,
        )

    async def worktree_checkout(
        self, worktree_path: str, branch_name: str, *, create_if_missing: bool
    ) -> GitResult:
        """Switch an existing worktree to ``branch_name``."""
        try:
            status, _ = await self._run_git("status", "--porcelain", cwd=worktree_path)
            if status:
                return GitResult(
                    success=False,
                    error=f"Worktree {worktree_path} has uncommitted changes",
                )
            if await self._branch_exists(branch_name, worktree_path):
                await self._run_git("checkout", branch_name, cwd=worktree_path)
            elif create_if_missing:
                await self._run_git("checkout", "-b", branch_name, cwd=worktree_path)
            else:
                return GitResult(success=False, error=f"Branch {branch_name} does not exist")
        except GitCommandError as exc:
            return GitResult(success=False, error=str(exc))
        return GitResult(success=True)

    async def get_default_branch(self, cwd: str) -> DefaultBranchResult:
        """Resolve the repository default branch from origin/HEAD, then main/master."""
        try:
            stdout, _ = await self._run_git(
                "symbolic-ref", "--short", "refs/remotes/origin/HEAD", cwd=cwd, check=False
            )
            if stdout:
                return DefaultBranchResult(success=True, branch=stdout.removeprefix("origin/"))
            for candidate in _FALLBACK_DEFAULT_BRANCHES:
                if await self._branch_exists(candidate, cwd):
                    return DefaultBranchResult(success=True, branch=candidate)
        except GitCommandError as exc:
            return DefaultBranchResult(success=False, error=str(exc))
        return DefaultBranchResult(success=False, error="Could not determine the default branch")

    async def push_branch(self, cwd: str, branch_name: str) -> GitResult:
        try:
            await self._run_git("push", "-u", "origin", branch_name, cwd=cwd)
        except GitCommandError as exc:
            return GitResult(success=False, error=str(exc))
        return GitResult(success=True)

    async def create_pr(
        self,
        cwd: str,
        *,
        head_branch: str,
        base_branch: str,
        title: str,
        body: str,
        draft: bool = False,
    ) -> PullRequestResult:
        """Open a pull request with ``gh pr create``."""
        args = [
            "pr",
            "create",
            "--head",
            head_branch,
            "--base",
            base_branch,
            "--title",
            title,
            "--body",
            body,
        ]
        if draft:
            args.append("--draft")
        try:
            stdout, _ = await self._run("gh", *args, cwd=cwd, timeout=self._pr_timeout)
        except GitCommandError as exc:
            return PullRequestResult(success=False, error=f"Failed to create PR: {exc}")
        lines = stdout.splitlines()
        return PullRequestResult(success=True, pr_url=lines[-1].strip() if lines else None)


__all__ = ["GitCliAdapter", "GitCommandError"]
