"""Helpers for tests that need a real git repository."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


async def git(repo: Path, *args: str) -> str:
    """Run a git command in ``repo`` and return its stdout; fails the test on error."""
    proc = await asyncio.create_subprocess_exec(
        "git", *args, cwd=repo, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
    )
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise AssertionError(f"git {' '.join(args)} failed: {stderr.decode().strip()}")
    return stdout.decode().strip()


async def configure_git_user(repo: Path) -> None:
    await git(repo, "config", "user.email", "test@test.com")
    await git(repo, "config", "user.name", "Test User")
    # Disable GPG signing
    await git(repo, "config", "commit.gpgsign", "false")


async def init_repo_with_commit(repo: Path) -> Path:
    """Initialize ``repo`` on ``main`` with a single commit."""
    repo.mkdir(parents=True, exist_ok=True)
    await git(repo, "init", "-b", "main")
    await configure_git_user(repo)
    (repo / "README.md").write_text("# Test Repo\n", encoding="utf-8")
    await git(repo, "add", ".")
    await git(repo, "commit", "-m", "Initial commit")
    return repo
