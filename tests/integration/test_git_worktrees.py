"""GitCliAdapter against real temporary repositories."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from autorun.adapters.git import GitCliAdapter
from tests.helpers.git import git, init_repo_with_commit

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.integration


@pytest.fixture
async def repo(tmp_path: Path) -> Path:
    return await init_repo_with_commit(tmp_path / "repo")


@pytest.fixture
def adapter() -> GitCliAdapter:
    return GitCliAdapter()


class TestWorktreeSetup:
    async def test_creates_worktree_on_new_branch(
        self, adapter: GitCliAdapter, repo: Path, tmp_path: Path
    ) -> None:
        worktree = tmp_path / "worktrees" / "run-1"

        info = await adapter.worktree_setup(str(repo), str(worktree), "autorun/run-1")

        assert info.success, info.error
        assert info.created
        assert not info.branch_mismatch
        assert (worktree / "README.md").exists()
        assert await git(worktree, "rev-parse", "--abbrev-ref", "HEAD") == "autorun/run-1"

    async def test_reuses_existing_branch(
        self, adapter: GitCliAdapter, repo: Path, tmp_path: Path
    ) -> None:
        await git(repo, "branch", "autorun/existing")
        worktree = tmp_path / "wt"

        info = await adapter.worktree_setup(str(repo), str(worktree), "autorun/existing")

        assert info.success, info.error
        assert await git(worktree, "rev-parse", "--abbrev-ref", "HEAD") == "autorun/existing"

    async def test_existing_worktree_reports_branch(
        self, adapter: GitCliAdapter, repo: Path, tmp_path: Path
    ) -> None:
        worktree = tmp_path / "wt"
        await adapter.worktree_setup(str(repo), str(worktree), "autorun/a")

        same = await adapter.worktree_setup(str(repo), str(worktree), "autorun/a")
        other = await adapter.worktree_setup(str(repo), str(worktree), "autorun/b")

        assert same.success
        assert not same.created
        assert not same.branch_mismatch
        assert other.success
        assert other.branch_mismatch
        assert other.current_branch == "autorun/a"
        assert other.requested_branch == "autorun/b"

    async def test_rejects_directory_from_another_repository(
        self, adapter: GitCliAdapter, repo: Path, tmp_path: Path
    ) -> None:
        stranger = await init_repo_with_commit(tmp_path / "stranger")

        info = await adapter.worktree_setup(str(repo), str(stranger), "autorun/a")

        assert not info.success
        assert "is not a worktree of" in (info.error or "")

    async def test_rejects_non_repository(self, adapter: GitCliAdapter, tmp_path: Path) -> None:
        plain = tmp_path / "plain"
        plain.mkdir()

        info = await adapter.worktree_setup(str(plain), str(tmp_path / "wt"), "autorun/a")

        assert not info.success
        assert (info.error or "").startswith("Not a git repository")


class TestWorktreeCheckout:
    @pytest.fixture
    async def worktree(self, adapter: GitCliAdapter, repo: Path, tmp_path: Path) -> Path:
        path = tmp_path / "wt"
        info = await adapter.worktree_setup(str(repo), str(path), "autorun/a")
        assert info.success, info.error
        return path

    async def test_switches_and_creates_branch(
        self, adapter: GitCliAdapter, worktree: Path
    ) -> None:
        result = await adapter.worktree_checkout(str(worktree), "autorun/b", create_if_missing=True)

        assert result.success, result.error
        assert await git(worktree, "rev-parse", "--abbrev-ref", "HEAD") == "autorun/b"

    async def test_missing_branch_without_create(
        self, adapter: GitCliAdapter, worktree: Path
    ) -> None:
        result = await adapter.worktree_checkout(
            str(worktree), "autorun/b", create_if_missing=False
        )

        assert not result.success
        assert result.error == "Branch autorun/b does not exist"

    async def test_refuses_dirty_worktree(self, adapter: GitCliAdapter, worktree: Path) -> None:
        (worktree / "scratch.txt").write_text("wip\n", encoding="utf-8")

        result = await adapter.worktree_checkout(str(worktree), "autorun/b", create_if_missing=True)

        assert not result.success
        assert "uncommitted changes" in (result.error or "")
        assert await git(worktree, "rev-parse", "--abbrev-ref", "HEAD") == "autorun/a"


class TestRemoteOperations:
    async def test_default_branch_falls_back_to_main(
        self, adapter: GitCliAdapter, repo: Path
    ) -> None:
        result = await adapter.get_default_branch(str(repo))

        assert result.success
        assert result.branch == "main"

    async def test_default_branch_from_origin_head(
        self, adapter: GitCliAdapter, repo: Path, tmp_path: Path
    ) -> None:
        clone = tmp_path / "clone"
        await git(tmp_path, "clone", str(repo), str(clone))

        result = await adapter.get_default_branch(str(clone))

        assert result.branch == "main"

    async def test_push_without_remote_fails(self, adapter: GitCliAdapter, repo: Path) -> None:
        result = await adapter.push_branch(str(repo), "main")

        assert not result.success
        assert result.error
