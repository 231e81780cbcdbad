"""Collaborator contracts and shared value types for batch runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from autorun.services.batch.processor import TaskResult
    from autorun.services.batch.state import AgentError


@dataclass(frozen=True, slots=True)
class UsageStats:
    """Token and cost accounting reported by the agent for one invocation."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0
    total_cost_usd: float = 0.0


@dataclass(frozen=True, slots=True)
class AgentSessionContext:
    """Context passed with every agent invocation."""

    session_id: str
    document: str
    loop_iteration: int
    resume_agent_session_id: str | None = None
    read_only: bool = False


@dataclass(frozen=True, slots=True)
class AgentInvocationResult:
    success: bool
    agent_session_id: str | None = None
    usage_stats: UsageStats | None = None
    response: str = ""
    error: AgentError | None = None


class AgentInvoker(Protocol):
    """Spawns the coding agent for one prompt and waits for it to finish."""

    async def invoke(
        self, prompt: str, cwd: str, context: AgentSessionContext
    ) -> AgentInvocationResult: ...


class DocumentStore(Protocol):
    """Reads and writes checklist documents by name within a folder."""

    async def read_document(self, folder: str, name: str) -> str: ...

    async def write_document(self, folder: str, name: str, content: str) -> None: ...


@dataclass(frozen=True, slots=True)
class GitResult:
    success: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class WorktreeSetupInfo:
    """Outcome of preparing a worktree at a path for a branch."""

    success: bool
    created: bool = False
    current_branch: str | None = None
    requested_branch: str | None = None
    branch_mismatch: bool = False
    error: str | None = None


@dataclass(frozen=True, slots=True)
class DefaultBranchResult:
    success: bool
    branch: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class PullRequestResult:
    success: bool
    pr_url: str | None = None
    error: str | None = None


class GitCapability(Protocol):
    """Git and pull-request operations; expected failures come back as results."""

    async def worktree_setup(
        self, main_repo_cwd: str, worktree_path: str, branch_name: str
    ) -> WorktreeSetupInfo: ...

    async def worktree_checkout(
        self, worktree_path: str, branch_name: str, *, create_if_missing: bool
    ) -> GitResult: ...

    async def get_default_branch(self, cwd: str) -> DefaultBranchResult: ...

    async def push_branch(self, cwd: str, branch_name: str) -> GitResult: ...

    async def create_pr(
        self,
        cwd: str,
        *,
        head_branch: str,
        base_branch: str,
        title: str,
        body: str,
        draft: bool = False,
    ) -> PullRequestResult: ...


class SynopsisGenerator(Protocol):
    """Produces raw synopsis text for a finished task, or ``None``."""

    async def __call__(self, result: TaskResult) -> str | None: ...


@dataclass(frozen=True, slots=True)
class BatchDocumentEntry:
    """A document selected for a run."""

    filename: str
    reset_on_completion: bool = False


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """Record of one task attempt, for run history views."""

    session_id: str
    document: str
    summary: str
    full_response: str
    success: bool
    timestamp: int
    loop_iteration: int
    project_path: str
    agent_session_id: str | None = None
    usage_stats: UsageStats | None = None
    elapsed_time_ms: int = 0
    tasks_completed: int = 0


@dataclass(frozen=True, slots=True)
class BatchCompleteInfo:
    """Summary of a finished (or aborted) batch run."""

    session_id: str
    completed_tasks: int
    total_tasks: int
    was_stopped: bool
    elapsed_time_ms: int
    loop_iterations: int = 0
    session_ids: tuple[str, ...] = ()
    documents: tuple[str, ...] = ()
    pr_url: str | None = None
    pr_error: str | None = None
    error: str | None = None


__all__ = [
    "AgentInvocationResult",
    "AgentInvoker",
    "AgentSessionContext",
    "BatchCompleteInfo",
    "BatchDocumentEntry",
    "DefaultBranchResult",
    "DocumentStore",
    "GitCapability",
    "GitResult",
    "HistoryEntry",
    "PullRequestResult",
    "SynopsisGenerator",
    "UsageStats",
    "WorktreeSetupInfo",
]
