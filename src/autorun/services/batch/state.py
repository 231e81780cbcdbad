"""Per-session batch run state."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, StrEnum, auto
from typing import Any


class AgentErrorType(StrEnum):
    """Failure categories reported by the agent capability."""

    AGENT_CRASHED = "agent_crashed"
    AUTH_EXPIRED = "auth_expired"
    TOKEN_EXHAUSTION = "token_exhaustion"
    RATE_LIMITED = "rate_limited"
    NETWORK_ERROR = "network_error"
    PERMISSION_DENIED = "permission_denied"
    UNKNOWN = "unknown"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class AgentError:
    """Structured failure of a single agent invocation.

    Carries enough context for a human to decide whether to retry, skip the
    document, or abort the run.
    """

    type: AgentErrorType
    message: str
    recoverable: bool = True
    agent_id: str = ""
    session_id: str | None = None
    timestamp: int = field(default_factory=_now_ms)
    raw: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class BatchRunState:
    """Snapshot of one session's batch run.

    Instances are immutable; the reducer produces a new one per transition.
    """

    is_running: bool = False
    is_stopping: bool = False

    documents: tuple[str, ...] = ()
    locked_documents: tuple[str, ...] = ()
    current_document_index: int = 0
    current_doc_tasks_total: int = 0
    current_doc_tasks_completed: int = 0
    total_tasks_across_all_docs: int = 0
    completed_tasks_across_all_docs: int = 0

    loop_enabled: bool = False
    loop_iteration: int = 0
    max_loops: int | None = None

    folder_path: str = ""

    worktree_active: bool = False
    worktree_path: str | None = None
    worktree_branch: str | None = None

    custom_prompt: str | None = None
    start_time: int | None = None

    # Active time only; time spent hidden or suspended is excluded
    accumulated_elapsed_ms: int = 0
    last_active_timestamp: int | None = None

    # Agent sessions produced by the run, kept after completion for linking
    session_ids: tuple[str, ...] = ()

    error: AgentError | None = None
    error_paused: bool = False
    error_document_index: int | None = None
    error_task_description: str | None = None

    @property
    def current_document(self) -> str | None:
        if 0 <= self.current_document_index < len(self.documents):
            return self.documents[self.current_document_index]
        return None

    @property
    def progress_ratio(self) -> float:
        if self.total_tasks_across_all_docs <= 0:
            return 0.0
        return min(1.0, self.completed_tasks_across_all_docs / self.total_tasks_across_all_docs)


DEFAULT_BATCH_STATE = BatchRunState()

type BatchState = dict[str, BatchRunState]


class BatchPhase(Enum):
    """Displayable phase of a batch run, derived from its state."""

    IDLE = auto()
    RUNNING = auto()
    PAUSED_ERROR = auto()
    STOPPING = auto()


def phase_of(state: BatchRunState | None) -> BatchPhase:
    """Derive the conceptual phase of a run from its stored state."""
    if state is None or not state.is_running:
        return BatchPhase.IDLE
    if state.is_stopping:
        return BatchPhase.STOPPING
    if state.error_paused:
        return BatchPhase.PAUSED_ERROR
    return BatchPhase.RUNNING


__all__ = [
    "DEFAULT_BATCH_STATE",
    "AgentError",
    "AgentErrorType",
    "BatchPhase",
    "BatchRunState",
    "BatchState",
    "phase_of",
]
