from __future__ import annotations

from autorun.services.batch.orchestrator import BatchOrchestrator, BatchOrchestratorImpl
from autorun.services.batch.runner import (
    BatchEngine,
    BatchRunRequest,
    ErrorDecision,
    ErrorDecisionKind,
)
from autorun.services.batch.state import (
    DEFAULT_BATCH_STATE,
    AgentError,
    AgentErrorType,
    BatchPhase,
    BatchRunState,
    phase_of,
)
from autorun.services.batch.store import BatchStore, replay_actions
from autorun.services.batch.types import BatchCompleteInfo, BatchDocumentEntry, HistoryEntry
from autorun.services.batch.worktree import WorktreeConfig

__all__ = [
    "DEFAULT_BATCH_STATE",
    "AgentError",
    "AgentErrorType",
    "BatchCompleteInfo",
    "BatchDocumentEntry",
    "BatchEngine",
    "BatchOrchestrator",
    "BatchOrchestratorImpl",
    "BatchPhase",
    "BatchRunRequest",
    "BatchRunState",
    "BatchStore",
    "ErrorDecision",
    "ErrorDecisionKind",
    "HistoryEntry",
    "WorktreeConfig",
    "phase_of",
    "replay_actions",
]
